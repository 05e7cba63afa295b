"""Models for default table privileges granted to a group on a schema."""

import re
from collections.abc import Iterable
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

from redshift_grants.exceptions import ConfigurationError
from redshift_grants.exceptions import InvalidIdentityError
from redshift_grants.exceptions import MalformedAclError

_IDENTITY_SEPARATOR = '_'
_IDENTITY_RE = re.compile(r'(\d+)_(\d+)')


class Privilege(Enum):
    """Table privileges that can be granted to a group by default.

    Members are declared in the order their SQL keywords are emitted. Each value
    is the letter used for the privilege in an ACL item, e.g. the ``arw`` in
    ``group analysts=arw/admin``.
    """

    SELECT = 'r'
    """Read rows from tables."""
    INSERT = 'a'
    """Insert new rows into tables."""
    UPDATE = 'w'
    """Update existing rows."""
    DELETE = 'd'
    """Delete rows."""
    REFERENCES = 'x'
    """Create foreign-key constraints referencing tables."""

    @property
    def acl_code(self) -> str:
        return self.value

    @property
    def keyword(self) -> str:
        return self.name

    @property
    def flag(self) -> str:
        """Name of the boolean flag for this privilege in the declared configuration."""
        return self.name.lower()


ALL_PRIVILEGES = frozenset(Privilege)


def ordered(privileges: Iterable[Privilege]) -> tuple[Privilege, ...]:
    """Return privileges in declaration order, i.e. SELECT, INSERT, UPDATE, DELETE, REFERENCES."""
    privileges = set(privileges)
    return tuple(privilege for privilege in Privilege if privilege in privileges)


def _validate_id(name: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidIdentityError(f'{name} must be an integer, got {value!r}')
    if value < 0:
        raise InvalidIdentityError(f'{name} must not be negative, got {value}')
    return value


@dataclass(frozen=True)
class SchemaGroupPrivilegeId:
    """Identity of a schema group privilege: the pair of schema and group ids.

    Attributes:
        schema_id (int): OID of the schema in ``pg_namespace``.
        group_id (int): Id of the group in ``pg_group`` (``grosysid``).

    Example:
        >>> SchemaGroupPrivilegeId(5, 7).serialize()
        '5_7'
        >>> SchemaGroupPrivilegeId.parse('5_7')
        SchemaGroupPrivilegeId(schema_id=5, group_id=7)
    """

    schema_id: int
    group_id: int

    def __post_init__(self):
        _validate_id('schema_id', self.schema_id)
        _validate_id('group_id', self.group_id)

    def serialize(self) -> str:
        return f'{self.schema_id}{_IDENTITY_SEPARATOR}{self.group_id}'

    @classmethod
    def parse(cls, identity: str) -> 'SchemaGroupPrivilegeId':
        """Parse an identity of the form ``<schema_id>_<group_id>``.

        Raises:
            InvalidIdentityError: if the identity is not two non-negative
                integers joined by a single underscore.
        """
        if not isinstance(identity, str):
            raise InvalidIdentityError(f'Identity must be a string, got {identity!r}')
        match = _IDENTITY_RE.fullmatch(identity)
        if match is None:
            raise InvalidIdentityError(f'Invalid identity {identity!r}, expected <schema_id>_<group_id>')
        return cls(int(match.group(1)), int(match.group(2)))

    def __str__(self) -> str:
        return self.serialize()


@dataclass(frozen=True)
class SchemaGroupPrivilege:
    """Default privileges of a group on the tables of a schema.

    This is both the declared state passed in by the host and the refreshed state
    read back from the catalog. Privileges apply to the tables that exist in the
    schema and, through default privileges, to tables created later.

    Attributes:
        schema_id (int): OID of the schema.
        group_id (int): Id of the group.
        select (bool): Whether the group may SELECT. Defaults to False.
        insert (bool): Whether the group may INSERT. Defaults to False.
        update (bool): Whether the group may UPDATE. Defaults to False.
        delete (bool): Whether the group may DELETE. Defaults to False.
        references (bool): Whether the group may create REFERENCES. Defaults to False.
    """

    schema_id: int
    group_id: int
    select: bool = False
    insert: bool = False
    update: bool = False
    delete: bool = False
    references: bool = False

    @property
    def id(self) -> SchemaGroupPrivilegeId:
        return SchemaGroupPrivilegeId(self.schema_id, self.group_id)

    @property
    def privileges(self) -> frozenset[Privilege]:
        return frozenset(privilege for privilege in Privilege if getattr(self, privilege.flag))

    @classmethod
    def from_privileges(
        cls,
        privilege_id: SchemaGroupPrivilegeId,
        privileges: Iterable[Privilege],
    ) -> 'SchemaGroupPrivilege':
        """Build the state for an identity with every flag set explicitly."""
        privileges = frozenset(privileges)
        return cls(
            schema_id=privilege_id.schema_id,
            group_id=privilege_id.group_id,
            **{privilege.flag: privilege in privileges for privilege in Privilege},
        )

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> 'SchemaGroupPrivilege':
        """Build the state from the declared resource configuration.

        ``schema_id`` and ``group_id`` are required integers, the privilege flags
        are optional booleans that default to False.

        Raises:
            ConfigurationError: if a field is missing, unknown or of the wrong type.
        """
        flags = {privilege.flag for privilege in Privilege}
        unknown = set(config) - flags - {'schema_id', 'group_id'}
        if unknown:
            raise ConfigurationError(f'Unknown configuration fields: {sorted(unknown)}')

        ids = {}
        for name in ('schema_id', 'group_id'):
            if name not in config:
                raise ConfigurationError(f'Missing required configuration field {name!r}')
            try:
                ids[name] = _validate_id(name, config[name])
            except InvalidIdentityError as e:
                raise ConfigurationError(str(e)) from e

        for flag in flags:
            value = config.get(flag, False)
            if not isinstance(value, bool):
                raise ConfigurationError(f'{flag} must be a boolean, got {value!r}')

        return cls(**ids, **{flag: config.get(flag, False) for flag in flags})

    def to_config(self) -> dict[str, Any]:
        return {
            'schema_id': self.schema_id,
            'group_id': self.group_id,
            **{privilege.flag: getattr(self, privilege.flag) for privilege in Privilege},
        }


def _parse_acl_item(item: str) -> tuple[str, str]:
    """Split an ACL item such as ``group "my group"=arw/owner`` into grantee and privilege letters."""
    if item.startswith('group '):
        item = item[len('group ') :]

    if item.startswith('"'):
        # Quoted names escape a double quote by doubling it
        grantee = []
        i = 1
        while i < len(item):
            if item[i] == '"':
                if item[i + 1 : i + 2] == '"':
                    grantee.append('"')
                    i += 2
                    continue
                break
            grantee.append(item[i])
            i += 1
        rest = item[i + 1 :]
        name = ''.join(grantee)
    else:
        name, sep, rest = item.partition('=')
        rest = sep + rest

    if not rest.startswith('='):
        raise MalformedAclError(item)

    letters, _, _ = rest[1:].partition('/')
    return name, letters


def decode_default_acl(acl: str | None, group_name: str) -> frozenset[Privilege] | None:
    """Decode the privileges a group holds in a default ACL.

    Args:
        acl: The ACL items of a ``pg_default_acl`` row joined with ``|``, as
            returned by ``array_to_string(defaclacl, '|')``.
        group_name: The group to find the entry for.

    Returns:
        The privileges held by the group, or None if the group has no entry.
        Letters for privileges outside of ``Privilege`` and grant option markers
        are ignored.
    """
    if not acl:
        return None

    codes = {privilege.acl_code: privilege for privilege in Privilege}
    for item in acl.split('|'):
        if not item:
            continue
        grantee, letters = _parse_acl_item(item)
        if grantee == group_name:
            return frozenset(codes[letter] for letter in letters if letter in codes)

    return None
