"""Core reconciliation logic for schema group privileges.

This module contains the database-agnostic logic for converging the default
table privileges of a group on a schema. It uses the adapter pattern to
delegate database-specific operations.
"""

import logging
from collections.abc import Iterable

from redshift_grants.adapters.base import DatabaseAdapter
from redshift_grants.adapters.redshift import RedshiftAdapter
from redshift_grants.exceptions import CatalogLookupError
from redshift_grants.exceptions import NoPrivilegesError
from redshift_grants.exceptions import PrivilegeNotFoundError
from redshift_grants.exceptions import ReadVerificationError
from redshift_grants.models import ALL_PRIVILEGES
from redshift_grants.models import Privilege
from redshift_grants.models import SchemaGroupPrivilege
from redshift_grants.models import SchemaGroupPrivilegeId
from redshift_grants.resource import ResourceHandler

log = logging.getLogger(__name__)


def _get_adapter(conn) -> DatabaseAdapter:
    """Factory function to get the appropriate adapter."""
    dialect = conn.engine.dialect.name

    adapters: dict[str, type[DatabaseAdapter]] = {
        'redshift': RedshiftAdapter,
        'postgresql': RedshiftAdapter,
    }

    adapter_class = adapters.get(dialect)
    if not adapter_class:
        raise ValueError(f'Unsupported database dialect: {dialect}')

    return adapter_class(conn)


def create_privilege(conn, desired: SchemaGroupPrivilege) -> SchemaGroupPrivilege:
    """Grant a group default privileges on the tables of a schema.

    The privileges are granted on all tables that currently exist in the schema,
    and through ALTER DEFAULT PRIVILEGES on tables created in it afterwards. Both
    statements and a read of the resulting state run in a single transaction, so
    either all of them take effect or none do.

    Parameters
    ----------
    conn : SQLAlchemy Connection
        A SQLAlchemy connection with an engine of dialect `redshift` or `postgresql`
        and driver `psycopg2` or `psycopg`. No transaction may be open on it.
    desired : SchemaGroupPrivilege
        The schema, group and privileges to grant.

    Returns:
    -------
    SchemaGroupPrivilege
        The state read back from the catalog. Its `id.serialize()` is the identity
        to persist.

    Raises:
    ------
    NoPrivilegesError
        If no privilege is requested. No SQL is issued.
    CatalogLookupError
        If the schema or group id does not exist.
    ReadVerificationError
        If the state read back does not hold the requested privileges.
    """
    _validate_privileges(desired)
    adapter = _get_adapter(conn)

    with adapter.transaction():
        _grant(adapter, desired.id, desired.privileges)
        return _verify(adapter, desired)


def read_privilege(conn, identity: str) -> SchemaGroupPrivilege:
    """Read the default privileges identified by `identity`.

    Raises:
        InvalidIdentityError: if the identity is malformed.
        PrivilegeNotFoundError: if the group has no default privileges in the schema.
    """
    privilege_id = SchemaGroupPrivilegeId.parse(identity)
    adapter = _get_adapter(conn)

    with adapter.transaction():
        return _read(adapter, privilege_id)


def update_privilege(conn, current: SchemaGroupPrivilege, desired: SchemaGroupPrivilege) -> SchemaGroupPrivilege:
    """Converge default privileges from `current` to `desired`.

    If the schema or group changed, every privilege of the old pair is revoked and
    the new pair is created. Otherwise only the difference between the privileges
    in the catalog and `desired` is revoked and granted, both on existing tables
    and in the default privileges. Everything runs in one transaction.

    Raises:
        NoPrivilegesError: if no privilege is requested. No SQL is issued.
        CatalogLookupError: if the schema or group id of `desired` does not exist.
        ReadVerificationError: if the state read back does not hold the requested privileges.
    """
    _validate_privileges(desired)
    adapter = _get_adapter(conn)

    with adapter.transaction():
        if current.id != desired.id:
            log.info('Identity changed from %s to %s, replacing privileges', current.id, desired.id)
            _revoke_all(adapter, current.id)
            _grant(adapter, desired.id, desired.privileges)
            return _verify(adapter, desired)

        existing = adapter.get_default_privileges(desired.schema_id, desired.group_id) or frozenset()
        to_revoke = existing - desired.privileges
        to_grant = desired.privileges - existing

        if not to_revoke and not to_grant:
            log.info('Privileges for %s already up to date', desired.id)
        else:
            schema_name, group_name = _get_names(adapter, desired.id)
            adapter.revoke_on_all_tables(to_revoke, schema_name, group_name)
            adapter.revoke_default_privileges(to_revoke, schema_name, group_name)
            adapter.grant_on_all_tables(to_grant, schema_name, group_name)
            adapter.grant_default_privileges(to_grant, schema_name, group_name)

        return _verify(adapter, desired)


def delete_privilege(conn, current: SchemaGroupPrivilege):
    """Revoke every managed privilege of the group on existing and future tables of the schema.

    Deleting privileges that do not exist succeeds. If the schema or group itself no
    longer exists, there is nothing left to revoke.
    """
    adapter = _get_adapter(conn)

    with adapter.transaction():
        _revoke_all(adapter, current.id)


def privilege_exists(conn, identity: str) -> bool:
    """Whether the group identified by `identity` has default privileges in the schema.

    Raises:
        InvalidIdentityError: if the identity is malformed.
    """
    privilege_id = SchemaGroupPrivilegeId.parse(identity)
    adapter = _get_adapter(conn)

    with adapter.transaction():
        return adapter.get_default_privileges(privilege_id.schema_id, privilege_id.group_id) is not None


def import_privilege(conn, identity: str) -> list[SchemaGroupPrivilege]:
    """Reconstruct existing default privileges so they can be adopted."""
    return [read_privilege(conn, identity)]


def _validate_privileges(desired: SchemaGroupPrivilege):
    if not desired.privileges:
        raise NoPrivilegesError()


def _get_names(adapter: DatabaseAdapter, privilege_id: SchemaGroupPrivilegeId) -> tuple[str, str]:
    return adapter.get_schema_name(privilege_id.schema_id), adapter.get_group_name(privilege_id.group_id)


def _grant(adapter: DatabaseAdapter, privilege_id: SchemaGroupPrivilegeId, privileges: Iterable[Privilege]):
    schema_name, group_name = _get_names(adapter, privilege_id)
    adapter.grant_on_all_tables(privileges, schema_name, group_name)
    adapter.grant_default_privileges(privileges, schema_name, group_name)


def _revoke(adapter: DatabaseAdapter, privilege_id: SchemaGroupPrivilegeId, privileges: Iterable[Privilege]):
    schema_name, group_name = _get_names(adapter, privilege_id)
    adapter.revoke_on_all_tables(privileges, schema_name, group_name)
    adapter.revoke_default_privileges(privileges, schema_name, group_name)


def _revoke_all(adapter: DatabaseAdapter, privilege_id: SchemaGroupPrivilegeId):
    """Revoke every managed privilege, unless the schema or group no longer exists."""
    try:
        _revoke(adapter, privilege_id, ALL_PRIVILEGES)
    except CatalogLookupError as e:
        log.info('Nothing to revoke for %s: %s', privilege_id, e)


def _read(adapter: DatabaseAdapter, privilege_id: SchemaGroupPrivilegeId) -> SchemaGroupPrivilege:
    privileges = adapter.get_default_privileges(privilege_id.schema_id, privilege_id.group_id)
    if privileges is None:
        raise PrivilegeNotFoundError(privilege_id.serialize())
    return SchemaGroupPrivilege.from_privileges(privilege_id, privileges)


def _verify(adapter: DatabaseAdapter, desired: SchemaGroupPrivilege) -> SchemaGroupPrivilege:
    """Read the state back within the current transaction and check it holds what was requested."""
    state = _read(adapter, desired.id)

    if not desired.privileges <= state.privileges:
        raise ReadVerificationError(desired.id.serialize(), desired.privileges, state.privileges)
    if extra := state.privileges - desired.privileges:
        log.warning(
            'Default privileges for %s include unmanaged privileges %s',
            desired.id,
            sorted(privilege.keyword for privilege in extra),
        )

    return state


class SchemaGroupPrivilegeResource(ResourceHandler):
    """Lifecycle callbacks for default privileges of a group on a schema.

    Each callback runs in its own transaction on the connection passed in.
    """

    def __init__(self, conn):
        self.conn = conn

    def create(self, desired: SchemaGroupPrivilege) -> SchemaGroupPrivilege:
        return create_privilege(self.conn, desired)

    def read(self, identity: str) -> SchemaGroupPrivilege:
        return read_privilege(self.conn, identity)

    def update(self, current: SchemaGroupPrivilege, desired: SchemaGroupPrivilege) -> SchemaGroupPrivilege:
        return update_privilege(self.conn, current, desired)

    def delete(self, current: SchemaGroupPrivilege) -> None:
        delete_privilege(self.conn, current)

    def exists(self, identity: str) -> bool:
        return privilege_exists(self.conn, identity)

    def import_state(self, identity: str) -> list[SchemaGroupPrivilege]:
        return import_privilege(self.conn, identity)
