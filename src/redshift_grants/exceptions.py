"""Exceptions raised while reconciling schema group privileges."""


class RedshiftGrantsError(Exception):
    """Base exception for all redshift_grants errors."""


class ConfigurationError(RedshiftGrantsError, ValueError):
    """Raised when the declared resource configuration is invalid."""


class InvalidIdentityError(RedshiftGrantsError, ValueError):
    """Raised when a resource identity cannot be parsed or built."""


class NoPrivilegesError(RedshiftGrantsError, ValueError):
    """Raised when none of the privilege flags is set."""

    def __init__(self):
        super().__init__('Must have at least 1 privilege')


class CatalogLookupError(RedshiftGrantsError, LookupError):
    """Raised when a schema or group id does not resolve to a name."""

    def __init__(self, kind: str, object_id: int):
        self.kind = kind
        self.object_id = object_id
        super().__init__(f'No {kind} with id {object_id}')


class PrivilegeNotFoundError(RedshiftGrantsError, LookupError):
    """Raised when no default ACL entry exists for a schema and group."""

    def __init__(self, identity: str):
        self.identity = identity
        super().__init__(f'No default privileges found for {identity}')


class ReadVerificationError(RedshiftGrantsError):
    """Raised when the state read back after a write does not hold the requested privileges."""

    def __init__(self, identity: str, expected, actual):
        self.identity = identity
        self.expected = expected
        self.actual = actual
        super().__init__(
            f'Default privileges for {identity} do not match after write: '
            f'expected {sorted(p.name for p in expected)}, got {sorted(p.name for p in actual)}',
        )


class MalformedAclError(RedshiftGrantsError, ValueError):
    """Raised when an ACL item read from the catalog cannot be parsed."""

    def __init__(self, item: str):
        self.item = item
        super().__init__(f'Malformed ACL item {item!r}')
