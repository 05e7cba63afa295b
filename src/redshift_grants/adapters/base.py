"""Abstract base class for database adapters.

Defines the interface that all database adapters must implement.
"""

from abc import ABC
from abc import abstractmethod
from collections.abc import Iterable
from contextlib import contextmanager

from redshift_grants.models import Privilege


class DatabaseAdapter(ABC):
    """Abstract base class for database-specific operations.

    Each database adapter must implement methods for:
    - Resolving catalog ids to names
    - Reading default ACLs
    - Granting and revoking table privileges
    - Transactions
    """

    def __init__(self, conn):
        """Initialize the adapter with a database connection.

        Args:
            conn: Database connection object (e.g., SQLAlchemy connection)
        """
        self.conn = conn

    # ===== State Retrieval Methods =====

    @abstractmethod
    def get_schema_name(self, schema_id: int) -> str:
        """Get the name of a schema from its id.

        Args:
            schema_id: OID of the schema

        Raises:
            CatalogLookupError: if no schema has this id
        """

    @abstractmethod
    def get_group_name(self, group_id: int) -> str:
        """Get the name of a group from its id.

        Args:
            group_id: Id of the group

        Raises:
            CatalogLookupError: if no group has this id
        """

    @abstractmethod
    def get_default_privileges(self, schema_id: int, group_id: int) -> frozenset[Privilege] | None:
        """Get the default table privileges of a group in a schema.

        Only default privileges for objects created by the current user are
        considered, since those are the ones ALTER DEFAULT PRIVILEGES changes.

        Args:
            schema_id: OID of the schema
            group_id: Id of the group

        Returns:
            The privileges the group holds, or None if there is no default ACL
            entry for the group in the schema
        """

    # ===== Transaction Methods =====

    @abstractmethod
    @contextmanager
    def transaction(self):
        """Context manager for database transactions.

        Yields control and commits on success, rolls back on error.
        """

    # ===== Permission Manipulation Methods =====

    @abstractmethod
    def grant_on_all_tables(self, privileges: Iterable[Privilege], schema_name: str, group_name: str):
        """Grant privileges on every existing table of a schema to a group."""

    @abstractmethod
    def revoke_on_all_tables(self, privileges: Iterable[Privilege], schema_name: str, group_name: str):
        """Revoke privileges on every existing table of a schema from a group."""

    @abstractmethod
    def grant_default_privileges(self, privileges: Iterable[Privilege], schema_name: str, group_name: str):
        """Grant privileges on tables created in the schema in the future to a group."""

    @abstractmethod
    def revoke_default_privileges(self, privileges: Iterable[Privilege], schema_name: str, group_name: str):
        """Revoke privileges on tables created in the schema in the future from a group."""
