"""Redshift adapter for redshift_grants.

Implements Redshift-specific operations for default table privileges. The
catalog tables and statements used are shared with PostgreSQL, so the same
adapter serves both dialects.
"""

import logging
from collections.abc import Iterable
from contextlib import contextmanager
from typing import cast

import sqlalchemy as sa

try:
    from psycopg2 import sql as sql2
except ImportError:
    sql2 = None

try:
    from psycopg import sql as sql3
except ImportError:
    sql3 = None

from redshift_grants.adapters.base import DatabaseAdapter
from redshift_grants.exceptions import CatalogLookupError
from redshift_grants.models import Privilege
from redshift_grants.models import decode_default_acl
from redshift_grants.models import ordered

logger = logging.getLogger(__name__)


# Default ACL on tables ('r') in a schema for objects created by the current user.
# The group's entry is picked out of the ACL by decode_default_acl.
_DEFAULT_ACL_SQL = """
SELECT
  array_to_string(acl.defaclacl, '|') AS acl,
  pu.groname AS group_name
FROM pg_default_acl acl
INNER JOIN pg_namespace nsp ON nsp.oid = acl.defaclnamespace
INNER JOIN pg_group pu ON pu.grosysid = {group_id}
WHERE nsp.oid = {schema_id}
  AND acl.defaclobjtype = 'r'
  AND {owner_matches_current_user}
"""

# Redshift records the owner of a default ACL in defacluser, PostgreSQL in defaclrole
_OWNER_MATCHES_CURRENT_USER_SQL = {
    'redshift': 'acl.defacluser = (SELECT usesysid FROM pg_user WHERE usename = CURRENT_USER)',
    'postgresql': 'acl.defaclrole = (SELECT oid FROM pg_roles WHERE rolname = CURRENT_USER)',
}


class RedshiftAdapter(DatabaseAdapter):
    """Redshift-specific implementation of DatabaseAdapter."""

    def __init__(self, conn):
        """Initialize the Redshift adapter.

        Args:
            conn: SQLAlchemy connection object
        """
        super().__init__(conn)

        # Choose the correct library for dynamically constructing SQL based on the underlying
        # engine of the SQLAlchemy connection
        driver = conn.engine.driver
        self.sql = {
            'psycopg2': sql2,
            'psycopg': sql3,
        }.get(driver)
        if self.sql is None:
            raise ValueError(f'Unsupported database driver: {driver}')

        dialect = conn.engine.dialect.name
        if dialect not in _OWNER_MATCHES_CURRENT_USER_SQL:
            raise ValueError(f'Unsupported database dialect: {dialect}')
        self._owner_matches_current_user = self.sql.SQL(_OWNER_MATCHES_CURRENT_USER_SQL[dialect])

        self._sql_grants: dict[Privilege, self.sql.SQL] = {
            privilege: self.sql.SQL(privilege.keyword) for privilege in Privilege
        }

    def _execute_sql(self, sql_obj):
        """Execute a SQL statement constructed with psycopg sql module.

        This avoids "argument 1 must be psycopg2.extensions.connection, not PGConnectionProxy"
        which can happen when elastic-apm wraps the connection object.
        """
        unwrapped_connection = getattr(
            self.conn.connection.driver_connection,
            '__wrapped__',
            self.conn.connection.driver_connection,
        )
        return self.conn.execute(sa.text(sql_obj.as_string(unwrapped_connection)))

    def _privileges_sql(self, privileges: Iterable[Privilege]):
        return self.sql.SQL(',').join(self._sql_grants[privilege] for privilege in ordered(privileges))

    # ===== State Retrieval Methods =====

    def get_schema_name(self, schema_id: int) -> str:
        """Get the name of a schema from its OID."""
        row = self._execute_sql(
            self.sql.SQL('SELECT nspname FROM pg_namespace WHERE oid = {schema_id}').format(
                schema_id=self.sql.Literal(schema_id),
            ),
        ).first()
        if row is None:
            raise CatalogLookupError('schema', schema_id)

        return cast(str, row[0])

    def get_group_name(self, group_id: int) -> str:
        """Get the name of a group from its id."""
        row = self._execute_sql(
            self.sql.SQL('SELECT groname FROM pg_group WHERE grosysid = {group_id}').format(
                group_id=self.sql.Literal(group_id),
            ),
        ).first()
        if row is None:
            raise CatalogLookupError('group', group_id)

        return cast(str, row[0])

    def get_default_privileges(self, schema_id: int, group_id: int) -> frozenset[Privilege] | None:
        """Get the default table privileges of a group in a schema."""
        row = self._execute_sql(
            self.sql.SQL(_DEFAULT_ACL_SQL).format(
                schema_id=self.sql.Literal(schema_id),
                group_id=self.sql.Literal(group_id),
                owner_matches_current_user=self._owner_matches_current_user,
            ),
        ).first()
        if row is None:
            logger.debug('No default ACL for group %s in schema %s', group_id, schema_id)
            return None

        logger.debug('Default ACL for group %s in schema %s: %s', group_id, schema_id, row.acl)
        return decode_default_acl(row.acl, row.group_name)

    # ===== Transaction Methods =====

    @contextmanager
    def transaction(self):
        """Context manager for database transactions."""
        try:
            self.conn.begin()
            yield
        except Exception:
            self.conn.rollback()
            raise
        else:
            self.conn.commit()

    # ===== Permission Manipulation Methods =====

    def grant_on_all_tables(self, privileges: Iterable[Privilege], schema_name: str, group_name: str):
        """Grant privileges on all tables in a schema to a group."""
        privileges = ordered(privileges)
        if not privileges:
            logger.info('No privileges granted on tables in schema %s to group %s', schema_name, group_name)
            return
        logger.info(
            'Granting %s on all tables in schema %s to group %s',
            [p.keyword for p in privileges],
            schema_name,
            group_name,
        )
        self._execute_sql(
            self.sql.SQL('GRANT {privileges} ON ALL TABLES IN SCHEMA {schema_name} TO GROUP {group_name}').format(
                privileges=self._privileges_sql(privileges),
                schema_name=self.sql.Identifier(schema_name),
                group_name=self.sql.Identifier(group_name),
            ),
        )

    def revoke_on_all_tables(self, privileges: Iterable[Privilege], schema_name: str, group_name: str):
        """Revoke privileges on all tables in a schema from a group."""
        privileges = ordered(privileges)
        if not privileges:
            logger.info('No privileges revoked on tables in schema %s from group %s', schema_name, group_name)
            return
        logger.info(
            'Revoking %s on all tables in schema %s from group %s',
            [p.keyword for p in privileges],
            schema_name,
            group_name,
        )
        self._execute_sql(
            self.sql.SQL('REVOKE {privileges} ON ALL TABLES IN SCHEMA {schema_name} FROM GROUP {group_name}').format(
                privileges=self._privileges_sql(privileges),
                schema_name=self.sql.Identifier(schema_name),
                group_name=self.sql.Identifier(group_name),
            ),
        )

    def grant_default_privileges(self, privileges: Iterable[Privilege], schema_name: str, group_name: str):
        """Grant default privileges on future tables in a schema to a group."""
        privileges = ordered(privileges)
        if not privileges:
            logger.info('No default privileges granted in schema %s to group %s', schema_name, group_name)
            return
        logger.info(
            'Granting default privileges %s in schema %s to group %s',
            [p.keyword for p in privileges],
            schema_name,
            group_name,
        )
        self._execute_sql(
            self.sql.SQL(
                'ALTER DEFAULT PRIVILEGES IN SCHEMA {schema_name} GRANT {privileges} ON TABLES TO GROUP {group_name}',
            ).format(
                privileges=self._privileges_sql(privileges),
                schema_name=self.sql.Identifier(schema_name),
                group_name=self.sql.Identifier(group_name),
            ),
        )

    def revoke_default_privileges(self, privileges: Iterable[Privilege], schema_name: str, group_name: str):
        """Revoke default privileges on future tables in a schema from a group."""
        privileges = ordered(privileges)
        if not privileges:
            logger.info('No default privileges revoked in schema %s from group %s', schema_name, group_name)
            return
        logger.info(
            'Revoking default privileges %s in schema %s from group %s',
            [p.keyword for p in privileges],
            schema_name,
            group_name,
        )
        self._execute_sql(
            self.sql.SQL(
                'ALTER DEFAULT PRIVILEGES IN SCHEMA {schema_name} REVOKE {privileges} ON TABLES FROM GROUP {group_name}',
            ).format(
                privileges=self._privileges_sql(privileges),
                schema_name=self.sql.Identifier(schema_name),
                group_name=self.sql.Identifier(group_name),
            ),
        )
