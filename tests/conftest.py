import uuid

import pytest
import sqlalchemy as sa

from redshift_grants.models import SchemaGroupPrivilegeId

try:
    # psycopg2
    import psycopg2  # noqa: F401

    engine_type = 'postgresql+psycopg2'
except ImportError:
    # psycopg3
    import psycopg  # noqa: F401

    engine_type = 'postgresql+psycopg'

engine_future = {'future': True} if tuple(int(v) for v in sa.__version__.split('.')[:3]) < (2, 0, 0) else {}

# The default/root database that comes with the PostgreSQL Docker image
ROOT_DATABASE_NAME = 'postgres'

# We make and drop a database in each test to keep them isolated
TEST_DATABASE_NAME = 'redshift_grants_test'


@pytest.fixture
def root_engine():
    return sa.create_engine(f'{engine_type}://postgres:postgres@127.0.0.1:5432/{ROOT_DATABASE_NAME}', **engine_future)


@pytest.fixture
def test_engine(root_engine):
    granting_user = f'test_granting_user_{uuid.uuid4().hex}'

    def drop_database_if_exists(conn):
        conn.execute(
            sa.text(f"""
            SELECT pg_terminate_backend(pg_stat_activity.pid)
            FROM pg_stat_activity
            WHERE pg_stat_activity.datname = '{TEST_DATABASE_NAME}'
            AND pid != pg_backend_pid();
        """),
        )
        # Dropping the database also drops its default ACLs, so the roles below can be dropped
        conn.execute(sa.text(f'DROP DATABASE IF EXISTS {TEST_DATABASE_NAME}'))

        roles = conn.execute(
            sa.text("""
            SELECT rolname FROM pg_roles WHERE rolname LIKE 'test\\_%'
        """),
        ).fetchall()
        for (role,) in roles:
            conn.execute(sa.text(f'REVOKE ALL PRIVILEGES ON DATABASE {ROOT_DATABASE_NAME} FROM "{role}"'))
            conn.execute(sa.text(f'DROP ROLE "{role}"'))

    with root_engine.connect() as conn:
        conn.execution_options(isolation_level='AUTOCOMMIT')
        drop_database_if_exists(conn)
        conn.execute(sa.text(f'CREATE DATABASE {TEST_DATABASE_NAME}'))

    with root_engine.begin() as conn:
        conn.execute(sa.text(f"CREATE ROLE {granting_user} WITH CREATEROLE LOGIN PASSWORD 'password'"))
        conn.execute(sa.text(f'ALTER DATABASE {TEST_DATABASE_NAME} OWNER TO {granting_user}'))

    # The NullPool prevents default connection pooling, which interfers with tests that
    # terminate connections
    yield sa.create_engine(
        f'{engine_type}://{granting_user}:password@127.0.0.1:5432/{TEST_DATABASE_NAME}',
        poolclass=sa.pool.NullPool,
        **engine_future,
    )

    with root_engine.connect() as conn:
        conn.execution_options(isolation_level='AUTOCOMMIT')
        drop_database_if_exists(conn)


@pytest.fixture
def test_superuser_engine(test_engine):
    # For changes the granting user is not allowed to make, e.g. dropping a group that has privileges
    engine = sa.create_engine(
        f'{engine_type}://postgres:postgres@127.0.0.1:5432/{TEST_DATABASE_NAME}',
        poolclass=sa.pool.NullPool,
        **engine_future,
    )
    yield engine
    engine.dispose()


@pytest.fixture
def create_test_table(test_engine):
    def _create_test_table(schema_name, table_name):
        with test_engine.begin() as conn:
            conn.execute(sa.text(f'CREATE SCHEMA IF NOT EXISTS {schema_name}'))
            conn.execute(sa.text(f'CREATE TABLE {schema_name}.{table_name} (id int)'))

    # Tables are dropped along with the test database
    return _create_test_table


@pytest.fixture
def test_table(create_test_table):
    schema_name = f'test_schema_{uuid.uuid4().hex}'
    table_name = f'test_table_{uuid.uuid4().hex}'
    create_test_table(schema_name, table_name)
    return schema_name, table_name


@pytest.fixture
def create_test_group(test_engine):
    def _create_test_group(prefix='test_group_'):
        group_name = f'{prefix}{uuid.uuid4().hex}'
        with test_engine.begin() as conn:
            conn.execute(sa.text(f'CREATE GROUP "{group_name}"'))
        return group_name

    # Groups are dropped with the other test roles when the test database is dropped
    return _create_test_group


@pytest.fixture
def test_group(create_test_group):
    return create_test_group()


@pytest.fixture
def get_privilege_id(test_engine):
    def _get_privilege_id(schema_name, group_name):
        with test_engine.connect() as conn:
            schema_id = conn.execute(
                sa.text('SELECT oid FROM pg_namespace WHERE nspname = :schema_name'),
                {'schema_name': schema_name},
            ).scalar_one()
            group_id = conn.execute(
                sa.text('SELECT grosysid FROM pg_group WHERE groname = :group_name'),
                {'group_name': group_name},
            ).scalar_one()
        return SchemaGroupPrivilegeId(int(schema_id), int(group_id))

    return _get_privilege_id


@pytest.fixture
def test_privilege_id(get_privilege_id, test_table, test_group):
    schema_name, _ = test_table
    return get_privilege_id(schema_name, test_group)


@pytest.fixture
def executed_statements(test_engine):
    statements = []

    def before_cursor_execute(conn, cursor, statement, parameters, context, executemany):
        statements.append(statement)

    sa.event.listen(test_engine, 'before_cursor_execute', before_cursor_execute)
    yield statements
    sa.event.remove(test_engine, 'before_cursor_execute', before_cursor_execute)


@pytest.fixture
def test_sqlite_engine():
    engine = sa.create_engine('sqlite:///:memory:', **engine_future)
    yield engine
    engine.dispose()
