import uuid

import pytest
from sqlalchemy.exc import OperationalError, ProgrammingError

from streamer.exceptions import UnsupportedEngineError
from streamer.handlers import (
    MySQLCapabilityHandler,
    PostgresCapabilityHandler,
    StepStatus,
    ValidationReport,
    ValidationStep,
    get_capability_handler,
)
from streamer.handlers.mysql import server_id_for
from tests.factories import make_profile

ALL_GRANTS = 'GRANT SELECT, RELOAD, SHOW DATABASES, REPLICATION SLAVE, REPLICATION CLIENT ON *.* TO `debezium`@`%`'


class FakeResult:
    def __init__(self, rows):
        self.rows = rows

    def fetchall(self):
        return self.rows

    def scalar(self):
        return self.rows[0][0] if self.rows else None


class FakeConnection:
    def __init__(self, database):
        self.database = database

    def execute(self, clause, params=None):
        sql = ' '.join(str(clause).split())
        params = params or {}
        self.database.executed.append((sql, params))
        return FakeResult(self.database.respond(sql, params))

    def close(self):
        pass


class FakeEngine:
    def __init__(self, database):
        self.database = database

    def connect(self):
        if self.database.unreachable:
            raise OperationalError('connect', {}, Exception("Can't connect to server: Connection refused"))
        return FakeConnection(self.database)

    def dispose(self):
        pass


class FakeDatabase:
    unreachable = False

    def __init__(self):
        self.executed = []
        self.engine_calls = []

    def engine_factory(self, url, **kwargs):
        self.engine_calls.append((url, kwargs))
        return FakeEngine(self)

    @property
    def writes(self):
        return [sql for sql, _ in self.executed if not sql.startswith(('SHOW', 'SELECT'))]


class FakeMySQL(FakeDatabase):

    def __init__(self, grants=(ALL_GRANTS,), grants_error=None, **variables):
        super().__init__()
        self.variables = {'log_bin': 'ON', 'binlog_format': 'ROW', 'binlog_row_image': 'FULL'}
        self.variables.update(variables)
        self.grants = list(grants)
        self.grants_error = grants_error

    def respond(self, sql, params):
        if sql.startswith('SHOW VARIABLES LIKE'):
            name = params['name']
            return [(name, self.variables[name])] if self.variables.get(name) is not None else []
        if sql.startswith('SHOW GRANTS'):
            if self.grants_error:
                raise ProgrammingError(sql, {}, Exception(self.grants_error))
            return [(grant,) for grant in self.grants]
        if sql.startswith('SET GLOBAL binlog_format'):
            self.variables['binlog_format'] = 'ROW'
        elif sql.startswith('SET GLOBAL binlog_row_image'):
            self.variables['binlog_row_image'] = 'FULL'
        elif sql.startswith('GRANT'):
            self.grants = [ALL_GRANTS]
        return []


class FakePostgres(FakeDatabase):
    """ALTER SYSTEM is recorded but, as in PostgreSQL, only applies after a restart"""

    def __init__(self, superuser=True, tables=(), failing_tables=(), **settings):
        super().__init__()
        self.settings = {'wal_level': 'logical', 'max_wal_senders': '10', 'max_replication_slots': '10'}
        self.settings.update(settings)
        self.superuser = superuser
        self.tables = list(tables)
        self.failing_tables = set(failing_tables)

    def respond(self, sql, params):
        if sql.startswith('SHOW '):
            return [(self.settings[sql.split()[1]],)]
        if 'FROM pg_roles' in sql:
            return [] if self.superuser is None else [(self.superuser,)]
        if 'FROM pg_class' in sql:
            return self.tables
        if sql.startswith('ALTER TABLE'):
            for schema_name, table_name in self.failing_tables:
                if f'"{schema_name}"."{table_name}"' in sql:
                    raise ProgrammingError(sql, {}, Exception('must be owner of table'))
        return []


def mysql_handler(database, config):
    return MySQLCapabilityHandler(config=config, engine_factory=database.engine_factory)


def postgres_handler(database, config):
    return PostgresCapabilityHandler(config=config, engine_factory=database.engine_factory)


def step(report, name):
    return next(s for s in report.steps if s.step == name)


class TestValidationReport:

    @pytest.mark.parametrize('statuses, ready', [
        ([], True),
        (['success', 'success'], True),
        (['success', 'warning'], True),
        (['warning', 'error'], False),
        (['error'], False),
    ])
    def test_ready_iff_no_errors(self, statuses, ready):
        report = ValidationReport([ValidationStep(f's{i}', status, 'm') for i, status in enumerate(statuses)])
        assert report.ready is ready

    def test_to_dict(self):
        report = ValidationReport([ValidationStep('Binlog Format', 'error', 'bad', 'fix it', fixable=True)])
        body = report.to_dict()
        assert body['ready'] is False
        assert body['can_fix'] is True
        assert body['steps'][0]['remediation'] == 'fix it'


class TestMySQLHandler:

    def test_ready_source(self, streamer_config):
        database = FakeMySQL()
        report = mysql_handler(database, streamer_config).validate(make_profile())

        assert report.ready
        assert [s.step for s in report.steps] == [
            'Database Connection', 'Binary Logging', 'Binlog Format', 'Binlog Row Image', 'User Permissions',
        ]

    def test_connection_settings(self, streamer_config):
        database = FakeMySQL()
        mysql_handler(database, streamer_config).validate(make_profile())

        url, kwargs = database.engine_calls[0]
        assert url.drivername == 'mysql+pymysql'
        assert url.password == 'secret'
        assert kwargs['isolation_level'] == 'AUTOCOMMIT'
        assert kwargs['connect_args'] == {
            'connect_timeout': streamer_config.database_connect_timeout,
            'read_timeout': streamer_config.database_statement_timeout,
            'write_timeout': streamer_config.database_statement_timeout,
        }

    def test_every_check_runs_after_a_failure(self, streamer_config):
        database = FakeMySQL(binlog_format='STATEMENT', grants=('GRANT SELECT ON *.* TO `debezium`@`%`',))
        report = mysql_handler(database, streamer_config).validate(make_profile())

        assert not report.ready
        assert step(report, 'Binlog Format').status == StepStatus.ERROR
        assert step(report, 'Binlog Format').fixable
        assert step(report, 'Binlog Row Image').status == StepStatus.SUCCESS
        permissions = step(report, 'User Permissions')
        assert permissions.status == StepStatus.ERROR
        assert 'REPLICATION SLAVE' in permissions.message

    def test_failing_query_is_reported_per_check(self, streamer_config):
        database = FakeMySQL(grants_error='SHOW GRANTS denied')
        report = mysql_handler(database, streamer_config).validate(make_profile())

        permissions = step(report, 'User Permissions')
        assert permissions.status == StepStatus.ERROR
        assert permissions.message == 'Failed to check user permissions'
        assert step(report, 'Binlog Format').status == StepStatus.SUCCESS

    def test_missing_row_image_is_a_warning(self, streamer_config):
        database = FakeMySQL(binlog_row_image=None)
        report = mysql_handler(database, streamer_config).validate(make_profile())

        assert step(report, 'Binlog Row Image').status == StepStatus.WARNING
        assert report.ready

    def test_unreachable_source(self, streamer_config):
        database = FakeMySQL()
        database.unreachable = True
        report = mysql_handler(database, streamer_config).validate(make_profile())

        assert not report.ready
        assert report.steps[0].step == 'Database Connection'
        assert report.steps[0].status == StepStatus.ERROR
        assert 'Connection refused' in report.steps[0].remediation
        assert len(report.steps) == 5
        assert all(s.status == StepStatus.ERROR for s in report.steps[1:])

    def test_fix_binlog_format(self, streamer_config):
        database = FakeMySQL(binlog_format='MIXED')
        report = mysql_handler(database, streamer_config).fix(make_profile())

        assert "SET GLOBAL binlog_format = 'ROW'" in database.writes
        assert report.ready
        assert step(report, 'Binlog Format').status == StepStatus.SUCCESS
        assert step(report, 'Fix Binlog Format').status == StepStatus.SUCCESS

    def test_fix_grants(self, streamer_config):
        database = FakeMySQL(grants=('GRANT USAGE ON *.* TO `debezium`@`%`',))
        report = mysql_handler(database, streamer_config).fix(make_profile())

        grant_sql, grant_params = next((sql, p) for sql, p in database.executed if sql.startswith('GRANT'))
        assert 'REPLICATION CLIENT' in grant_sql
        assert grant_params == {'username': 'debezium'}
        assert 'FLUSH PRIVILEGES' in database.writes
        assert report.ready

    def test_fix_is_idempotent_on_ready_source(self, streamer_config):
        database = FakeMySQL()
        report = mysql_handler(database, streamer_config).fix(make_profile())

        assert report.ready
        assert database.writes == []
        assert not report.errors

    def test_capture_config(self, streamer_config):
        profile = make_profile(host='127.0.0.1')
        config = mysql_handler(FakeMySQL(), streamer_config).get_capture_config(profile)

        assert config['connector.class'] == 'io.debezium.connector.mysql.MySqlConnector'
        assert config['database.hostname'] == 'host.docker.internal'
        assert config['database.password'] == 'secret'
        assert config['topic.prefix'] == str(profile.id)
        assert config['table.include.list'] == 'inventory.*'
        assert config['database.server.id'] == str(server_id_for(profile.id))
        assert config['schema.history.internal.kafka.bootstrap.servers'] == 'kafka:29092'
        assert config['schema.history.internal.kafka.topic'] == f'schemahistory.{profile.id}'
        assert config['transforms.route.replacement'] == '$1.all-changes'
        assert config['value.converter.schemas.enable'] == 'true'
        assert config['decimal.handling.mode'] == 'double'

    def test_remote_host_is_kept(self, streamer_config):
        config = mysql_handler(FakeMySQL(), streamer_config).get_capture_config(make_profile(host='db.internal'))
        assert config['database.hostname'] == 'db.internal'

    def test_server_id_is_deterministic(self):
        profile_id = uuid.uuid4()
        assert server_id_for(profile_id) == server_id_for(str(profile_id))
        assert 0 < server_id_for(profile_id) < 2 ** 31


class TestPostgresHandler:

    def profile(self):
        return make_profile(engine_type='postgres', port=5432, username='postgres')

    def test_ready_source(self, streamer_config):
        report = postgres_handler(FakePostgres(), streamer_config).validate(self.profile())
        assert report.ready
        assert len(report.steps) == 5

    def test_statement_timeouts(self, streamer_config):
        config = streamer_config.model_copy(update={'database_statement_timeout': 12})
        database = FakePostgres()
        postgres_handler(database, config).validate(self.profile())

        url, kwargs = database.engine_calls[0]
        assert url.drivername == 'postgresql+psycopg2'
        assert kwargs['connect_args'] == {
            'connect_timeout': config.database_connect_timeout,
            'options': '-c statement_timeout=12000 -c lock_timeout=12000',
        }

    def test_fix_wal_level_requires_restart(self, streamer_config):
        database = FakePostgres(wal_level='replica')
        handler = postgres_handler(database, streamer_config)

        assert not handler.validate(self.profile()).ready
        report = handler.fix(self.profile())

        assert "ALTER SYSTEM SET wal_level = 'logical'" in database.writes
        assert report.ready
        assert step(report, 'WAL Level').status == StepStatus.WARNING
        assert step(report, 'Fix WAL Level').status == StepStatus.WARNING
        assert 'RESTART REQUIRED' in step(report, 'Fix WAL Level').message
        assert step(report, 'Restart Required').status == StepStatus.WARNING

    def test_non_superuser_cannot_be_fixed(self, streamer_config):
        database = FakePostgres(superuser=False)
        report = postgres_handler(database, streamer_config).fix(self.profile())

        permissions = step(report, 'User Permissions')
        assert permissions.status == StepStatus.ERROR
        assert not permissions.fixable
        assert not report.ready
        assert database.writes == []

    def test_missing_role(self, streamer_config):
        report = postgres_handler(FakePostgres(superuser=None), streamer_config).validate(self.profile())
        assert "not found" in step(report, 'User Permissions').message

    def test_zero_slots(self, streamer_config):
        report = postgres_handler(FakePostgres(max_replication_slots='0'), streamer_config).validate(self.profile())
        assert step(report, 'Max Replication Slots').status == StepStatus.ERROR

    def test_prepare_tolerates_per_table_failures(self, streamer_config):
        database = FakePostgres(
            tables=[('public', 'customers'), ('sales', 'orders')],
            failing_tables=[('sales', 'orders')],
        )
        failed = postgres_handler(database, streamer_config).prepare_for_connector(self.profile())

        assert failed == ['sales.orders']
        assert 'ALTER TABLE "public"."customers" REPLICA IDENTITY FULL' in database.writes

    def test_capture_config(self, streamer_config):
        profile = self.profile()
        config = postgres_handler(FakePostgres(), streamer_config).get_capture_config(profile)

        assert config['connector.class'] == 'io.debezium.connector.postgresql.PostgresConnector'
        assert config['database.dbname'] == 'inventory'
        assert config['plugin.name'] == 'pgoutput'
        assert config['slot.name'] == f'debezium_{profile.id.hex}'
        assert config['publication.name'] == f'dbz_publication_{profile.id.hex}'
        assert config['topic.prefix'] == str(profile.id)


class TestRegistry:

    @pytest.mark.parametrize('engine_type, handler_class', [
        ('mysql', MySQLCapabilityHandler),
        ('postgres', PostgresCapabilityHandler),
        ('PostgreSQL', PostgresCapabilityHandler),
    ])
    def test_lookup(self, engine_type, handler_class, streamer_config):
        assert isinstance(get_capability_handler(engine_type, streamer_config), handler_class)

    def test_unsupported(self, streamer_config):
        with pytest.raises(UnsupportedEngineError):
            get_capability_handler('oracle', streamer_config)
