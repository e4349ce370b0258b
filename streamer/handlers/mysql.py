"""
MySQL capability handler: binlog settings, replication grants, connector config.
"""

import logging
import uuid
from typing import Any, Dict, List, Optional

from .base import BaseCapabilityHandler, ReadinessCheck, StepStatus, ValidationStep

logger = logging.getLogger(__name__)

REQUIRED_GRANTS = (
    'SELECT',
    'RELOAD',
    'SHOW DATABASES',
    'REPLICATION SLAVE',
    'REPLICATION CLIENT',
)

# database.server.id must be unique among the replicas of a MySQL server
SERVER_ID_MIN = 184054
SERVER_ID_SPAN = 2 ** 31 - SERVER_ID_MIN


def server_id_for(profile_id) -> int:
    """Stable replica server id derived from the profile id"""
    return SERVER_ID_MIN + uuid.UUID(str(profile_id)).int % SERVER_ID_SPAN


class MySQLCapabilityHandler(BaseCapabilityHandler):

    engine_type = 'mysql'
    display_name = 'MySQL'
    drivername = 'mysql+pymysql'
    connector_class = 'io.debezium.connector.mysql.MySqlConnector'

    def connect_args(self) -> Dict[str, Any]:
        timeout = self.config.database_statement_timeout
        return dict(super().connect_args(), read_timeout=timeout, write_timeout=timeout)

    def checks(self) -> List[ReadinessCheck]:
        return [
            ReadinessCheck('Binary Logging', self.check_binary_logging),
            ReadinessCheck(
                'Binlog Format',
                self.check_binlog_format,
                self.fix_binlog_format,
                fix_description="set binlog_format to ROW",
            ),
            ReadinessCheck(
                'Binlog Row Image',
                self.check_binlog_row_image,
                self.fix_binlog_row_image,
                fix_description="set binlog_row_image to FULL",
            ),
            ReadinessCheck(
                'User Permissions',
                self.check_user_permissions,
                self.fix_user_permissions,
                fix_description="grant replication permissions",
            ),
        ]

    def _variable(self, conn, name: str) -> Optional[str]:
        rows = self.fetch_all(conn, "SHOW VARIABLES LIKE :name", {'name': name})
        if not rows:
            return None
        return str(rows[0][1])

    # ---- checks ----

    def check_binary_logging(self, conn, profile) -> ValidationStep:
        value = self._variable(conn, 'log_bin')
        if value is None or value.upper() not in ('ON', '1'):
            return ValidationStep(
                'Binary Logging',
                StepStatus.ERROR,
                'Binary logging is not enabled',
                'Start MySQL with --log-bin (or log_bin in my.cnf) and restart the server',
            )
        return ValidationStep('Binary Logging', StepStatus.SUCCESS, 'Binary logging is enabled')

    def check_binlog_format(self, conn, profile) -> ValidationStep:
        value = self._variable(conn, 'binlog_format')
        if value is None:
            return ValidationStep(
                'Binlog Format',
                StepStatus.ERROR,
                'Binary logging is not enabled',
                'MySQL must have binary logging enabled for CDC',
            )
        if value.upper() != 'ROW':
            return ValidationStep(
                'Binlog Format',
                StepStatus.ERROR,
                f'Binlog format is {value}, must be ROW',
                "Run: SET GLOBAL binlog_format = 'ROW';",
            )
        return ValidationStep('Binlog Format', StepStatus.SUCCESS, 'Binlog format is ROW')

    def check_binlog_row_image(self, conn, profile) -> ValidationStep:
        value = self._variable(conn, 'binlog_row_image')
        if value is None:
            return ValidationStep(
                'Binlog Row Image',
                StepStatus.WARNING,
                'binlog_row_image not found (may not be supported)',
                'This is optional but recommended',
            )
        if value.upper() != 'FULL':
            return ValidationStep(
                'Binlog Row Image',
                StepStatus.ERROR,
                f'Binlog row image is {value}, should be FULL',
                "Run: SET GLOBAL binlog_row_image = 'FULL';",
            )
        return ValidationStep('Binlog Row Image', StepStatus.SUCCESS, 'Binlog row image is FULL')

    def check_user_permissions(self, conn, profile) -> ValidationStep:
        rows = self.fetch_all(conn, "SHOW GRANTS FOR CURRENT_USER()")
        grants = ' '.join(str(row[0]) for row in rows).upper()

        if 'ALL PRIVILEGES ON *.*' in grants:
            missing = []
        else:
            missing = [perm for perm in REQUIRED_GRANTS if perm not in grants]

        if missing:
            return ValidationStep(
                'User Permissions',
                StepStatus.ERROR,
                f"Missing permissions: {', '.join(missing)}",
                f"Run: GRANT {', '.join(REQUIRED_GRANTS)} ON *.* TO '{profile.username}'@'%'; FLUSH PRIVILEGES;",
            )
        return ValidationStep('User Permissions', StepStatus.SUCCESS, 'User has all required permissions')

    # ---- fixes ----

    def fix_binlog_format(self, conn, profile):
        self.execute(conn, "SET GLOBAL binlog_format = 'ROW'")

    def fix_binlog_row_image(self, conn, profile):
        self.execute(conn, "SET GLOBAL binlog_row_image = 'FULL'")

    def fix_user_permissions(self, conn, profile):
        self.execute(
            conn,
            f"GRANT {', '.join(REQUIRED_GRANTS)} ON *.* TO :username@'%'",
            {'username': profile.username},
        )
        self.execute(conn, "FLUSH PRIVILEGES")

    # ---- connector ----

    def engine_capture_config(self, profile) -> Dict[str, str]:
        database = profile.database
        return {
            'database.server.id': str(server_id_for(profile.pk)),
            'database.include.list': database,
            'table.include.list': f'{database}.*',
            'schema.history.internal.kafka.bootstrap.servers': self.config.kafka_internal_servers,
            'schema.history.internal.kafka.topic': f'schemahistory.{profile.topic_prefix}',
            'include.schema.changes': 'true',
        }
