"""
PostgreSQL capability handler: logical decoding settings, superuser role,
REPLICA IDENTITY preparation, connector config.
"""

import logging
from typing import Any, Dict, List

from sqlalchemy.exc import SQLAlchemyError

from .base import BaseCapabilityHandler, ReadinessCheck, StepStatus, ValidationStep, quote_identifier

logger = logging.getLogger(__name__)

USER_TABLES_SQL = """
    SELECT n.nspname, c.relname
    FROM pg_class c
    JOIN pg_namespace n ON n.oid = c.relnamespace
    WHERE c.relkind = 'r'
      AND n.nspname NOT IN ('pg_catalog', 'information_schema')
      AND n.nspname NOT LIKE 'pg_toast%'
    ORDER BY n.nspname, c.relname
"""


def _as_int(value) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def slot_name_for(profile_id) -> str:
    # slot names: lower-case letters, digits and underscores only
    return f"debezium_{str(profile_id).replace('-', '')}"


def publication_name_for(profile_id) -> str:
    return f"dbz_publication_{str(profile_id).replace('-', '')}"


class PostgresCapabilityHandler(BaseCapabilityHandler):

    engine_type = 'postgres'
    display_name = 'PostgreSQL'
    drivername = 'postgresql+psycopg2'
    connector_class = 'io.debezium.connector.postgresql.PostgresConnector'

    def connect_args(self) -> Dict[str, Any]:
        timeout_ms = self.config.database_statement_timeout * 1000
        options = f'-c statement_timeout={timeout_ms} -c lock_timeout={timeout_ms}'
        return dict(super().connect_args(), options=options)

    def checks(self) -> List[ReadinessCheck]:
        return [
            ReadinessCheck(
                'WAL Level',
                self.check_wal_level,
                self.fix_wal_level,
                fix_description='set wal_level to logical',
                restart_required=True,
            ),
            ReadinessCheck(
                'Max WAL Senders',
                self.check_max_wal_senders,
                self.fix_max_wal_senders,
                fix_description='set max_wal_senders to 10',
                restart_required=True,
            ),
            ReadinessCheck(
                'Max Replication Slots',
                self.check_max_replication_slots,
                self.fix_max_replication_slots,
                fix_description='set max_replication_slots to 10',
                restart_required=True,
            ),
            # cannot be fixed from here, needs a SUPERUSER account
            ReadinessCheck('User Permissions', self.check_user_permissions),
        ]

    # ---- checks ----

    def check_wal_level(self, conn, profile) -> ValidationStep:
        wal_level = self.fetch_scalar(conn, "SHOW wal_level")
        if wal_level != 'logical':
            return ValidationStep(
                'WAL Level',
                StepStatus.ERROR,
                f'WAL level is {wal_level}, must be logical',
                "Run: ALTER SYSTEM SET wal_level = 'logical'; then restart PostgreSQL",
            )
        return ValidationStep('WAL Level', StepStatus.SUCCESS, 'WAL level is logical')

    def check_max_wal_senders(self, conn, profile) -> ValidationStep:
        senders = _as_int(self.fetch_scalar(conn, "SHOW max_wal_senders"))
        if senders < 1:
            return ValidationStep(
                'Max WAL Senders',
                StepStatus.ERROR,
                f'max_wal_senders is {senders}, must be at least 1',
                'Run: ALTER SYSTEM SET max_wal_senders = 10; then restart PostgreSQL',
            )
        return ValidationStep('Max WAL Senders', StepStatus.SUCCESS, f'Max WAL senders is {senders}')

    def check_max_replication_slots(self, conn, profile) -> ValidationStep:
        slots = _as_int(self.fetch_scalar(conn, "SHOW max_replication_slots"))
        if slots < 1:
            return ValidationStep(
                'Max Replication Slots',
                StepStatus.ERROR,
                f'max_replication_slots is {slots}, must be at least 1',
                'Run: ALTER SYSTEM SET max_replication_slots = 10; then restart PostgreSQL',
            )
        return ValidationStep('Max Replication Slots', StepStatus.SUCCESS, f'Max replication slots is {slots}')

    def check_user_permissions(self, conn, profile) -> ValidationStep:
        rows = self.fetch_all(
            conn,
            "SELECT rolsuper FROM pg_roles WHERE rolname = :username",
            {'username': profile.username},
        )
        if not rows:
            return ValidationStep(
                'User Permissions',
                StepStatus.ERROR,
                f"User '{profile.username}' not found",
                'Ensure the user exists in PostgreSQL',
            )
        if not rows[0][0]:
            return ValidationStep(
                'User Permissions',
                StepStatus.ERROR,
                f"User '{profile.username}' must be a SUPERUSER for CDC setup",
                "Use 'postgres' user or another SUPERUSER account. SUPERUSER includes REPLICATION privileges.",
            )
        return ValidationStep(
            'User Permissions',
            StepStatus.SUCCESS,
            'User is SUPERUSER (has all privileges including REPLICATION)',
        )

    # ---- fixes (ALTER SYSTEM cannot run inside a transaction block) ----

    def fix_wal_level(self, conn, profile):
        self.execute(conn, "ALTER SYSTEM SET wal_level = 'logical'")

    def fix_max_wal_senders(self, conn, profile):
        self.execute(conn, "ALTER SYSTEM SET max_wal_senders = 10")

    def fix_max_replication_slots(self, conn, profile):
        self.execute(conn, "ALTER SYSTEM SET max_replication_slots = 10")

    # ---- preparation ----

    def prepare_for_connector(self, profile) -> List[str]:
        """
        Set REPLICA IDENTITY FULL on every user table so updates and deletes
        carry the complete before image.

        Returns the tables that could not be altered; one failing table
        does not stop the others.
        """
        failed = []
        with self.connect(profile) as conn:
            tables = self.fetch_all(conn, USER_TABLES_SQL)
            if not tables:
                logger.warning(f"No user tables found to set REPLICA IDENTITY on {profile.database}")
                return failed

            logger.info(f"Setting REPLICA IDENTITY FULL on {len(tables)} table(s) in {profile.database}")
            for schema_name, table_name in tables:
                display_name = f"{schema_name}.{table_name}"
                try:
                    self.execute(
                        conn,
                        f"ALTER TABLE {quote_identifier(schema_name)}.{quote_identifier(table_name)} "
                        "REPLICA IDENTITY FULL",
                    )
                    logger.debug(f"  REPLICA IDENTITY FULL: {display_name}")
                except SQLAlchemyError as e:
                    logger.error(f"  Failed to set REPLICA IDENTITY on {display_name}: {e}")
                    failed.append(display_name)

        logger.info(f"REPLICA IDENTITY setup complete ({len(tables) - len(failed)}/{len(tables)})")
        return failed

    # ---- connector ----

    def engine_capture_config(self, profile) -> Dict[str, str]:
        return {
            'database.dbname': profile.database,
            'plugin.name': 'pgoutput',
            'publication.autocreate.mode': 'filtered',
            'publication.name': publication_name_for(profile.pk),
            'slot.name': slot_name_for(profile.pk),
            'schema.exclude.list': 'pg_catalog,information_schema',
        }
