"""
Base capability handler for CDC source databases.

A handler knows how to check and repair one engine's replication settings,
prepare it for a capture connector and build the connector configuration.
"""

import logging
import time
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, NamedTuple, Optional

from sqlalchemy import create_engine, text
from sqlalchemy.engine import URL
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import NullPool

from cdcstreamer.config import StreamerConfig
from streamer import metrics
from streamer.exceptions import DatabaseConnectionError
from streamer.logging_utils import log_database_connection, log_validation_report

logger = logging.getLogger(__name__)

LOOPBACK_HOSTS = ('localhost', '127.0.0.1')
CONNECTIVITY_STEP = 'Database Connection'
RESTART_STEP = 'Restart Required'

JSON_CONVERTER = 'org.apache.kafka.connect.json.JsonConverter'


class StepStatus:
    SUCCESS = 'success'
    WARNING = 'warning'
    ERROR = 'error'


@dataclass(frozen=True)
class ValidationStep:
    step: str
    status: str
    message: str
    remediation: Optional[str] = None
    fixable: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            'step': self.step,
            'status': self.status,
            'message': self.message,
            'remediation': self.remediation,
            'fixable': self.fixable,
        }


@dataclass
class ValidationReport:
    steps: List[ValidationStep] = field(default_factory=list)

    @property
    def ready(self) -> bool:
        return not any(step.status == StepStatus.ERROR for step in self.steps)

    @property
    def errors(self) -> List[ValidationStep]:
        return [step for step in self.steps if step.status == StepStatus.ERROR]

    @property
    def warnings(self) -> List[ValidationStep]:
        return [step for step in self.steps if step.status == StepStatus.WARNING]

    @property
    def can_fix(self) -> bool:
        return any(step.fixable for step in self.errors)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'ready': self.ready,
            'can_fix': self.can_fix,
            'steps': [step.to_dict() for step in self.steps],
        }


class ReadinessCheck(NamedTuple):
    """
    One independent readiness check.

    check(conn, profile) returns a ValidationStep. fix(conn, profile) issues
    the corrective statement; when restart_required is set the change only
    takes effect after the database server restarts.
    """
    name: str
    check: Callable
    fix: Optional[Callable] = None
    fix_description: str = ''
    restart_required: bool = False


def quote_identifier(name: str) -> str:
    return '"' + name.replace('"', '""') + '"'


class BaseCapabilityHandler(ABC):
    """
    Abstract base class for engine capability handlers.

    Subclasses declare their checks and their engine-specific connector keys;
    validation, repair and the common connector keys live here.
    """

    def __init__(self, config: Optional[StreamerConfig] = None, engine_factory: Callable = create_engine):
        self.config = config or StreamerConfig.from_settings()
        self.engine_factory = engine_factory

    @property
    @abstractmethod
    def engine_type(self) -> str:
        """Return database type identifier."""
        pass

    @property
    @abstractmethod
    def display_name(self) -> str:
        pass

    @property
    @abstractmethod
    def drivername(self) -> str:
        """SQLAlchemy driver name, e.g. mysql+pymysql"""
        pass

    @property
    @abstractmethod
    def connector_class(self) -> str:
        pass

    @abstractmethod
    def checks(self) -> List[ReadinessCheck]:
        """Ordered readiness checks; all of them always run"""
        pass

    @abstractmethod
    def engine_capture_config(self, profile) -> Dict[str, str]:
        """Connector keys specific to this engine"""
        pass

    def prepare_for_connector(self, profile) -> None:
        """One-time preparation before the connector is registered"""
        logger.info(f"{self.display_name} connector ready (no preparation needed)")

    # ------------------------------------------------------------------
    # Connections
    # ------------------------------------------------------------------

    def build_url(self, profile) -> URL:
        return URL.create(
            drivername=self.drivername,
            username=profile.username,
            password=profile.get_decrypted_password(),
            host=profile.host,
            port=int(profile.port),
            database=profile.database,
        )

    def connect_args(self) -> Dict[str, Any]:
        """DBAPI keyword arguments; engines add their statement timeouts"""
        return {'connect_timeout': self.config.database_connect_timeout}

    @contextmanager
    def connect(self, profile):
        """
        Short-lived AUTOCOMMIT connection to the source database.

        Raises:
            DatabaseConnectionError: If connection fails
        """
        start_time = time.time()
        engine = self.engine_factory(
            self.build_url(profile),
            poolclass=NullPool,
            isolation_level='AUTOCOMMIT',
            connect_args=self.connect_args(),
        )
        try:
            conn = engine.connect()
        except SQLAlchemyError as e:
            engine.dispose()
            metrics.database_connections_total.labels(status='failed', database_type=self.engine_type).inc()
            log_database_connection(self.engine_type, profile.host, 'failed', time.time() - start_time, e)
            raise DatabaseConnectionError(f"Failed to connect to {self.display_name}: {e}") from e

        metrics.database_connections_total.labels(status='success', database_type=self.engine_type).inc()
        log_database_connection(self.engine_type, profile.host, 'success', time.time() - start_time)
        try:
            yield conn
        finally:
            conn.close()
            engine.dispose()

    @staticmethod
    def fetch_all(conn, sql: str, params: Optional[Dict[str, Any]] = None) -> List:
        return list(conn.execute(text(sql), params or {}).fetchall())

    @staticmethod
    def fetch_scalar(conn, sql: str, params: Optional[Dict[str, Any]] = None):
        return conn.execute(text(sql), params or {}).scalar()

    @staticmethod
    def execute(conn, sql: str, params: Optional[Dict[str, Any]] = None):
        conn.execute(text(sql), params or {})

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def _run_check(self, check: ReadinessCheck, conn, profile) -> ValidationStep:
        try:
            step = check.check(conn, profile)
        except SQLAlchemyError as e:
            step = ValidationStep(check.name, StepStatus.ERROR, f"Failed to check {check.name.lower()}", str(e))

        if step.status == StepStatus.ERROR and check.fix is not None:
            return ValidationStep(step.step, step.status, step.message, step.remediation, fixable=True)
        return step

    def _unreachable_report(self, profile, error: Exception) -> ValidationReport:
        steps = [ValidationStep(
            CONNECTIVITY_STEP,
            StepStatus.ERROR,
            f"Failed to connect to {self.display_name}",
            str(error.__cause__ or error),
        )]
        for check in self.checks():
            steps.append(ValidationStep(check.name, StepStatus.ERROR, 'Skipped: no database connection'))
        return ValidationReport(steps)

    def _validate(self, profile) -> ValidationReport:
        checks = self.checks()
        try:
            with self.connect(profile) as conn:
                steps = [ValidationStep(CONNECTIVITY_STEP, StepStatus.SUCCESS, f"Successfully connected to {self.display_name}")]
                for check in checks:
                    steps.append(self._run_check(check, conn, profile))
        except DatabaseConnectionError as e:
            return self._unreachable_report(profile, e)
        return ValidationReport(steps)

    def validate(self, profile) -> ValidationReport:
        """Run every readiness check and report each one"""
        report = self._validate(profile)
        metrics.readiness_validations_total.labels(
            database_type=self.engine_type,
            outcome='ready' if report.ready else 'not_ready',
            mode='validate',
        ).inc()
        log_validation_report(self.engine_type, profile.host, report)
        return report

    # ------------------------------------------------------------------
    # Repair
    # ------------------------------------------------------------------

    def _apply_fix(self, check: ReadinessCheck, conn, profile) -> ValidationStep:
        step_name = f"Fix {check.name}"
        try:
            check.fix(conn, profile)
        except SQLAlchemyError as e:
            metrics.readiness_fixes_applied_total.labels(self.engine_type, check.name, 'failed').inc()
            logger.error(f"{step_name} failed on {profile.host}: {e}")
            return ValidationStep(step_name, StepStatus.ERROR, f"Failed to {check.fix_description}", str(e))

        metrics.readiness_fixes_applied_total.labels(self.engine_type, check.name, 'applied').inc()
        logger.info(f"{step_name} applied on {profile.host}")
        if check.restart_required:
            return ValidationStep(
                step_name,
                StepStatus.WARNING,
                f"{check.fix_description[:1].upper()}{check.fix_description[1:]} - RESTART REQUIRED",
                f"{self.display_name} must be restarted for this change to take effect",
            )
        return ValidationStep(step_name, StepStatus.SUCCESS, f"Successfully applied: {check.fix_description}")

    def fix(self, profile) -> ValidationReport:
        """
        Apply the corrective action of every failing check, then validate again.

        The returned report is the second validation pass. Checks whose fix
        only takes effect after a server restart are reported as warnings.
        """
        checks = self.checks()
        fix_steps = []
        pending_restart = set()

        try:
            with self.connect(profile) as conn:
                for check in checks:
                    step = self._run_check(check, conn, profile)
                    if step.status != StepStatus.ERROR or check.fix is None:
                        continue
                    fix_step = self._apply_fix(check, conn, profile)
                    fix_steps.append(fix_step)
                    if fix_step.status == StepStatus.WARNING:
                        pending_restart.add(check.name)
        except DatabaseConnectionError as e:
            report = self._unreachable_report(profile, e)
            metrics.readiness_validations_total.labels(self.engine_type, 'not_ready', 'fix').inc()
            return report

        if fix_steps and self.config.fix_settle_seconds > 0:
            time.sleep(self.config.fix_settle_seconds)

        final = self._validate(profile)
        steps = []
        for step in final.steps:
            if step.step in pending_restart and step.status == StepStatus.ERROR:
                step = ValidationStep(
                    step.step,
                    StepStatus.WARNING,
                    f"{step.message} (change applied, pending restart)",
                    step.remediation,
                )
            steps.append(step)
        steps.extend(fix_steps)
        if pending_restart:
            steps.append(ValidationStep(
                RESTART_STEP,
                StepStatus.WARNING,
                f"{self.display_name} restart required for configuration changes",
                f"Restart {self.display_name} to apply: {', '.join(sorted(pending_restart))}",
            ))

        report = ValidationReport(steps)
        metrics.readiness_validations_total.labels(
            self.engine_type, 'ready' if report.ready else 'not_ready', 'fix'
        ).inc()
        log_validation_report(self.engine_type, profile.host, report)
        return report

    # ------------------------------------------------------------------
    # Capture connector configuration
    # ------------------------------------------------------------------

    def translate_host(self, host: str) -> str:
        """Loopback addresses as seen from inside the Kafka Connect container"""
        if host in LOOPBACK_HOSTS:
            logger.warning(
                f"Converting {host} to {self.config.capture_host_alias} for Docker networking; "
                f"{self.display_name} may need to listen on 0.0.0.0"
            )
            return self.config.capture_host_alias
        return host

    def get_capture_config(self, profile) -> Dict[str, str]:
        config = {
            'connector.class': self.connector_class,
            'tasks.max': '1',
            'database.hostname': self.translate_host(profile.host),
            'database.port': str(profile.port),
            'database.user': profile.username,
            'database.password': profile.get_decrypted_password(),
            'topic.prefix': profile.topic_prefix,

            # {schema, payload} envelopes on both key and value
            'key.converter': JSON_CONVERTER,
            'key.converter.schemas.enable': 'true',
            'value.converter': JSON_CONVERTER,
            'value.converter.schemas.enable': 'true',

            # Route all table changes into a single topic
            'transforms': 'route',
            'transforms.route.type': 'org.apache.kafka.connect.transforms.RegexRouter',
            'transforms.route.regex': r'([^.]+)\.([^.]+)\.([^.]+)',
            'transforms.route.replacement': '$1.all-changes',

            # Data type handling - convert decimals to numbers
            'decimal.handling.mode': 'double',
            'time.precision.mode': 'adaptive_time_microseconds',
        }
        config.update(self.engine_capture_config(profile))
        return config
