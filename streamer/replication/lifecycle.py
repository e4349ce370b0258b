"""
Connector lifecycle: validate -> prepare -> register -> persist, and
delete -> unregister.

A profile row is only written after the source passed readiness
validation and Kafka Connect accepted the connector, so every persisted
profile has a live capture connector behind it.
"""

import logging
import threading
import time
from contextlib import contextmanager
from typing import Dict, List, NamedTuple, Optional

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import transaction
from kombu.exceptions import OperationalError as BrokerUnavailable
from sqlalchemy.exc import SQLAlchemyError

from cdcstreamer.config import StreamerConfig
from cdcstreamer.utils.debezium import DebeziumConnectorManager, dumps_config
from streamer import metrics
from streamer.exceptions import (
    CDCStreamerException,
    ProfileNotFound,
    ReadinessValidationError,
    RegistrationError,
)
from streamer.handlers import BaseCapabilityHandler, ValidationReport, get_capability_handler
from streamer.logging_utils import (
    cdc_logger,
    log_connector_deleted,
    log_connector_error,
    log_connector_registered,
    log_operation,
)
from streamer.models import ConnectionProfile

logger = logging.getLogger(__name__)

_locks_guard = threading.Lock()
# profile id -> [lock, number of threads holding or waiting on it]
_profile_locks: Dict[str, list] = {}


@contextmanager
def profile_lock(profile_id):
    """Serialize validate/fix/save/delete for one profile id"""
    key = str(profile_id)
    with _locks_guard:
        entry = _profile_locks.setdefault(key, [threading.RLock(), 0])
        entry[1] += 1
    try:
        with entry[0]:
            yield
    finally:
        with _locks_guard:
            entry[1] -= 1
            if entry[1] == 0:
                del _profile_locks[key]


class SaveResult(NamedTuple):
    profile: ConnectionProfile
    action: str  # created | updated
    report: ValidationReport


class RemovalResult(NamedTuple):
    profile_id: str
    connector_name: str
    unregistered: bool
    error: Optional[str]


class ConnectorLifecycleManager:

    def __init__(
        self,
        config: Optional[StreamerConfig] = None,
        gateway: Optional[DebeziumConnectorManager] = None,
        retry_unregister: bool = True,
    ):
        self.config = config or StreamerConfig.from_settings()
        self.gateway = gateway or DebeziumConnectorManager(self.config)
        self.retry_unregister = retry_unregister

    def handler_for(self, profile: ConnectionProfile) -> BaseCapabilityHandler:
        """Resolve the engine handler once per profile instance"""
        handler = getattr(profile, 'capability_handler', None)
        if handler is None:
            handler = get_capability_handler(profile.engine_type, self.config)
            profile.capability_handler = handler
        return handler

    # ------------------------------------------------------------------
    # Readiness
    # ------------------------------------------------------------------

    def validate_profile(self, profile: ConnectionProfile) -> ValidationReport:
        with profile_lock(profile.pk):
            return self.handler_for(profile).validate(profile)

    def fix_profile(self, profile: ConnectionProfile) -> ValidationReport:
        with profile_lock(profile.pk):
            return self.handler_for(profile).fix(profile)

    # ------------------------------------------------------------------
    # Create / update
    # ------------------------------------------------------------------

    def save_profile(self, profile: ConnectionProfile) -> SaveResult:
        """
        Register the capture connector for `profile` and persist it.

        Raises:
            ReadinessValidationError: the source failed readiness checks
            RegistrationError: Kafka Connect rejected or was unreachable
        """
        profile_id = str(profile.pk)
        start_time = time.time()

        with profile_lock(profile_id), log_operation(
            cdc_logger, 'save_profile', profile_id=profile_id, engine_type=profile.engine_type
        ):
            handler = self.handler_for(profile)

            report = handler.validate(profile)
            if not report.ready:
                raise ReadinessValidationError(report, handler.display_name)

            self._prepare(handler, profile)

            capture_config = handler.get_capture_config(profile)
            logger.debug(f"Connector config for {profile.connector_name}:\n{dumps_config(capture_config)}")

            try:
                action = self.gateway.register_connector(profile.connector_name, capture_config)
            except RegistrationError as e:
                metrics.debezium_connectors_total.labels(operation='register', status='failed').inc()
                log_connector_error(profile_id, profile.connector_name, e, operation='connector_register')
                raise

            metrics.debezium_connectors_total.labels(operation=action, status='success').inc()
            self._persist(profile)

        duration = time.time() - start_time
        metrics.debezium_connector_registration_duration.observe(duration)
        log_connector_registered(profile_id, profile.connector_name, action, duration)
        return SaveResult(profile, action, report)

    def _prepare(self, handler: BaseCapabilityHandler, profile: ConnectionProfile):
        try:
            failed = handler.prepare_for_connector(profile)
        except (CDCStreamerException, SQLAlchemyError) as e:
            logger.warning(f"Preparation of {profile.host}/{profile.database} did not complete: {e}")
            return
        if failed:
            logger.warning(f"Preparation skipped {len(failed)} object(s): {', '.join(failed)}")

    @transaction.atomic
    def _persist(self, profile: ConnectionProfile):
        existing = (
            ConnectionProfile.objects.select_for_update()
            .filter(pk=profile.pk)
            .values_list('created_at', flat=True)
            .first()
        )
        if existing is not None:
            profile.created_at = existing
            profile.save(force_update=True)
        else:
            profile.save(force_insert=True)

    # ------------------------------------------------------------------
    # Delete
    # ------------------------------------------------------------------

    def delete_profile(self, profile_id) -> RemovalResult:
        """
        Delete the profile, then best-effort unregister its connector.

        The deletion stands even when Kafka Connect cannot be reached; the
        unregistration is then retried in the background.

        Raises:
            ProfileNotFound: no profile with that id
        """
        with profile_lock(profile_id):
            profile = self.get_profile(profile_id)
            connector_name = profile.connector_name
            profile_id = str(profile.pk)

            profile.delete()
            logger.info(f"Deleted connection profile {profile_id}")

            start_time = time.time()
            ok, error = self.gateway.delete_connector(connector_name)

        if ok:
            metrics.debezium_connectors_total.labels(operation='delete', status='success').inc()
            log_connector_deleted(profile_id, connector_name, time.time() - start_time)
            return RemovalResult(profile_id, connector_name, True, None)

        metrics.debezium_connectors_total.labels(operation='delete', status='failed').inc()
        log_connector_error(profile_id, connector_name, error, operation='connector_delete')
        if self.retry_unregister:
            self._schedule_unregister(connector_name)
        return RemovalResult(profile_id, connector_name, False, error)

    def _schedule_unregister(self, connector_name: str):
        from streamer.tasks import unregister_connector
        try:
            unregister_connector.delay(connector_name)
        except BrokerUnavailable as e:
            logger.error(
                f"Could not queue unregistration of {connector_name}: {e}; "
                "the orphan sweep will remove it"
            )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def list_profiles(self) -> List[ConnectionProfile]:
        return list(ConnectionProfile.objects.all())

    def get_profile(self, profile_id) -> ConnectionProfile:
        try:
            return ConnectionProfile.objects.get(pk=profile_id)
        except (ConnectionProfile.DoesNotExist, DjangoValidationError, ValueError):
            raise ProfileNotFound(f"Connection profile {profile_id} not found")
