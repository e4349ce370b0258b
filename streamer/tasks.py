"""
Celery tasks for connector housekeeping
"""
import logging
import uuid

from celery import shared_task
from django.core.cache import cache

from cdcstreamer.utils.debezium import DebeziumConnectorManager
from streamer.models import ConnectionProfile

logger = logging.getLogger(__name__)

ORPHAN_CANDIDATES_KEY = 'streamer:orphan-sweep-candidates'
# four beat intervals
ORPHAN_CANDIDATES_TTL = 60 * 60


def _is_profile_connector(name):
    """Connectors this service registers are named after a profile UUID"""
    try:
        return str(uuid.UUID(name)) == name
    except ValueError:
        return False


@shared_task(bind=True, max_retries=5)
def unregister_connector(self, connector_name):
    """
    Task: Remove a connector whose profile is already deleted
    Retries with exponential backoff while Kafka Connect is unreachable
    """
    if ConnectionProfile.objects.filter(pk=connector_name).exists():
        logger.warning(f"⚠️ Profile {connector_name} exists again, keeping its connector")
        return {'success': False, 'error': 'Profile exists'}

    manager = DebeziumConnectorManager()
    success, error = manager.delete_connector(connector_name)

    if success:
        logger.info(f"✅ Unregistered connector: {connector_name}")
        return {'success': True, 'connector_name': connector_name}

    logger.error(f"❌ Error unregistering connector {connector_name}: {error}")
    try:
        raise self.retry(countdown=30 * (2 ** self.request.retries))
    except self.MaxRetriesExceededError:
        logger.error(f"❌ Max retries exceeded unregistering {connector_name}; left to the orphan sweep")

    return {'success': False, 'error': error}


@shared_task
def sweep_orphaned_connectors():
    """
    Periodic task: delete connectors whose profile no longer exists
    Runs every 15 minutes via Celery Beat

    A connector is only deleted once it was found orphaned on two
    consecutive sweeps; a create between registration and persistence
    is seen orphaned at most once.
    """
    manager = DebeziumConnectorManager()

    is_healthy, error = manager.check_kafka_connect_health()
    if not is_healthy:
        logger.error(f"❌ Kafka Connect is unhealthy: {error}")
        return {'success': False, 'error': error}

    candidates = [name for name in manager.list_connectors() if _is_profile_connector(name)]
    known = {
        str(pk) for pk in ConnectionProfile.objects.filter(pk__in=candidates).values_list('pk', flat=True)
    }
    orphans = [name for name in candidates if name not in known]

    seen_before = set(cache.get(ORPHAN_CANDIDATES_KEY, []))
    confirmed = [name for name in orphans if name in seen_before]
    pending = [name for name in orphans if name not in seen_before]

    removed, failed = [], []
    for name in confirmed:
        success, error = manager.delete_connector(name)
        if success:
            removed.append(name)
        else:
            failed.append({'connector': name, 'error': error})

    # failed deletions stay confirmed for the next run
    cache.set(
        ORPHAN_CANDIDATES_KEY,
        pending + [item['connector'] for item in failed],
        ORPHAN_CANDIDATES_TTL,
    )

    if confirmed:
        logger.warning(f"⚠️ Removed {len(removed)} of {len(confirmed)} orphaned connectors")
    if pending:
        logger.info(f"⏳ {len(pending)} connector(s) without a profile, re-checking on the next sweep")
    if not orphans:
        logger.info(f"✅ No orphaned connectors among {len(candidates)} profile connectors")

    return {
        'success': not failed,
        'checked': len(candidates),
        'removed': removed,
        'pending': pending,
        'failed': failed,
    }
