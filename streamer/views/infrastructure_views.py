import logging

from django.http import HttpResponse, JsonResponse
from django.views.decorators.http import require_GET
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from cdcstreamer.utils.debezium import DebeziumConnectorManager
from streamer.models import ConnectionProfile

logger = logging.getLogger(__name__)


def get_connector_manager():
    return DebeziumConnectorManager()


@require_GET
def infrastructure_status(request):
    """Kafka Connect health plus the connector state of every profile."""
    manager = get_connector_manager()
    healthy, error = manager.check_kafka_connect_health()

    connectors = manager.list_connectors() if healthy else []
    registered = set(connectors)

    profiles = []
    for profile in ConnectionProfile.objects.all():
        state = None
        if profile.connector_name in registered:
            exists, status = manager.get_connector_status(profile.connector_name)
            if exists:
                state = status.get('connector', {}).get('state', 'UNKNOWN')
        profiles.append({
            'id': str(profile.id),
            'name': profile.name,
            'connector_name': profile.connector_name,
            'registered': profile.connector_name in registered,
            'state': state,
        })

    return JsonResponse({
        'success': healthy,
        'kafka_connect': {
            'url': manager.kafka_connect_url,
            'healthy': healthy,
            'error': error,
        },
        'connectors': connectors,
        'profiles': profiles,
    })


def metrics_view(request):
    """Prometheus scrape endpoint."""
    return HttpResponse(generate_latest(), content_type=CONTENT_TYPE_LATEST)
