from .infrastructure_views import infrastructure_status, metrics_view
from .profile_views import (
    fix_connection,
    profile_collection,
    profile_detail,
    validate_connection,
)
from .stream_views import stream_events

__all__ = [
    'fix_connection',
    'infrastructure_status',
    'metrics_view',
    'profile_collection',
    'profile_detail',
    'stream_events',
    'validate_connection',
]
