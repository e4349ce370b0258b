"""
Celery configuration for Django project
"""
import os
from celery import Celery
from celery.schedules import crontab

# Set default Django settings
os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'cdcstreamer.settings')

app = Celery('cdcstreamer')

# Load config from Django settings with CELERY_ prefix
app.config_from_object('django.conf:settings', namespace='CELERY')

# Auto-discover tasks from all installed apps
app.autodiscover_tasks()

app.conf.beat_schedule = {
    # Reconcile capture jobs left behind by best-effort unregistration
    'sweep-orphaned-connectors': {
        'task': 'streamer.tasks.sweep_orphaned_connectors',
        'schedule': crontab(minute='*/15'),
    },
}

app.conf.task_routes = {
    'streamer.tasks.*': {'queue': 'celery'},
}
