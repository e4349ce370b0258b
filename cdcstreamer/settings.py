"""
Django settings for the cdcstreamer project.

Every external endpoint is read from the environment so the same image can
run on a laptop (localhost broker) and inside the docker network.
"""
import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent


def env_bool(name, default=False):
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


SECRET_KEY = os.environ.get('DJANGO_SECRET_KEY', 'django-insecure-cdc-streamer-dev-key')

DEBUG = env_bool('DJANGO_DEBUG', True)

ALLOWED_HOSTS = [h for h in os.environ.get('DJANGO_ALLOWED_HOSTS', 'localhost,127.0.0.1').split(',') if h]

INSTALLED_APPS = [
    'django.contrib.contenttypes',
    'django.contrib.auth',
    'django.contrib.staticfiles',
    'streamer',
]

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.middleware.csrf.CsrfViewMiddleware',
]

ROOT_URLCONF = 'cdcstreamer.urls'

TEMPLATES = [
    {
        'BACKEND': 'django.template.backends.django.DjangoTemplates',
        'DIRS': [],
        'APP_DIRS': True,
        'OPTIONS': {'context_processors': []},
    },
]

WSGI_APPLICATION = 'cdcstreamer.wsgi.application'

DATABASES = {
    'default': {
        'ENGINE': os.environ.get('DJANGO_DB_ENGINE', 'django.db.backends.sqlite3'),
        'NAME': os.environ.get('DJANGO_DB_NAME', str(BASE_DIR / 'cdcstreamer.sqlite3')),
        'USER': os.environ.get('DJANGO_DB_USER', ''),
        'PASSWORD': os.environ.get('DJANGO_DB_PASSWORD', ''),
        'HOST': os.environ.get('DJANGO_DB_HOST', ''),
        'PORT': os.environ.get('DJANGO_DB_PORT', ''),
    }
}

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

# Orphan-sweep candidates persist here between beat runs; point CACHE_URL at redis for multiple workers
CACHE_URL = os.environ.get('CACHE_URL')
CACHES = {
    'default': (
        {'BACKEND': 'django.core.cache.backends.redis.RedisCache', 'LOCATION': CACHE_URL}
        if CACHE_URL else
        {'BACKEND': 'django.core.cache.backends.locmem.LocMemCache'}
    ),
}

LANGUAGE_CODE = 'en-us'
TIME_ZONE = 'UTC'
USE_I18N = True
USE_TZ = True

STATIC_URL = 'static/'

# Fernet key material for source database passwords
DB_PASSWORD_ENCRYPTION_KEY = os.environ.get('DB_PASSWORD_ENCRYPTION_KEY', SECRET_KEY)

# ====================================
# CDC STREAMER
# ====================================
CDC_STREAMER = {
    # Kafka Connect REST API (capture service)
    'KAFKA_CONNECT_URL': os.environ.get('KAFKA_CONNECT_URL', 'http://localhost:8083'),
    # Broker as seen from this process
    'KAFKA_BOOTSTRAP_SERVERS': os.environ.get('KAFKA_BROKER', 'localhost:9092'),
    # Broker as seen from inside the Kafka Connect container (schema history)
    'KAFKA_INTERNAL_SERVERS': os.environ.get('KAFKA_INTERNAL_SERVERS', 'kafka:29092'),
    # What localhost/127.0.0.1 means for the capture service
    'CAPTURE_HOST_ALIAS': os.environ.get('CAPTURE_HOST_ALIAS', 'host.docker.internal'),
    'REQUEST_TIMEOUT': float(os.environ.get('CDC_REQUEST_TIMEOUT', '30')),
    'DATABASE_CONNECT_TIMEOUT': int(os.environ.get('CDC_DB_CONNECT_TIMEOUT', '10')),
    # Seconds any single validation/fix/prepare statement may run or wait on a lock
    'DATABASE_STATEMENT_TIMEOUT': int(os.environ.get('CDC_DB_STATEMENT_TIMEOUT', '30')),
    'STREAM_POLL_TIMEOUT': float(os.environ.get('CDC_STREAM_POLL_TIMEOUT', '0.5')),
    'STREAM_CANCEL_GRACE': float(os.environ.get('CDC_STREAM_CANCEL_GRACE', '5')),
    'STREAM_KEEPALIVE_INTERVAL': float(os.environ.get('CDC_STREAM_KEEPALIVE', '15')),
    'STREAM_DELIVER_UNRECOGNIZED': env_bool('CDC_STREAM_DELIVER_UNRECOGNIZED', False),
    'FIX_SETTLE_SECONDS': float(os.environ.get('CDC_FIX_SETTLE_SECONDS', '2')),
}

# ====================================
# CELERY
# ====================================
CELERY_BROKER_URL = os.environ.get('CELERY_BROKER_URL', 'redis://localhost:6379/0')
CELERY_RESULT_BACKEND = os.environ.get('CELERY_RESULT_BACKEND', 'redis://localhost:6379/0')
CELERY_ACCEPT_CONTENT = ['json']
CELERY_TASK_SERIALIZER = 'json'
CELERY_RESULT_SERIALIZER = 'json'
CELERY_TIMEZONE = TIME_ZONE
CELERY_TASK_ALWAYS_EAGER = env_bool('CELERY_TASK_ALWAYS_EAGER', False)

# ====================================
# LOGGING
# ====================================
LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'verbose': {
            'format': '{asctime} [{levelname}] {name}: {message}',
            'style': '{',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'verbose',
        },
    },
    'root': {
        'handlers': ['console'],
        'level': 'WARNING',
    },
    'loggers': {
        'streamer': {'handlers': ['console'], 'level': LOG_LEVEL, 'propagate': False},
        'cdcstreamer': {'handlers': ['console'], 'level': LOG_LEVEL, 'propagate': False},
        'celery': {'handlers': ['console'], 'level': 'INFO', 'propagate': False},
        'django.request': {'handlers': ['console'], 'level': 'WARNING', 'propagate': False},
    },
}
