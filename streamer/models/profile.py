"""
File: streamer/models/profile.py
"""

import uuid

from django.db import models
from django.utils import timezone

from ..encryption import encrypt_password, is_encrypted, reveal_password


class ConnectionProfile(models.Model):
    """A source database registered for change-data-capture"""

    ENGINE_CHOICES = [
        ("mysql", "MySQL"),
        ("postgres", "PostgreSQL"),
    ]

    DEFAULT_PORTS = {
        "mysql": 3306,
        "postgres": 5432,
    }

    # The id names both the Kafka Connect connector and the topic prefix
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    name = models.CharField(max_length=100)
    engine_type = models.CharField(max_length=20, choices=ENGINE_CHOICES, default="mysql")
    host = models.CharField(max_length=255)
    port = models.PositiveIntegerField(default=3306)
    username = models.CharField(max_length=100)
    password = models.CharField(max_length=255)
    database = models.CharField(max_length=100)

    # Timestamps
    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "connection_profiles"
        verbose_name = "Connection Profile"
        verbose_name_plural = "Connection Profiles"
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.name} ({self.get_engine_type_display()} {self.host}:{self.port}/{self.database})"

    def save(self, *args, **kwargs):
        """Encrypt password before storing."""
        if self.password and not is_encrypted(self.password):
            self.password = encrypt_password(self.password)
        super().save(*args, **kwargs)

    def get_decrypted_password(self):
        return reveal_password(self.password)

    @property
    def connector_name(self):
        return str(self.id)

    @property
    def topic_prefix(self):
        return str(self.id)

    def to_dict(self):
        """JSON representation; the password never leaves the server"""
        return {
            'id': str(self.id),
            'name': self.name,
            'engine_type': self.engine_type,
            'host': self.host,
            'port': self.port,
            'username': self.username,
            'database': self.database,
            'connector_name': self.connector_name,
            'topic_prefix': self.topic_prefix,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }
