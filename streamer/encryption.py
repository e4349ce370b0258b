"""
At-rest encryption of source database passwords (Fernet).

The key is derived from settings.DB_PASSWORD_ENCRYPTION_KEY, so rotating
that setting makes previously stored tokens unreadable.
"""
import base64
import hashlib
import logging
from functools import lru_cache

from cryptography.fernet import Fernet, InvalidToken
from django.conf import settings

logger = logging.getLogger(__name__)

# Fernet tokens are urlsafe base64 and start with the version byte 0x80
FERNET_TOKEN_PREFIX = 'gAAAAA'


def get_fernet_key(secret=None):
    """32-byte urlsafe-base64 key derived from the configured secret"""
    secret = settings.DB_PASSWORD_ENCRYPTION_KEY if secret is None else secret
    return base64.urlsafe_b64encode(hashlib.sha256(secret.encode()).digest())


@lru_cache(maxsize=4)
def _cipher(secret):
    return Fernet(get_fernet_key(secret))


def _decrypt(token):
    return _cipher(settings.DB_PASSWORD_ENCRYPTION_KEY).decrypt(token.encode()).decode()


def is_encrypted(value):
    """True when `value` is a token that decrypts under the configured key"""
    if not value or not value.startswith(FERNET_TOKEN_PREFIX):
        return False
    try:
        _decrypt(value)
    except InvalidToken:
        return False
    return True


def encrypt_password(plain_password):
    """
    Encrypt a source database password for storage.

    Returns:
        str: Fernet token, or "" for an empty password
    """
    if not plain_password:
        return ""
    return _cipher(settings.DB_PASSWORD_ENCRYPTION_KEY).encrypt(plain_password.encode()).decode()


def decrypt_password(token):
    """
    Decrypt a stored password token.

    A token that does not verify under the configured key is handed back
    unchanged (rows written before encryption, or under another key).
    """
    if not token:
        return ""
    try:
        return _decrypt(token)
    except InvalidToken:
        logger.warning("Stored password could not be decrypted with the configured key; using it as plain text")
        return token


def reveal_password(value):
    """Plain text for `value`, whether it is stored encrypted or not"""
    if not value:
        return ""
    try:
        return _decrypt(value)
    except InvalidToken:
        return value
