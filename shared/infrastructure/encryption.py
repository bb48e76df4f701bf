"""
Symmetric encryption for values stored at rest (venue bank account numbers).

Fernet (AES-128-CBC + HMAC-SHA256) keyed from ``settings.ENCRYPTION_KEY``.
"""

import base64
import hashlib

from cryptography.fernet import Fernet
from django.conf import settings
from django.core.exceptions import ImproperlyConfigured


def get_fernet() -> Fernet:
    key = getattr(settings, 'ENCRYPTION_KEY', None)
    if not key:
        raise ImproperlyConfigured("ENCRYPTION_KEY is not configured")

    # Arbitrary passphrases are stretched into a valid 32-byte Fernet key.
    if isinstance(key, str):
        key = base64.urlsafe_b64encode(hashlib.sha256(key.encode()).digest())
    return Fernet(key)


def encrypt_string(plaintext: str) -> str:
    if not plaintext:
        return ''
    return get_fernet().encrypt(plaintext.encode()).decode()


def decrypt_string(token: str) -> str:
    if not token:
        return ''
    return get_fernet().decrypt(token.encode()).decode()


def mask_tail(value: str, visible: int = 4) -> str:
    """Keep only the last ``visible`` characters, e.g. ``****1234``."""
    if not value:
        return ''
    return '*' * max(len(value) - visible, 0) + value[-visible:]
