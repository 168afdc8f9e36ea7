"""
Encryption utilities for storing exchange credentials at rest.

Uses Fernet symmetric encryption (AES-128-CBC with HMAC-SHA256)
to encrypt API secrets stored in the user_settings table.
"""

import logging

from cryptography.fernet import Fernet, InvalidToken

from autotrader.config import settings

logger = logging.getLogger(__name__)

_fernet = None


def _get_fernet() -> Fernet:
    """Get or create the Fernet instance from the configured encryption key."""
    global _fernet
    if _fernet is None:
        key = settings.encryption_key
        if not key:
            raise RuntimeError("ENCRYPTION_KEY not set in .env")
        _fernet = Fernet(key.encode() if isinstance(key, str) else key)
    return _fernet


def encryption_enabled() -> bool:
    return bool(settings.encryption_key)


def encrypt_value(plaintext: str) -> str:
    """
    Encrypt a plaintext string and return the ciphertext as a string.

    Args:
        plaintext: The value to encrypt (e.g., an API secret)

    Returns:
        Encrypted string (Fernet token, starts with 'gAAAAA')
    """
    if not plaintext:
        return plaintext
    f = _get_fernet()
    return f.encrypt(plaintext.encode()).decode()


def decrypt_value(ciphertext: str) -> str:
    """
    Decrypt a ciphertext string and return the plaintext.

    Args:
        ciphertext: The encrypted value to decrypt

    Returns:
        Decrypted plaintext string
    """
    if not ciphertext:
        return ciphertext
    f = _get_fernet()
    try:
        return f.decrypt(ciphertext.encode()).decode()
    except InvalidToken:
        logger.error("Failed to decrypt value - invalid token or wrong encryption key")
        raise


def is_encrypted(value: str) -> bool:
    """Check if a value appears to already be encrypted (Fernet tokens start with 'gAAAAA')."""
    if not value:
        return False
    return value.startswith("gAAAAA")


def store_secret(value: str) -> str:
    """Prepare a credential for storage: encrypt when a key is configured."""
    if not value or is_encrypted(value):
        return value
    if not encryption_enabled():
        logger.warning("ENCRYPTION_KEY not configured - storing exchange secret unencrypted")
        return value
    return encrypt_value(value)


def read_secret(value: str) -> str:
    """Reverse of store_secret(): decrypt stored tokens, pass plaintext through."""
    if value and is_encrypted(value):
        return decrypt_value(value)
    return value
