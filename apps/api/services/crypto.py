"""
Provider token encryption at rest using Fernet symmetric encryption.
"""

import base64
from functools import lru_cache
from typing import Optional

from cryptography.fernet import Fernet
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from config import settings


@lru_cache(maxsize=4)
def _fernet_for_key(key: str) -> Fernet:
    # Keys that are not exactly 32 bytes are stretched with PBKDF2
    if len(key) != 32:
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=b"linkfolio_connected_accounts_salt",
            iterations=100000,
        )
        derived = base64.urlsafe_b64encode(kdf.derive(key.encode()))
    else:
        derived = base64.urlsafe_b64encode(key.encode())
    return Fernet(derived)


def _get_fernet() -> Fernet:
    """Get Fernet instance from the configured encryption key."""
    return _fernet_for_key(settings.ENCRYPTION_KEY)


def encrypt_token(token: str) -> str:
    """
    Encrypt a provider token for storage.

    Args:
        token: Plain text token

    Returns:
        Base64-encoded encrypted token
    """
    fernet = _get_fernet()
    return fernet.encrypt(token.encode()).decode()


def decrypt_token(encrypted_token: str) -> str:
    """
    Decrypt a stored provider token.

    Args:
        encrypted_token: Base64-encoded encrypted token

    Returns:
        Plain text token
    """
    fernet = _get_fernet()
    return fernet.decrypt(encrypted_token.encode()).decode()


def encrypt_optional_token(token: Optional[str]) -> Optional[str]:
    return encrypt_token(token) if token else None
