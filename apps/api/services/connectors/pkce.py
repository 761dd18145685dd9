"""PKCE (RFC 7636) verifier and S256 challenge helpers."""

from __future__ import annotations

import base64
import hashlib
import secrets
from typing import Tuple


CODE_CHALLENGE_METHOD = "S256"


def generate_code_verifier() -> str:
    # 64 random bytes -> 86 url-safe chars, inside the 43..128 range
    return secrets.token_urlsafe(64)


def code_challenge_for(verifier: str) -> str:
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


def generate_pkce_pair() -> Tuple[str, str]:
    """Return ``(code_verifier, code_challenge)``."""
    verifier = generate_code_verifier()
    return verifier, code_challenge_for(verifier)
