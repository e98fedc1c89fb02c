"""Random root password generation."""

from __future__ import annotations

import base64
import secrets


DEFAULT_PASSWORD_BYTES = 12


def generate_password(n: int = DEFAULT_PASSWORD_BYTES) -> str:
    """Return the urlsafe base64 encoding of ``n`` random bytes."""
    return base64.urlsafe_b64encode(secrets.token_bytes(n)).decode("ascii")
