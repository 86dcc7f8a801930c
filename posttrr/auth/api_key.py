"""API key issuing and hashing.

Keys are 64 random hex chars behind a ``pt_live_`` prefix. Only an
HMAC-SHA256 digest keyed with the server secret is stored; high-entropy
keys do not need a slow password hash.
"""

import hashlib
import hmac
import secrets

from sqlalchemy.ext.asyncio import AsyncSession

from posttrr.config import settings
from posttrr.models.user import APIKey, User

API_KEY_PREFIX = "pt_live_"


def generate_api_key() -> tuple[str, str]:
    """Return ``(plaintext_key, key_hash)``; the plaintext is shown once."""
    plaintext_key = f"{API_KEY_PREFIX}{secrets.token_hex(32)}"
    return plaintext_key, hash_api_key(plaintext_key)


def hash_api_key(key: str) -> str:
    return hmac.new(
        settings.api_key_secret.encode(),
        key.encode(),
        hashlib.sha256,
    ).hexdigest()


def get_key_prefix(key: str) -> str:
    """First 12 chars, enough to identify a key in listings."""
    return key[:12]


def issue_api_key(
    db: AsyncSession,
    user: User,
    name: str,
    scopes: list[str],
) -> tuple[str, APIKey]:
    """Add a new key for ``user`` to the session and return its plaintext."""
    plaintext_key, key_hash = generate_api_key()
    api_key = APIKey(
        user_id=user.id,
        key_hash=key_hash,
        key_prefix=get_key_prefix(plaintext_key),
        name=name,
        scopes=scopes,
    )
    db.add(api_key)
    return plaintext_key, api_key
