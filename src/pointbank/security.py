"""Credential hashing for stored passwords.

Hashes use PBKDF2-HMAC-SHA256 with a random per-user salt and are stored
as ``pbkdf2_sha256$<iterations>$<salt hex>$<hash hex>``.
"""

import functools
import hashlib
import hmac
import secrets

from .config import settings

SCHEME = "pbkdf2_sha256"
SALT_BYTES = 16


def _derive(password: str, salt: bytes, iterations: int) -> bytes:
    return hashlib.pbkdf2_hmac("sha256", password.encode(), salt, iterations)


def hash_password(password: str, iterations: int | None = None) -> str:
    """Return the encoded salted hash of ``password``."""
    iterations = iterations or settings.password_hash_iterations
    salt = secrets.token_bytes(SALT_BYTES)
    digest = _derive(password, salt, iterations)
    return f"{SCHEME}${iterations}${salt.hex()}${digest.hex()}"


@functools.lru_cache(maxsize=None)
def _dummy_hash(iterations: int) -> str:
    return hash_password(secrets.token_hex(8), iterations)


def dummy_hash() -> str:
    """A valid hash for no account, used when the username does not exist."""
    return _dummy_hash(settings.password_hash_iterations)


def is_hashed(stored: str) -> bool:
    return stored.startswith(SCHEME + "$")


def verify_password(password: str, stored: str) -> bool:
    """Check ``password`` against a stored value in constant time.

    Values without the hash prefix are legacy plaintext credentials and are
    compared literally; callers should rehash them after a successful match.
    """
    if not is_hashed(stored):
        return hmac.compare_digest(password.encode(), stored.encode())
    try:
        _, iterations, salt_hex, digest_hex = stored.split("$")
        expected = bytes.fromhex(digest_hex)
        actual = _derive(password, bytes.fromhex(salt_hex), int(iterations))
    except ValueError:
        return False
    return hmac.compare_digest(actual, expected)
