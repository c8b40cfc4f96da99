"""Salt generation and PBKDF2 key derivation.

Reserved for deriving a key from the master password (rather than only
hashing it). The salt lives in the vault via
``DatabasePassphraseManager.save_salt`` / ``get_or_create_salt``.

PBKDF2-SHA256, 600k iterations, 256-bit output.
"""

import os

from cryptography.hazmat.backends import default_backend
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from .. import config


def generate_salt() -> bytes:
    """Generate cryptographically random salt."""
    return os.urandom(config.SALT_SIZE)


def derive_key(
    password: str,
    salt: bytes,
    iterations: int = config.PBKDF2_ITERATIONS,
) -> bytes:
    """Derive a 256-bit key from password + salt via PBKDF2-SHA256."""
    if not salt:
        raise ValueError("Salt must not be empty")
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=config.DERIVED_KEY_LENGTH,
        salt=salt,
        iterations=iterations,
        backend=default_backend(),
    )
    return kdf.derive(password.encode("utf-8"))
