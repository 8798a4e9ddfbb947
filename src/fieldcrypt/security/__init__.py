"""Security helpers: key derivation, AEAD cipher suites and the run-scoped key context.

This package provides:
- Argon2id / PBKDF2-SHA256 password key derivation with versioned parameters
- AES-256-GCM and ChaCha20-Poly1305 field encryption with fresh nonces
- RunContext, which owns the derived key for a single run and zeroes it on close
"""

from .kdf import KdfParams, generate_salt, derive, key_check, verify_key_check
from .crypto import (
    CipherSuite,
    CIPHER_SUITES,
    DEFAULT_ALGORITHM,
    get_suite,
    encrypt,
    decrypt,
)
from .session import RunContext

__all__ = [
    "KdfParams",
    "generate_salt",
    "derive",
    "key_check",
    "verify_key_check",
    "CipherSuite",
    "CIPHER_SUITES",
    "DEFAULT_ALGORITHM",
    "get_suite",
    "encrypt",
    "decrypt",
    "RunContext",
]
