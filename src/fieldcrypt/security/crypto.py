"""AEAD cipher engine for field values.

Each supported scheme is described by a :class:`CipherSuite` carrying its
capabilities (key, nonce and tag sizes) and a factory for the
``cryptography`` AEAD primitive. Nonces are always generated here from
``os.urandom``; callers never supply one for encryption.

``cryptography`` returns ``ciphertext || tag`` from ``encrypt``; the engine
splits the tag off so the envelope can store the parts separately.
"""
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM, ChaCha20Poly1305

from fieldcrypt.core.exceptions import AuthenticationFailure, UnsupportedAlgorithmError

AES_256_GCM = "aes-256-gcm"
CHACHA20_POLY1305 = "chacha20-poly1305"
DEFAULT_ALGORITHM = AES_256_GCM


@dataclass(frozen=True)
class CipherSuite:
    name: str
    key_size: int
    nonce_size: int
    tag_size: int
    factory: Callable[[bytes], object]

    def _aead(self, key: bytes | bytearray):
        if len(key) != self.key_size:
            raise ValueError(f"{self.name} requires a {self.key_size}-byte key")
        return self.factory(key)

    def encrypt(self, key: bytes, plaintext: bytes, aad: Optional[bytes] = None) -> Tuple[bytes, bytes, bytes]:
        """Encrypt under a fresh random nonce; returns (nonce, ciphertext, tag)."""
        nonce = os.urandom(self.nonce_size)
        sealed = self._aead(key).encrypt(nonce, plaintext, aad)
        return nonce, sealed[: -self.tag_size], sealed[-self.tag_size :]

    def decrypt(
        self,
        key: bytes,
        nonce: bytes,
        ciphertext: bytes,
        tag: bytes,
        aad: Optional[bytes] = None,
    ) -> bytes:
        """Verify the tag and return the plaintext, or raise AuthenticationFailure."""
        aead = self._aead(key)
        try:
            return aead.decrypt(nonce, ciphertext + tag, aad)
        except InvalidTag as e:
            raise AuthenticationFailure(
                "authentication tag verification failed (tampered data or wrong password)"
            ) from e


CIPHER_SUITES: Dict[str, CipherSuite] = {
    AES_256_GCM: CipherSuite(
        name=AES_256_GCM, key_size=32, nonce_size=12, tag_size=16, factory=AESGCM
    ),
    CHACHA20_POLY1305: CipherSuite(
        name=CHACHA20_POLY1305,
        key_size=32,
        nonce_size=12,
        tag_size=16,
        factory=ChaCha20Poly1305,
    ),
}


def get_suite(name: str) -> CipherSuite:
    try:
        return CIPHER_SUITES[name.lower()]
    except KeyError:
        supported = ", ".join(sorted(CIPHER_SUITES))
        raise UnsupportedAlgorithmError(
            f"Unsupported algorithm {name!r} (supported: {supported})"
        ) from None


def encrypt(suite: CipherSuite, key: bytes, plaintext: bytes, aad: Optional[bytes] = None) -> Tuple[bytes, bytes, bytes]:
    return suite.encrypt(key, plaintext, aad)


def decrypt(
    suite: CipherSuite,
    key: bytes,
    nonce: bytes,
    ciphertext: bytes,
    tag: bytes,
    aad: Optional[bytes] = None,
) -> bytes:
    return suite.decrypt(key, nonce, ciphertext, tag, aad)
