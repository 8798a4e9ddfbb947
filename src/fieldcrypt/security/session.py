"""Run-scoped key context.

A :class:`RunContext` holds the key derived for one encrypt/decrypt run
together with the salt, KDF parameters and cipher suite it belongs to. It is
created per run and passed explicitly to the components that need it; there
is no process-wide session. Closing the context overwrites the key buffer.
"""
from __future__ import annotations

import logging
from typing import Optional

from fieldcrypt.core.exceptions import AuthenticationFailure

from .crypto import CipherSuite, get_suite
from .kdf import KdfParams, derive, generate_salt, key_check, verify_key_check

logger = logging.getLogger(__name__)


class RunContext:
    def __init__(self, key: bytes, salt: bytes, kdf_params: KdfParams, suite: CipherSuite):
        self._key: Optional[bytearray] = bytearray(key)
        self.salt = salt
        self.kdf_params = kdf_params
        self.suite = suite

    @classmethod
    def for_encryption(
        cls,
        password: bytes | str,
        suite: CipherSuite,
        kdf_params: KdfParams = KdfParams(),
    ) -> "RunContext":
        """Derive a key under a freshly generated salt."""
        params = kdf_params.with_key_len(suite.key_size)
        salt = generate_salt()
        logger.debug("deriving %s key with %s", suite.name, params.name)
        return cls(derive(password, salt, params), salt, params, suite)

    @classmethod
    def for_manifest(cls, password: bytes | str, manifest) -> "RunContext":
        """Re-derive the key recorded by ``manifest`` and confirm the password.

        A wrong password surfaces as AuthenticationFailure, the same error a
        tampered field produces.
        """
        suite = get_suite(manifest.algorithm)
        ctx = cls(derive(password, manifest.salt, manifest.kdf), manifest.salt, manifest.kdf, suite)
        if not verify_key_check(ctx.key, manifest.key_check):
            ctx.close()
            raise AuthenticationFailure("wrong password or tampered manifest")
        return ctx

    @property
    def key(self) -> bytearray:
        """The key buffer itself, not a copy; callers must not modify it.

        Cipher primitives take bytes-like keys, so close() wipes the same
        buffer the ciphers were given."""
        if self._key is None:
            raise RuntimeError("Run context is closed")
        return self._key

    @property
    def closed(self) -> bool:
        return self._key is None

    def key_check(self) -> bytes:
        return key_check(self.key)

    def close(self) -> None:
        """Zero the key buffer (best-effort) and drop it."""
        if self._key is not None:
            for i in range(len(self._key)):
                self._key[i] = 0
            self._key = None

    def __enter__(self) -> "RunContext":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
