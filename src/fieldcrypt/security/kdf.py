from __future__ import annotations

import hashlib
import hmac
import os
from dataclasses import dataclass, asdict
from typing import Dict, Any

from argon2.low_level import Type, hash_secret_raw
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from fieldcrypt.core.exceptions import (
    MalformedEnvelopeError,
    UnsupportedAlgorithmError,
    WeakPasswordError,
)

ARGON2ID = "argon2id"
PBKDF2_SHA256 = "pbkdf2-sha256"
KDF_NAMES = (ARGON2ID, PBKDF2_SHA256)

# bump when the meaning of the stored parameters changes
KDF_VERSION = 1

SALT_MIN_LENGTH = 16
PBKDF2_MIN_ITERATIONS = 100_000
PBKDF2_DEFAULT_ITERATIONS = 600_000
PBKDF2_MAX_ITERATIONS = 10_000_000

# Limits on parameters accepted from a manifest
ARGON2_MAX_TIME_COST = 64
ARGON2_MAX_MEMORY_COST = 4 * 1024 * 1024  # KiB, i.e. 4 GiB
ARGON2_MAX_PARALLELISM = 64
KEY_LEN_RANGE = (16, 64)

_KEY_CHECK_LABEL = b"fieldcrypt-key-check"


@dataclass(frozen=True)
class KdfParams:
    """Versioned KDF parameters, stored in the file manifest so decryption
    keeps working when the defaults change."""

    name: str = ARGON2ID
    version: int = KDF_VERSION
    time_cost: int = 3
    memory_cost: int = 65536
    parallelism: int = 1
    iterations: int = PBKDF2_DEFAULT_ITERATIONS
    key_len: int = 32

    def __post_init__(self):
        if self.name not in KDF_NAMES:
            raise UnsupportedAlgorithmError(f"Unsupported KDF: {self.name}")
        _check_range("key length", self.key_len, *KEY_LEN_RANGE)
        if self.name == PBKDF2_SHA256:
            _check_range(
                "PBKDF2 iterations", self.iterations, PBKDF2_MIN_ITERATIONS, PBKDF2_MAX_ITERATIONS
            )
            return
        _check_range("Argon2 time cost", self.time_cost, 1, ARGON2_MAX_TIME_COST)
        _check_range("Argon2 parallelism", self.parallelism, 1, ARGON2_MAX_PARALLELISM)
        # argon2 needs at least 8 KiB per lane
        _check_range(
            "Argon2 memory cost", self.memory_cost, 8 * self.parallelism, ARGON2_MAX_MEMORY_COST
        )

    def with_key_len(self, key_len: int) -> "KdfParams":
        if key_len == self.key_len:
            return self
        return KdfParams(**{**asdict(self), "key_len": key_len})

    def to_dict(self) -> Dict[str, Any]:
        if self.name == ARGON2ID:
            return {
                "algo": self.name,
                "version": self.version,
                "time": self.time_cost,
                "memory": self.memory_cost,
                "parallelism": self.parallelism,
                "key_len": self.key_len,
            }
        return {
            "algo": self.name,
            "version": self.version,
            "iterations": self.iterations,
            "key_len": self.key_len,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "KdfParams":
        try:
            name = data["algo"]
            version = int(data["version"])
            key_len = int(data.get("key_len", 32))
            if version != KDF_VERSION:
                raise MalformedEnvelopeError(f"Unsupported KDF version: {version}")
            if name == ARGON2ID:
                return cls(
                    name=name,
                    version=version,
                    time_cost=int(data["time"]),
                    memory_cost=int(data["memory"]),
                    parallelism=int(data["parallelism"]),
                    key_len=key_len,
                )
            if name == PBKDF2_SHA256:
                return cls(
                    name=name,
                    version=version,
                    iterations=int(data["iterations"]),
                    key_len=key_len,
                )
        except (KeyError, TypeError, ValueError) as e:
            raise MalformedEnvelopeError(f"Invalid KDF parameters: {e}") from e
        except UnsupportedAlgorithmError as e:
            raise MalformedEnvelopeError(str(e)) from e
        raise MalformedEnvelopeError(f"Unsupported KDF: {name}")


def _check_range(what: str, value: int, low: int, high: int) -> None:
    if not isinstance(value, int) or not low <= value <= high:
        raise UnsupportedAlgorithmError(f"{what} must be between {low} and {high}, got {value!r}")

def generate_salt(length: int = SALT_MIN_LENGTH) -> bytes:
    """Return a cryptographically secure random salt."""
    if length < SALT_MIN_LENGTH:
        raise ValueError(f"Salt must be at least {SALT_MIN_LENGTH} bytes")
    return os.urandom(length)


def derive(password: bytes | str, salt: bytes, params: KdfParams = KdfParams()) -> bytes:
    """
    Derive a key of ``params.key_len`` bytes from a password.
    Same password, salt and params always give the same key.
    """
    if isinstance(password, str):
        password = password.encode("utf-8")
    if not password:
        raise WeakPasswordError("Password must not be empty")
    if len(salt) < SALT_MIN_LENGTH:
        raise ValueError(f"Salt must be at least {SALT_MIN_LENGTH} bytes")

    if params.name == ARGON2ID:
        return hash_secret_raw(
            secret=password,
            salt=salt,
            time_cost=params.time_cost,
            memory_cost=params.memory_cost,
            parallelism=params.parallelism,
            hash_len=params.key_len,
            type=Type.ID,
        )

    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=params.key_len,
        salt=salt,
        iterations=params.iterations,
    )
    return kdf.derive(password)


def key_check(key: bytes) -> bytes:
    # confirmation value stored next to the salt; never reveals the key
    return hmac.new(key, _KEY_CHECK_LABEL, hashlib.sha256).digest()


def verify_key_check(key: bytes, expected: bytes) -> bool:
    return hmac.compare_digest(key_check(key), expected)
