"""Envelope codec: the self-describing replacement for one encrypted value.

Two encodings carry the same four parts (algorithm, nonce, ciphertext, tag):

- text, for CSV cells::

      fc1:<algorithm>:<nonce>:<ciphertext>:<tag>

  with each binary part in unpadded URL-safe base64;

- object, for JSON values::

      {"$fieldcrypt": 1, "alg": ..., "nonce": ..., "ct": ..., "tag": ...}

Decoding checks the shape, the algorithm tag and the nonce/tag lengths and
raises MalformedEnvelopeError on any mismatch, so a corrupted file can be
told apart from a wrong password (AuthenticationFailure).
"""
from __future__ import annotations

import base64
import binascii
import re
from dataclasses import dataclass
from typing import Any, Dict

from fieldcrypt.security.crypto import get_suite

from .exceptions import MalformedEnvelopeError, UnsupportedAlgorithmError

TEXT_PREFIX = "fc1"
OBJECT_MARKER = "$fieldcrypt"
ENVELOPE_VERSION = 1

_B64URL = re.compile(r"^[A-Za-z0-9_-]*$")


@dataclass(frozen=True)
class FieldEnvelope:
    algorithm: str
    nonce: bytes
    ciphertext: bytes
    tag: bytes

    def validate(self) -> "FieldEnvelope":
        try:
            suite = get_suite(self.algorithm)
        except UnsupportedAlgorithmError as e:
            raise MalformedEnvelopeError(f"unknown algorithm tag {self.algorithm!r}") from e
        if len(self.nonce) != suite.nonce_size:
            raise MalformedEnvelopeError(
                f"nonce must be {suite.nonce_size} bytes, got {len(self.nonce)}"
            )
        if len(self.tag) != suite.tag_size:
            raise MalformedEnvelopeError(
                f"tag must be {suite.tag_size} bytes, got {len(self.tag)}"
            )
        return self


def _b64(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def _unb64(text: Any, part: str) -> bytes:
    if not isinstance(text, str) or not _B64URL.match(text):
        raise MalformedEnvelopeError(f"{part} is not URL-safe base64")
    try:
        return base64.urlsafe_b64decode(text + "=" * (-len(text) % 4))
    except (binascii.Error, ValueError) as e:
        raise MalformedEnvelopeError(f"{part} is not URL-safe base64") from e


def encode_text(envelope: FieldEnvelope) -> str:
    return ":".join(
        (
            TEXT_PREFIX,
            envelope.algorithm,
            _b64(envelope.nonce),
            _b64(envelope.ciphertext),
            _b64(envelope.tag),
        )
    )


def decode_text(value: Any) -> FieldEnvelope:
    if not isinstance(value, str):
        raise MalformedEnvelopeError("envelope must be a string")
    parts = value.split(":")
    if len(parts) != 5 or parts[0] != TEXT_PREFIX:
        raise MalformedEnvelopeError("value is not a fieldcrypt envelope")
    _, algorithm, nonce, ciphertext, tag = parts
    return FieldEnvelope(
        algorithm=algorithm,
        nonce=_unb64(nonce, "nonce"),
        ciphertext=_unb64(ciphertext, "ciphertext"),
        tag=_unb64(tag, "tag"),
    ).validate()


def encode_object(envelope: FieldEnvelope) -> Dict[str, Any]:
    return {
        OBJECT_MARKER: ENVELOPE_VERSION,
        "alg": envelope.algorithm,
        "nonce": _b64(envelope.nonce),
        "ct": _b64(envelope.ciphertext),
        "tag": _b64(envelope.tag),
    }


def decode_object(value: Any) -> FieldEnvelope:
    if not isinstance(value, dict) or OBJECT_MARKER not in value:
        raise MalformedEnvelopeError("value is not a fieldcrypt envelope")
    if value[OBJECT_MARKER] != ENVELOPE_VERSION:
        raise MalformedEnvelopeError(f"unsupported envelope version {value[OBJECT_MARKER]!r}")
    if set(value) != {OBJECT_MARKER, "alg", "nonce", "ct", "tag"}:
        raise MalformedEnvelopeError("envelope has missing or unexpected keys")
    if not isinstance(value["alg"], str):
        raise MalformedEnvelopeError("algorithm tag must be a string")
    return FieldEnvelope(
        algorithm=value["alg"],
        nonce=_unb64(value["nonce"], "nonce"),
        ciphertext=_unb64(value["ct"], "ciphertext"),
        tag=_unb64(value["tag"], "tag"),
    ).validate()


def is_envelope(value: Any) -> bool:
    """Cheap shape check; does not validate the parts."""
    if isinstance(value, str):
        return value.startswith(TEXT_PREFIX + ":")
    return isinstance(value, dict) and OBJECT_MARKER in value
