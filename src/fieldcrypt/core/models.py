"""
Data models shared by the selector, envelope codec and transcoder
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from fieldcrypt.security.kdf import KdfParams

from .exceptions import FieldcryptError, ManifestError, MalformedEnvelopeError

# A CSV row (column -> str) or a JSON object (key -> any JSON value)
Record = Dict[str, Any]

MANIFEST_VERSION = 1


class FileFormat(Enum):
    CSV = "csv"
    JSON = "json"


class TranscoderState(Enum):
    # Lifecycle of one transcoder run
    IDLE = "idle"
    READING = "reading"
    PROCESSING = "processing"
    WRITING = "writing"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class FileManifest:
    """File-level metadata needed to reverse the encryption."""

    algorithm: str
    kdf: KdfParams
    salt: bytes
    key_check: bytes
    fields: Tuple[str, ...]
    created_at: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat(timespec="seconds")
    )
    format_version: int = MANIFEST_VERSION

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.format_version,
            "algorithm": self.algorithm,
            "kdf": self.kdf.to_dict(),
            "salt": self.salt.hex(),
            "key_check": self.key_check.hex(),
            "fields": list(self.fields),
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Any) -> "FileManifest":
        if not isinstance(data, dict):
            raise ManifestError("Manifest must be an object")
        try:
            version = int(data["version"])
            if version != MANIFEST_VERSION:
                raise ManifestError(f"Unsupported manifest version: {version}")
            fields = data["fields"]
            if not isinstance(fields, list) or not all(isinstance(f, str) for f in fields):
                raise ManifestError("Manifest fields must be a list of names")
            return cls(
                algorithm=str(data["algorithm"]),
                kdf=KdfParams.from_dict(data["kdf"]),
                salt=bytes.fromhex(data["salt"]),
                key_check=bytes.fromhex(data["key_check"]),
                fields=tuple(fields),
                created_at=str(data.get("created_at", "")),
                format_version=version,
            )
        except ManifestError:
            raise
        except MalformedEnvelopeError as e:
            raise ManifestError(str(e)) from e
        except (KeyError, TypeError, ValueError) as e:
            raise ManifestError(f"Invalid manifest: {e}") from e


@dataclass
class FieldFailure:
    record_index: int
    field: str
    error: FieldcryptError

    def __str__(self) -> str:
        return f"record {self.record_index}, field {self.field!r}: {self.error}"


@dataclass
class RunReport:
    """Summary of one encrypt/decrypt run."""

    source: str
    output: Optional[str] = None
    file_format: Optional[FileFormat] = None
    records: int = 0
    fields_processed: int = 0
    fields: List[str] = field(default_factory=list)
    missing_fields: List[str] = field(default_factory=list)
    failures: List[FieldFailure] = field(default_factory=list)
    dry_run: bool = False

    @property
    def ok(self) -> bool:
        return not self.failures

    def summary(self) -> str:
        verb = "would process" if self.dry_run else "processed"
        lines = [
            f"{self.source}: {verb} {self.fields_processed} field value(s) "
            f"in {self.records} record(s)"
        ]
        if self.output:
            lines.append(f"output: {self.output}")
        if self.missing_fields:
            lines.append("missing fields: " + ", ".join(self.missing_fields))
        for failure in self.failures:
            lines.append(f"failed: {failure}")
        return "\n".join(lines)


@dataclass
class ValidationReport:
    """Result of a dry-run parse and manifest check."""

    source: str
    file_format: FileFormat
    records: int
    encrypted: bool
    manifest: Optional[FileManifest] = None
    envelopes: int = 0
    password_ok: Optional[bool] = None
    problems: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.problems and self.password_ok is not False

    def summary(self) -> str:
        lines = [f"{self.source}: {self.file_format.value}, {self.records} record(s)"]
        if self.manifest is None:
            lines.append("not encrypted (no manifest)")
        else:
            lines.append(
                f"encrypted with {self.manifest.algorithm} / {self.manifest.kdf.name}, "
                f"fields: {', '.join(self.manifest.fields) or '-'}"
            )
            lines.append(f"envelopes: {self.envelopes}")
        if self.password_ok is not None:
            lines.append("password: " + ("ok" if self.password_ok else "rejected"))
        lines.extend(f"problem: {p}" for p in self.problems)
        return "\n".join(lines)


