"""
Preparing encrypted artifacts for upload

The network transport (SFTP) is supplied by the embedding application as an
object implementing UploadTransport. This module reads and checks the bytes
to upload, retries failed sends and verifies the remote checksum when the
transport can report one.
"""

from __future__ import annotations

import logging
import posixpath
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Protocol, runtime_checkable

from .exceptions import IOFailure, IOWriteError, ManifestError, UnsupportedFormatError
from .formats import parse
from .hashing import sha256_bytes
from .storage import read_bytes, remove_file

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UploadTarget:
    host: str
    port: int = 22
    user: Optional[str] = None
    key_path: Optional[str] = None
    remote_dir: str = "/uploads"

    def remote_path_for(self, filename: str) -> str:
        return posixpath.join(self.remote_dir, posixpath.basename(filename))

    def __str__(self) -> str:
        who = f"{self.user}@" if self.user else ""
        return f"sftp://{who}{self.host}:{self.port}{self.remote_dir}"


@dataclass(frozen=True)
class UploadPayload:
    path: Path
    data: bytes
    sha256: str

    @property
    def name(self) -> str:
        return self.path.name

    @property
    def size(self) -> int:
        return len(self.data)


@runtime_checkable
class UploadTransport(Protocol):
    def send(self, payload: UploadPayload, target: UploadTarget) -> str:
        """Upload ``payload`` and return the remote path it was written to."""
        ...


def read_upload_payload(path: Path | str) -> UploadPayload:
    """Read the bytes to upload; only files carrying a manifest are accepted."""
    path = Path(path)
    data = read_bytes(path)
    try:
        doc = parse(path, data.decode("utf-8-sig"))
    except UnicodeDecodeError as e:
        raise UnsupportedFormatError(f"{path} is not UTF-8 text") from e
    if doc.manifest is None:
        raise ManifestError(f"refusing to upload {path}: it is not encrypted")
    return UploadPayload(path=path, data=data, sha256=sha256_bytes(data))


def upload(
    payload: UploadPayload,
    target: UploadTarget,
    transport: UploadTransport,
    retries: int = 3,
    backoff: float = 1.0,
    sleep: Callable[[float], None] = time.sleep,
) -> str:
    """Send ``payload`` with exponential backoff between attempts."""
    attempt = 0
    while True:
        attempt += 1
        try:
            logger.info("uploading %s (%d bytes) to %s, attempt %d", payload.name, payload.size, target, attempt)
            remote_path = transport.send(payload, target)
            break
        except (IOFailure, OSError) as e:
            if attempt >= retries:
                raise IOWriteError(f"upload of {payload.name} failed after {attempt} attempt(s): {e}") from e
            delay = backoff * (2 ** (attempt - 1))
            logger.warning("upload attempt %d failed (%s); retrying in %.1fs", attempt, e, delay)
            sleep(delay)

    remote_sha256 = getattr(transport, "remote_sha256", None)
    if callable(remote_sha256):
        remote = remote_sha256(remote_path, target)
        if remote != payload.sha256:
            raise IOWriteError(f"checksum mismatch after upload of {payload.name}")
    logger.info("uploaded %s to %s", payload.name, remote_path)
    return remote_path


def upload_and_remove(
    payload: UploadPayload,
    target: UploadTarget,
    transport: UploadTransport,
    **kwargs,
) -> str:
    """Upload, then delete the local copy. Nothing is deleted if the upload
    or its checksum check fails."""
    remote_path = upload(payload, target, transport, **kwargs)
    remove_file(payload.path)
    return remote_path
