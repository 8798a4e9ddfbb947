"""
File access for the transcoder

Reads are whole-file. Writes go to a temporary file in the destination
directory which is fsynced and then renamed over the target with os.replace,
so the target is either the complete new file or untouched. The input file
is never opened for writing.

The path ``-`` stands for standard input when reading and standard output
when writing.
"""

import logging
import os
import sys
import tempfile
from pathlib import Path
from typing import Optional

from .exceptions import IOReadError, IOWriteError, UnsupportedFormatError

logger = logging.getLogger(__name__)

STDIO = "-"


def is_stdio(path) -> bool:
    return path is not None and str(path) == STDIO


def _read_stdin() -> str:
    buffer = getattr(sys.stdin, "buffer", None)
    if buffer is None:
        return sys.stdin.read()
    try:
        return buffer.read().decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise UnsupportedFormatError("standard input is not UTF-8 text") from e


def read_text(path: Path) -> str:
    if is_stdio(path):
        try:
            return _read_stdin()
        except OSError as e:
            raise IOReadError(f"could not read standard input: {e}") from e
    path = Path(path).expanduser()
    try:
        # newline="" keeps quoted CSV line breaks intact
        with open(path, "r", encoding="utf-8-sig", newline="") as f:
            return f.read()
    except UnicodeDecodeError as e:
        raise UnsupportedFormatError(f"{path} is not UTF-8 text") from e
    except OSError as e:
        raise IOReadError(f"could not read {path}: {e.strerror or e}") from e


def read_bytes(path: Path) -> bytes:
    path = Path(path).expanduser()
    try:
        return path.read_bytes()
    except OSError as e:
        raise IOReadError(f"could not read {path}: {e.strerror or e}") from e


def write_stdout(text: str) -> Path:
    try:
        sys.stdout.write(text)
        sys.stdout.flush()
    except (OSError, UnicodeError) as e:
        raise IOWriteError(f"could not write standard output: {e}") from e
    return Path(STDIO)


def atomic_write(path: Path, text: str) -> Path:
    """Write ``text`` to ``path`` atomically and return the final path."""
    if is_stdio(path):
        return write_stdout(text)
    path = Path(path).expanduser()
    tmp_path: Optional[Path] = None
    try:
        with tempfile.NamedTemporaryFile(
            "w",
            encoding="utf-8",
            newline="",
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
        ) as tmp:
            tmp_path = Path(tmp.name)
            tmp.write(text)
            tmp.flush()
            os.fsync(tmp.fileno())
        os.replace(tmp_path, path)
        tmp_path = None
        logger.debug("wrote %s", path)
        return path
    except (OSError, UnicodeError) as e:
        # UnicodeEncodeError: lone surrogates from a JSON input
        raise IOWriteError(f"could not write {path}: {getattr(e, 'strerror', None) or e}") from e
    finally:
        if tmp_path is not None:
            try:
                tmp_path.unlink()
            except FileNotFoundError:
                pass


def remove_file(path: Path) -> bool:
    """Delete a local file; False if it was already gone."""
    path = Path(path).expanduser()
    try:
        path.unlink()
    except FileNotFoundError:
        return False
    except OSError as e:
        raise IOWriteError(f"could not remove {path}: {e.strerror or e}") from e
    logger.info("removed %s", path)
    return True
