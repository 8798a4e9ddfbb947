"""CSV and JSON parsing/serialisation, including where the manifest lives.

CSV: an encrypted file starts with one line ``#fieldcrypt:<manifest JSON>``;
the CSV body below it keeps the original header and row shape.

JSON: an encrypted file is ``{"_fieldcrypt": <manifest>, "data": <document>}``
where ``<document>`` is the original object or list of objects.
"""
from __future__ import annotations

import csv
import io
import json
import mimetypes
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from .exceptions import ManifestError, UnsupportedFormatError
from .models import FileFormat, FileManifest, Record

CSV_MANIFEST_PREFIX = "#fieldcrypt:"
JSON_MANIFEST_KEY = "_fieldcrypt"
JSON_DATA_KEY = "data"


@dataclass
class Document:
    file_format: FileFormat
    records: List[Record]
    headers: List[str] = field(default_factory=list)
    # JSON top level was a single object rather than a list
    single: bool = False
    manifest: Optional[FileManifest] = None


def detect_format(path: Path, text: str) -> FileFormat:
    """Pick the format from the file type, falling back to the content."""
    mime_type, _ = mimetypes.guess_type(str(path))
    suffix = Path(path).suffix.lower()
    if suffix == ".csv" or mime_type == "text/csv":
        return FileFormat.CSV
    if suffix == ".json" or mime_type == "application/json":
        return FileFormat.JSON

    head = text.lstrip("\ufeff \t\r\n")
    if head.startswith(("{", "[")):
        return FileFormat.JSON
    first_line = head.splitlines()[0] if head else ""
    if first_line.startswith(CSV_MANIFEST_PREFIX) or "," in first_line:
        return FileFormat.CSV
    raise UnsupportedFormatError(f"{path}: not a CSV or JSON file")


def parse(path: Path, text: str) -> Document:
    fmt = detect_format(path, text)
    if fmt is FileFormat.CSV:
        return parse_csv(text)
    return parse_json(text)


def serialize(doc: Document) -> str:
    if doc.file_format is FileFormat.CSV:
        return serialize_csv(doc)
    return serialize_json(doc)


# ----------------------------------------------------------------------
# CSV
# ----------------------------------------------------------------------


def parse_csv(text: str) -> Document:
    manifest = None
    lines = text.splitlines(keepends=True)
    if lines and lines[0].startswith(CSV_MANIFEST_PREFIX):
        raw = lines[0][len(CSV_MANIFEST_PREFIX):].rstrip("\r\n")
        manifest = _load_manifest(raw)
        text = "".join(lines[1:])

    try:
        reader = csv.DictReader(io.StringIO(text))
        headers = list(reader.fieldnames or [])
        if len(set(headers)) != len(headers):
            raise UnsupportedFormatError("CSV header has duplicate column names")
        records = []
        for row in reader:
            if None in row:
                raise UnsupportedFormatError(
                    f"CSV line {reader.line_num} has more cells than the header"
                )
            records.append(dict(row))
    except csv.Error as e:
        raise UnsupportedFormatError(f"invalid CSV: {e}") from e

    return Document(FileFormat.CSV, records, headers=headers, manifest=manifest)


def serialize_csv(doc: Document) -> str:
    out = io.StringIO()
    if doc.manifest is not None:
        out.write(CSV_MANIFEST_PREFIX + _dump_manifest(doc.manifest) + "\n")
    if doc.headers:
        writer = csv.DictWriter(out, fieldnames=doc.headers, lineterminator="\n")
        writer.writeheader()
        writer.writerows(doc.records)
    return out.getvalue()


# ----------------------------------------------------------------------
# JSON
# ----------------------------------------------------------------------


def parse_json(text: str) -> Document:
    try:
        data = json.loads(text)
    except ValueError as e:
        raise UnsupportedFormatError(f"invalid JSON: {e}") from e

    manifest = None
    if isinstance(data, dict) and JSON_MANIFEST_KEY in data:
        manifest = FileManifest.from_dict(data[JSON_MANIFEST_KEY])
        if JSON_DATA_KEY not in data:
            raise ManifestError("encrypted JSON document has no data")
        data = data[JSON_DATA_KEY]

    if isinstance(data, dict):
        return Document(FileFormat.JSON, [data], single=True, manifest=manifest)
    if isinstance(data, list) and all(isinstance(item, dict) for item in data):
        return Document(FileFormat.JSON, list(data), manifest=manifest)
    raise UnsupportedFormatError("JSON document must be an object or a list of objects")


def serialize_json(doc: Document) -> str:
    data = doc.records[0] if doc.single else doc.records
    if doc.manifest is not None:
        data = {JSON_MANIFEST_KEY: doc.manifest.to_dict(), JSON_DATA_KEY: data}
    return json.dumps(data, indent=2, ensure_ascii=False) + "\n"


def _dump_manifest(manifest: FileManifest) -> str:
    return json.dumps(manifest.to_dict(), separators=(",", ":"), sort_keys=True)


def _load_manifest(raw: str) -> FileManifest:
    try:
        data = json.loads(raw)
    except ValueError as e:
        raise ManifestError(f"unreadable manifest: {e}") from e
    return FileManifest.from_dict(data)
