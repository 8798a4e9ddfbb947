"""Unit tests for CSV/JSON parsing and manifest placement."""

import json
from pathlib import Path

import pytest
from fieldcrypt.core import formats
from fieldcrypt.core.exceptions import ManifestError, UnsupportedFormatError
from fieldcrypt.core.models import FileFormat, FileManifest
from fieldcrypt.security.kdf import KdfParams


@pytest.fixture
def manifest():
    return FileManifest(
        algorithm="aes-256-gcm",
        kdf=KdfParams(time_cost=1, memory_cost=8),
        salt=b"\x10" * 16,
        key_check=b"\x20" * 32,
        fields=("ssn",),
        created_at="2024-01-01T00:00:00+00:00",
    )


# ==============================================================================
# Tests: Format detection
# ==============================================================================

@pytest.mark.parametrize(
    "name, text, expected",
    [
        ("data.csv", "", FileFormat.CSV),
        ("DATA.CSV", "", FileFormat.CSV),
        ("data.json", "", FileFormat.JSON),
        ("export", '  [{"a": 1}]', FileFormat.JSON),
        ("export", "name,ssn\nAlice,1\n", FileFormat.CSV),
        ("export.enc", "#fieldcrypt:{}\nname\n", FileFormat.CSV),
    ],
)
def test_detect_format(name, text, expected):
    assert formats.detect_format(Path(name), text) is expected


def test_detect_format_rejects_other_content():
    with pytest.raises(UnsupportedFormatError):
        formats.detect_format(Path("notes.txt"), "just some prose\n")


# ==============================================================================
# Tests: CSV
# ==============================================================================

def test_parse_csv_keeps_header_order_and_quoting():
    text = 'name,note,ssn\nAlice,"hello, world",123\nBob,"two\nlines",456\n'
    doc = formats.parse_csv(text)

    assert doc.headers == ["name", "note", "ssn"]
    assert doc.records[0] == {"name": "Alice", "note": "hello, world", "ssn": "123"}
    assert doc.records[1]["note"] == "two\nlines"
    assert doc.manifest is None


def test_parse_csv_short_row_padded_with_none():
    doc = formats.parse_csv("name,ssn\nAlice\n")
    assert doc.records == [{"name": "Alice", "ssn": None}]


def test_parse_csv_rejects_extra_cells():
    with pytest.raises(UnsupportedFormatError, match="more cells"):
        formats.parse_csv("name,ssn\nAlice,1,extra\n")


def test_parse_csv_rejects_duplicate_headers():
    with pytest.raises(UnsupportedFormatError, match="duplicate"):
        formats.parse_csv("ssn,ssn\n1,2\n")


def test_csv_manifest_line(manifest):
    doc = formats.Document(
        FileFormat.CSV,
        [{"name": "Alice", "ssn": "fc1:x"}],
        headers=["name", "ssn"],
        manifest=manifest,
    )
    text = formats.serialize_csv(doc)
    first, rest = text.split("\n", 1)

    assert first.startswith("#fieldcrypt:{")
    assert rest == "name,ssn\nAlice,fc1:x\n"

    parsed = formats.parse_csv(text)
    assert parsed.manifest == manifest
    assert parsed.headers == ["name", "ssn"]
    assert parsed.records == doc.records


def test_csv_header_only_file():
    doc = formats.parse_csv("name,ssn\n")
    assert doc.records == []
    assert formats.serialize_csv(doc) == "name,ssn\n"


def test_csv_unreadable_manifest():
    with pytest.raises(ManifestError):
        formats.parse_csv("#fieldcrypt:{not json\nname\nAlice\n")


# ==============================================================================
# Tests: JSON
# ==============================================================================

def test_parse_json_single_object():
    doc = formats.parse_json('{"name": "Alice", "ssn": "123"}')
    assert doc.single
    assert doc.records == [{"name": "Alice", "ssn": "123"}]
    assert json.loads(formats.serialize_json(doc)) == {"name": "Alice", "ssn": "123"}


def test_parse_json_list_of_objects():
    doc = formats.parse_json('[{"a": 1}, {"a": 2}]')
    assert not doc.single
    assert [r["a"] for r in doc.records] == [1, 2]


@pytest.mark.parametrize("text", ["[1, 2]", '"text"', "42", "{oops"])
def test_parse_json_rejects_other_shapes(text):
    with pytest.raises(UnsupportedFormatError):
        formats.parse_json(text)


def test_json_manifest_wrapper(manifest):
    doc = formats.Document(FileFormat.JSON, [{"ssn": {"$fieldcrypt": 1}}], single=True, manifest=manifest)
    data = json.loads(formats.serialize_json(doc))

    assert set(data) == {"_fieldcrypt", "data"}
    assert data["data"] == {"ssn": {"$fieldcrypt": 1}}

    parsed = formats.parse_json(json.dumps(data))
    assert parsed.manifest == manifest
    assert parsed.single


def test_json_manifest_without_data(manifest):
    text = json.dumps({"_fieldcrypt": manifest.to_dict()})
    with pytest.raises(ManifestError):
        formats.parse_json(text)


def test_serialize_json_keeps_unicode():
    doc = formats.parse_json('{"name": "Zoë"}')
    assert "Zoë" in formats.serialize_json(doc)
