"""Unit tests for the core data models."""

import pytest
from fieldcrypt.core.exceptions import AuthenticationFailure, ManifestError
from fieldcrypt.core.models import (
    FieldFailure,
    FileFormat,
    FileManifest,
    RunReport,
    ValidationReport,
)
from fieldcrypt.security.kdf import KdfParams


@pytest.fixture
def manifest():
    return FileManifest(
        algorithm="aes-256-gcm",
        kdf=KdfParams(time_cost=1, memory_cost=8),
        salt=b"\xaa" * 16,
        key_check=b"\x01" * 32,
        fields=("ssn", "pan"),
        created_at="2024-01-01T00:00:00+00:00",
    )


# ==============================================================================
# Tests: FileManifest
# ==============================================================================

def test_manifest_to_dict(manifest):
    data = manifest.to_dict()
    assert data["version"] == 1
    assert data["algorithm"] == "aes-256-gcm"
    assert data["salt"] == "aa" * 16
    assert data["fields"] == ["ssn", "pan"]
    assert data["kdf"]["algo"] == "argon2id"


def test_manifest_roundtrip(manifest):
    assert FileManifest.from_dict(manifest.to_dict()) == manifest


def test_manifest_created_at_defaults_to_now():
    m = FileManifest("aes-256-gcm", KdfParams(), b"\x00" * 16, b"\x00" * 32, ())
    assert m.created_at.endswith("+00:00")


@pytest.mark.parametrize(
    "mutate",
    [
        lambda d: d.pop("salt"),
        lambda d: d.update(version=7),
        lambda d: d.update(salt="zz"),
        lambda d: d.update(fields="ssn"),
        lambda d: d.update(kdf={"algo": "md5", "version": 1}),
    ],
)
def test_manifest_from_dict_rejects_bad_input(manifest, mutate):
    data = manifest.to_dict()
    mutate(data)
    with pytest.raises(ManifestError):
        FileManifest.from_dict(data)


def test_manifest_from_non_dict():
    with pytest.raises(ManifestError):
        FileManifest.from_dict(["not", "a", "manifest"])


# ==============================================================================
# Tests: Reports
# ==============================================================================

def test_run_report_summary():
    report = RunReport(source="in.csv", output="out.csv", records=2, fields_processed=3)
    report.missing_fields.append("pan")
    report.failures.append(FieldFailure(1, "ssn", AuthenticationFailure("bad tag")))

    text = report.summary()
    assert "processed 3 field value(s) in 2 record(s)" in text
    assert "output: out.csv" in text
    assert "missing fields: pan" in text
    assert "record 1, field 'ssn': bad tag" in text
    assert not report.ok


def test_validation_report_ok_flags(manifest):
    report = ValidationReport("x.json", FileFormat.JSON, 1, encrypted=True, manifest=manifest, envelopes=2)
    assert report.ok
    report.password_ok = False
    assert not report.ok
    assert "password: rejected" in report.summary()


def test_validation_report_plain_file():
    report = ValidationReport("x.csv", FileFormat.CSV, 4, encrypted=False)
    assert report.ok
    assert "not encrypted" in report.summary()
