"""Unit tests for the field selector."""

import pytest
from fieldcrypt.core.exceptions import FieldNotFoundError
from fieldcrypt.core.selector import overlapping_fields, parse_field_list, replace_fields, select_fields


def test_parse_field_list():
    assert parse_field_list("ssn, pan,,ssn , name") == ["ssn", "pan", "name"]
    assert parse_field_list(" , ") == []


def test_select_flat_record():
    record = {"name": "Alice", "ssn": "123-45-6789", "city": "Oslo"}
    selection = select_fields(record, ["ssn", "name"])

    assert selection.values == {"ssn": "123-45-6789", "name": "Alice"}
    assert selection.missing == []
    assert selection.not_found() == []


def test_select_reports_missing_fields():
    selection = select_fields({"name": "Alice"}, ["name", "ssn"], record_index=3)

    assert selection.values == {"name": "Alice"}
    assert selection.missing == ["ssn"]
    [error] = selection.not_found()
    assert isinstance(error, FieldNotFoundError)
    assert error.field == "ssn"
    assert error.record_index == 3
    assert "record 3" in str(error)


def test_select_dotted_path():
    record = {"patient": {"ssn": "123", "name": "Bob"}, "id": 1}
    selection = select_fields(record, ["patient.ssn", "patient.dob"])

    assert selection.values == {"patient.ssn": "123"}
    assert selection.missing == ["patient.dob"]


def test_exact_key_wins_over_dotted_path():
    record = {"a.b": "flat", "a": {"b": "nested"}}
    assert select_fields(record, ["a.b"]).values == {"a.b": "flat"}


def test_json_null_is_a_value():
    selection = select_fields({"ssn": None}, ["ssn"])
    assert selection.values == {"ssn": None}


def test_csv_padding_none_is_absent():
    selection = select_fields({"name": "Alice", "ssn": None}, ["ssn"], none_is_absent=True)
    assert selection.values == {}
    assert selection.missing == ["ssn"]


def test_replace_fields_returns_new_record():
    record = {"name": "Alice", "patient": {"ssn": "123", "dob": "1990"}}
    result = replace_fields(record, {"patient.ssn": "ENC", "name": "ENC2"})

    assert result == {"name": "ENC2", "patient": {"ssn": "ENC", "dob": "1990"}}
    # original untouched, nested objects included
    assert record == {"name": "Alice", "patient": {"ssn": "123", "dob": "1990"}}
    assert result["patient"] is not record["patient"]


def test_overlapping_fields():
    assert overlapping_fields(["patient", "patient.ssn", "id"]) == [("patient", "patient.ssn")]
    assert overlapping_fields(["patient.ssn", "patient"]) == [("patient", "patient.ssn")]
    # shared prefix without a dot boundary is not nesting
    assert overlapping_fields(["pat", "patient.ssn", "patient.dob"]) == []
