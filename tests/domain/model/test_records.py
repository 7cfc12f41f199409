from __future__ import annotations

from datetime import UTC, date, datetime

import pytest

from idrecon.domain.model import (
    NAME_ATTR,
    UID_ATTR,
    Delta,
    DeltaKind,
    ExternalRecord,
    encode_value,
)


def test_external_record_freezes_attribute_values() -> None:
    source = {"mail": ["a@example.com"]}
    record = ExternalRecord(uid="jdoe", name="jdoe", attributes=source)

    source["mail"].append("b@example.com")

    assert record.get("mail") == ("a@example.com",)
    with pytest.raises(TypeError):
        record.attributes["mail"] = ("c@example.com",)  # type: ignore[index]


def test_external_record_exposes_uid_and_name_pseudo_attributes() -> None:
    record = ExternalRecord(uid="42", name="jdoe")

    assert record.get(UID_ATTR) == ("42",)
    assert record.get(NAME_ATTR) == ("jdoe",)
    assert ExternalRecord(uid="42").get(NAME_ATTR) is None


def test_first_skips_null_markers() -> None:
    record = ExternalRecord(uid="jdoe", attributes={"mail": (None, "j@x.com"), "sn": (None,)})

    assert record.first("mail") == "j@x.com"
    assert record.first("sn") is None
    assert record.first("missing") is None


def test_non_delete_delta_requires_record() -> None:
    with pytest.raises(ValueError, match="carries no record"):
        Delta(kind=DeltaKind.UPDATE, uid="jdoe")


def test_deletion_delta_subject_is_uid_placeholder() -> None:
    delta = Delta.deletion("jdoe")

    assert delta.kind is DeltaKind.DELETE
    assert delta.subject() == ExternalRecord(uid="jdoe")


def test_upsert_keeps_record_uid() -> None:
    record = ExternalRecord(uid="jdoe")

    delta = Delta.upsert(record, kind=DeltaKind.CREATE)

    assert delta.uid == "jdoe"
    assert delta.subject() is record


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        (True, "true"),
        (False, "false"),
        (42, "42"),
        (date(2024, 1, 7), "2024-01-07"),
        (datetime(2024, 1, 7, 12, tzinfo=UTC), "2024-01-07T12:00:00+00:00"),
        ("jdoe", "jdoe"),
    ],
)
def test_encode_value_is_canonical(value: object, expected: str) -> None:
    assert encode_value(value) == expected  # type: ignore[arg-type]
