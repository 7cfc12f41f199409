from __future__ import annotations

from datetime import date, datetime

import pytest

from idrecon.domain.model import (
    KIND_SPECS,
    PULL_ORDER,
    Comparison,
    Condition,
    Conjunction,
    EntityKind,
    InternalEntity,
    IntAttrRef,
    SchemaType,
    conditions_of,
    kind_spec,
    parse_value,
)


def test_groups_are_pulled_after_users() -> None:
    assert PULL_ORDER.index(EntityKind.USER) < PULL_ORDER.index(EntityKind.GROUP)
    assert set(PULL_ORDER) == set(EntityKind)


def test_kind_spec_carries_schema_types() -> None:
    spec = kind_spec(EntityKind.USER, {"age": SchemaType.LONG})

    assert spec.name_field == "username"
    assert spec.schema_type("age") is SchemaType.LONG
    assert spec.schema_type("unknown") is SchemaType.STRING
    assert KIND_SPECS[EntityKind.USER].schema_type("age") is SchemaType.STRING


@pytest.mark.parametrize(
    ("raw", "schema_type", "expected"),
    [
        ("42", SchemaType.LONG, 42),
        ("4.5", SchemaType.DOUBLE, 4.5),
        ("TRUE", SchemaType.BOOLEAN, True),
        ("2024-01-07", SchemaType.DATE, date(2024, 1, 7)),
        ("2024-01-07T10:00:00", SchemaType.DATE, datetime(2024, 1, 7, 10)),
        ("jdoe", SchemaType.STRING, "jdoe"),
    ],
)
def test_parse_value_by_schema_type(raw: str, schema_type: SchemaType, expected: object) -> None:
    assert parse_value(raw, schema_type) == expected


@pytest.mark.parametrize(
    ("raw", "schema_type"),
    [("forty-two", SchemaType.LONG), ("maybe", SchemaType.BOOLEAN), ("soon", SchemaType.DATE)],
)
def test_unparseable_values_fall_back_to_raw_string(raw: str, schema_type: SchemaType) -> None:
    assert parse_value(raw, schema_type) == raw


def _entity() -> InternalEntity:
    return InternalEntity(
        id="u1",
        kind=EntityKind.USER,
        name="jdoe",
        plain={"email": ("J@X.com",), "age": (42,)},
    )


def _lookup(entity: InternalEntity):  # noqa: ANN202
    return lambda text: entity.values_for(IntAttrRef.parse(text))


def test_conditions_compare_canonical_text() -> None:
    lookup = _lookup(_entity())

    assert Condition("plain:age", Comparison.EQ, "42").matches(lookup)
    assert Condition("username", Comparison.EQ, "jdoe").matches(lookup)
    assert not Condition("plain:email", Comparison.EQ, "j@x.com").matches(lookup)
    assert Condition("plain:email", Comparison.IEQ, "j@x.com").matches(lookup)
    assert Condition("plain:phone", Comparison.IS_NULL).matches(lookup)
    assert not Condition("plain:email", Comparison.IS_NULL).matches(lookup)


def test_conjunction_requires_every_condition() -> None:
    lookup = _lookup(_entity())
    both = Conjunction(
        (
            Condition("username", Comparison.EQ, "jdoe"),
            Condition("plain:age", Comparison.EQ, 42),
        )
    )
    mismatch = Conjunction(
        (
            Condition("username", Comparison.EQ, "jdoe"),
            Condition("plain:age", Comparison.EQ, 43),
        )
    )

    assert both.matches(lookup)
    assert not mismatch.matches(lookup)
    assert len(conditions_of(both)) == 2
    assert conditions_of(both.conditions[0]) == (both.conditions[0],)


def test_entity_values_for_fields() -> None:
    entity = _entity()
    entity.owner = "u9"

    assert entity.values_for(IntAttrRef.parse("id")) == ("u1",)
    assert entity.values_for(IntAttrRef.parse("name")) == ("jdoe",)
    assert entity.values_for(IntAttrRef.parse("owner")) == ("u9",)
    assert entity.values_for(IntAttrRef.parse("derived:cn")) is None
