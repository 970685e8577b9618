"""Unit tests for canonical entity serialization."""

import json

import pytest

from bipkeychain.config import MAX_ENTITY_NESTING
from bipkeychain.lib.canonical import (
    canonical_entity_bytes,
    canonicalize,
    check_labels,
    entity_id,
)
from bipkeychain.lib.errors import MalformedEntity
from bipkeychain.models import KeyDerivation
from tests.helpers.entities import make_entity


def test_keys_sorted_at_every_level():
    value = {"b": 1, "a": {"d": 2, "c": [1, 2]}}
    assert canonicalize(value) == b'{"a":{"c":[1,2],"d":2},"b":1}'


def test_whitespace_and_key_order_do_not_matter():
    text_a = '{"@type": "Thing",   "identifier": "x", "nested": {"z": 1, "y": 2}}'
    text_b = '{\n  "nested": {"y": 2, "z": 1},\n  "identifier": "x",\n  "@type": "Thing"\n}'
    assert canonicalize(json.loads(text_a)) == canonicalize(json.loads(text_b))


def test_non_ascii_is_utf8_not_escaped():
    assert canonicalize({"name": "café"}) == '{"name":"café"}'.encode("utf-8")


def test_scalars_and_nulls():
    assert canonicalize({"a": None, "b": True, "c": 1.5, "d": -3}) == (
        b'{"a":null,"b":true,"c":1.5,"d":-3}'
    )


@pytest.mark.parametrize("bad", [float("nan"), float("inf"), float("-inf")])
def test_non_finite_numbers_rejected(bad):
    with pytest.raises(MalformedEntity) as exc_info:
        canonicalize({"value": [1, {"x": bad}]})
    assert "$.value[1].x" in str(exc_info.value)


@pytest.mark.parametrize("bad", [b"raw", {1, 2}, object()])
def test_unsupported_types_rejected(bad):
    with pytest.raises(MalformedEntity):
        canonicalize({"value": bad})


def test_non_string_keys_rejected():
    with pytest.raises(MalformedEntity):
        canonicalize({1: "one"})


def test_only_entity_payload_is_canonicalized():
    plain = KeyDerivation.model_validate(make_entity())
    labelled = KeyDerivation.model_validate(
        make_entity(purpose="Deploy key", metadata={"owner": "ops"})
    )
    assert canonical_entity_bytes(plain) == canonical_entity_bytes(labelled)
    assert canonical_entity_bytes(plain) == (
        b'{"@type":"Thing","identifier":"test-entity-001"}'
    )


def test_entity_id_is_stable_and_short():
    canonical = canonicalize({"@type": "Thing"})
    assert entity_id(canonical) == entity_id(canonical)
    assert len(entity_id(canonical)) == 16
    assert entity_id(canonical) != entity_id(canonicalize({"@type": "Person"}))


def test_lone_surrogate_string_rejected():
    value = json.loads('{"name": "\\ud800"}')
    with pytest.raises(MalformedEntity) as exc_info:
        canonicalize(value)
    assert "$.name" in str(exc_info.value)


def test_lone_surrogate_key_rejected():
    with pytest.raises(MalformedEntity):
        canonicalize(json.loads('{"\\udfff": 1}'))


def test_paired_surrogates_are_fine():
    value = json.loads('{"emoji": "\\ud83d\\ude00"}')
    assert canonicalize(value) == '{"emoji":"😀"}'.encode("utf-8")


def _nested(levels):
    value = {"leaf": True}
    for _ in range(levels):
        value = {"child": value}
    return value


def test_deep_nesting_rejected():
    with pytest.raises(MalformedEntity) as exc_info:
        canonicalize(_nested(1200))
    assert "nested deeper" in str(exc_info.value)


def test_nesting_at_limit_accepted():
    assert canonicalize(_nested(MAX_ENTITY_NESTING - 1)).startswith(b'{"child":')


def test_labels_checked_separately_from_entity():
    kd = KeyDerivation.model_validate(
        make_entity(metadata=json.loads('{"note": "\\ud800"}'))
    )
    assert canonical_entity_bytes(kd)
    with pytest.raises(MalformedEntity):
        check_labels(kd)
