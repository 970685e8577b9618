"""Unit tests for batch keychain derivation."""

import json

import pytest

from bipkeychain.lib.batch import (
    derive_batch,
    derive_keychain,
    load_keychain,
    results_to_json,
)
from bipkeychain.lib.derivation import KeychainSession
from bipkeychain.lib.errors import (
    InvalidSeed,
    MalformedEntity,
    UnsupportedHashFunction,
    UnsupportedOutputFormat,
)
from tests.helpers.entities import make_entity


def _keychain(n=5, bad_position=None):
    docs = [make_entity(identifier=f"host-{i}") for i in range(n)]
    if bad_position is not None:
        docs[bad_position] = make_entity(
            identifier="broken", schema_type="not-a-schema"
        )
    return docs


def test_batch_preserves_order_and_isolates_failures(session):
    docs = _keychain(5, bad_position=2)
    results = derive_batch(session, docs, max_workers=3)

    assert [r.position for r in results] == [0, 1, 2, 3, 4]
    assert [r.ok for r in results] == [True, True, False, True, True]
    assert isinstance(results[2].error, MalformedEntity)
    assert results[2].entity_id == "#2"
    assert results[2].record is None

    for i in (0, 1, 3, 4):
        expected = session.derive(docs[i])
        assert results[i].record.keypair.public_key_bytes == expected.keypair.public_key_bytes


def test_batch_result_independent_of_worker_count(session):
    docs = _keychain(8)
    serial = derive_batch(session, docs, max_workers=1)
    parallel = derive_batch(session, docs, max_workers=8)
    assert [r.record.keypair.public_key_bytes for r in serial] == [
        r.record.keypair.public_key_bytes for r in parallel
    ]


def test_batch_parse_error_falls_back_to_position_id(session):
    docs = [make_entity(), make_entity(identifier="x", hash_function="md5")]
    results = derive_batch(session, docs)
    err = results[1].error
    assert isinstance(err, UnsupportedHashFunction)
    # The hash stage fails during parsing, before canonicalization.
    assert err.entity_id == "#1"


def test_batch_renders_output(session):
    results = derive_batch(session, _keychain(3), output_format="ssh")
    for result in results:
        assert result.output == result.record.keypair.ssh_public_key(None)


def test_batch_unknown_output_format_fails_every_slot(session):
    results = derive_batch(session, _keychain(3), output_format="bogus")
    assert all(not r.ok for r in results)
    for r in results:
        assert isinstance(r.error, UnsupportedOutputFormat)
        assert r.entity_id == r.record.entity_id


def test_batch_unexpected_exception_propagates(session, monkeypatch):
    def explode(document):
        raise RuntimeError("boom")

    monkeypatch.setattr(session, "derive", explode)
    with pytest.raises(RuntimeError, match="boom"):
        derive_batch(session, _keychain(2))


def test_batch_on_closed_session(root_secret):
    session = KeychainSession(root_secret)
    session.close()
    with pytest.raises(RuntimeError):
        derive_batch(session, _keychain(1))


def test_empty_batch(session):
    assert derive_batch(session, []) == []


def test_unwrap(session):
    results = derive_batch(session, _keychain(2, bad_position=1))
    assert results[0].unwrap() is results[0].record
    with pytest.raises(MalformedEntity):
        results[1].unwrap()


def test_derive_keychain_array_and_envelope(root_secret):
    docs = _keychain(3)
    from_array = derive_keychain(root_secret, json.dumps(docs))
    from_envelope = derive_keychain(root_secret, json.dumps({"keys": docs}))
    assert [r.record.entity_id for r in from_array] == [
        r.record.entity_id for r in from_envelope
    ]


def test_derive_keychain_rejects_bad_seed_before_entities():
    with pytest.raises(InvalidSeed):
        derive_keychain(b"\x01" * 16, json.dumps(_keychain(2)))


@pytest.mark.parametrize(
    "text",
    ['{"schema_type": "dns"}', '"just a string"', "42", "{broken"],
)
def test_load_keychain_rejects_non_keychains(text):
    with pytest.raises(MalformedEntity) as exc_info:
        load_keychain(text)
    assert exc_info.value.stage == "load"


def test_load_keychain_does_not_validate_entries():
    entries = load_keychain('[{"anything": true}, 3]')
    assert entries == [{"anything": True}, 3]


def test_results_to_json_has_no_private_material(session):
    results = derive_batch(session, _keychain(3, bad_position=0), output_format="seed")
    text = results_to_json(results)
    summary = json.loads(text)

    assert summary[0]["ok"] is False
    assert summary[0]["error"]["type"] == "MalformedEntity"
    assert summary[0]["error"]["stage"] == "parse"
    assert summary[1]["ok"] is True
    assert summary[1]["derivation_path"] == results[1].record.derivation_path
    for result in results[1:]:
        assert result.output not in text


def test_wipe_results(session):
    results = derive_batch(session, _keychain(2))
    for r in results:
        r.wipe()
    assert all(r.record.keypair.wiped for r in results)


def _nested_entity(levels):
    payload = {"leaf": True}
    for _ in range(levels):
        payload = {"child": payload}
    return {"schema_type": "custom", "entity": payload, "derivation_config": {}}


def test_batch_isolates_entities_that_cannot_be_canonicalized(session):
    docs = _keychain(5)
    docs[2] = json.loads(
        '{"schema_type":"dns","entity":{"name":"\\ud800"},"derivation_config":{}}'
    )
    docs[4] = _nested_entity(1200)

    results = derive_batch(session, docs, output_format="ssh")
    assert [r.ok for r in results] == [True, True, False, True, False]
    assert isinstance(results[2].error, MalformedEntity)
    assert isinstance(results[4].error, MalformedEntity)
    assert results[2].entity_id == "#2"


def test_batch_isolates_unencodable_labels(session):
    docs = _keychain(2)
    docs[1] = make_entity(identifier="labelled", purpose=json.loads('"\\udc00"'))
    results = derive_batch(session, docs, output_format="ssh")
    assert [r.ok for r in results] == [True, False]
    assert isinstance(results[1].error, MalformedEntity)


def test_derive_keychain_reports_bad_seed_before_bad_document():
    with pytest.raises(InvalidSeed):
        derive_keychain(b"\x01" * 16, "{not a keychain")
