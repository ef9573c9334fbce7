"""Tests for the consistency checker."""

from phrasenote.models import KeyPair, NoteRecord, RealmInfo
from phrasenote.validator import validate_all

REALMS = {
    "": RealmInfo(pk=0),
    "en": RealmInfo(pk=1, relations=(("see also", "see also"),
                                      ("broader", "narrower"))),
}


def _rule_ids(results):
    return sorted(r.rule_id for r in results)


def _state(notes, realm_indices=None, global_index=None, tags=()):
    realm_indices = realm_indices or {
        0: {},
        1: {n.phrase: k.phrase for k, n in notes.items() if k.realm == 1},
    }
    if global_index is None:
        global_index = {}
        for key, note in notes.items():
            global_index.setdefault(note.phrase, []).append(key.realm)
    return REALMS, realm_indices, global_index, set(tags), notes


def _note(pk, phrase, **kwargs):
    return NoteRecord(phrase=phrase, realm=1, key=KeyPair(1, pk), **kwargs)


class TestValidateAll:

    def test_consistent(self):
        notes = {
            KeyPair(1, 0): _note(0, "cat", relations={"broader": [KeyPair(1, 1)]}),
            KeyPair(1, 1): _note(1, "pet", relations={"narrower": [KeyPair(1, 0)]}),
        }
        assert validate_all(*_state(notes)) == []

    def test_missing_note(self):
        results = validate_all(*_state({}, realm_indices={0: {}, 1: {"cat": 0}},
                                       global_index={"cat": [1]}))
        assert "VAL-IDX-001" in _rule_ids(results)

    def test_misindexed_note(self):
        notes = {KeyPair(1, 0): _note(0, "dog")}
        results = validate_all(*_state(
            notes, realm_indices={0: {}, 1: {"cat": 0}},
            global_index={"dog": [1]},
        ))
        assert "VAL-IDX-002" in _rule_ids(results)

    def test_global_index_missing_realm(self):
        notes = {KeyPair(1, 0): _note(0, "cat")}
        results = validate_all(*_state(notes, global_index={}))
        assert _rule_ids(results) == ["VAL-GLB-001"]

    def test_global_index_stale_realm(self):
        notes = {KeyPair(1, 0): _note(0, "cat")}
        results = validate_all(*_state(
            notes, global_index={"cat": [1], "dog": [1]},
        ))
        assert _rule_ids(results) == ["VAL-GLB-002"]
        assert results[0].entity_id == "dog"

    def test_unknown_label(self):
        notes = {KeyPair(1, 0): _note(0, "cat", relations={"cousin": [KeyPair(1, 1)]}),
                 KeyPair(1, 1): _note(1, "dog", relations={"cousin": [KeyPair(1, 0)]})}
        results = validate_all(*_state(notes))
        assert _rule_ids(results) == ["VAL-REL-001", "VAL-REL-001"]
        assert all(r.severity == "WARNING" for r in results)

    def test_dangling_relation(self):
        notes = {KeyPair(1, 0): _note(0, "cat", relations={"broader": [KeyPair(1, 9)]})}
        results = validate_all(*_state(notes))
        assert _rule_ids(results) == ["VAL-REL-002"]
        assert results[0].details == {"relation": "broader", "target": "1:9"}

    def test_cross_realm_label(self):
        notes = {
            KeyPair(1, 0): _note(0, "cat", relations={"broader": [KeyPair(0, 0)]}),
            KeyPair(0, 0): NoteRecord(
                phrase="pet", realm=0, key=KeyPair(0, 0),
                relations={"narrower": [KeyPair(1, 0)]},
            ),
        }
        results = validate_all(*_state(
            notes, realm_indices={0: {"pet": 0}, 1: {"cat": 0}},
        ))
        assert "VAL-REL-002" in _rule_ids(results)

    def test_missing_reverse(self):
        notes = {
            KeyPair(1, 0): _note(0, "cat", relations={"broader": [KeyPair(1, 1)]}),
            KeyPair(1, 1): _note(1, "pet"),
        }
        assert _rule_ids(validate_all(*_state(notes))) == ["VAL-REL-003"]

    def test_self_relation(self):
        notes = {KeyPair(1, 0): _note(0, "cat", relations={"see also": [KeyPair(1, 0)]})}
        assert _rule_ids(validate_all(*_state(notes))) == ["VAL-REL-004"]

    def test_tag_set_superset(self):
        notes = {KeyPair(1, 0): _note(0, "cat", tags={"pet", "feline"})}
        results = validate_all(*_state(notes, tags={"pet"}))
        assert _rule_ids(results) == ["VAL-TAG-001"]
        assert results[0].entity_id == "feline"
