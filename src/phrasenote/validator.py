"""Consistency checks for phrasenote indices."""

from __future__ import annotations

from dataclasses import dataclass

from phrasenote.models import KeyPair, NoteRecord, RealmInfo, ValidationResult
from phrasenote.normalizers import DEFAULT, get_normalizer
from phrasenote.relations import SEE_ALSO, reverse_relation


@dataclass(frozen=True)
class _Snapshot:
    realms: dict[str, RealmInfo]
    realm_indices: dict[int, dict[str, int]]
    global_index: dict[str, list[int]]
    tags: set[str]
    notes: dict[KeyPair, NoteRecord]

    def realm_of(self, pk: int) -> tuple[str, RealmInfo] | None:
        for name, info in self.realms.items():
            if info.pk == pk:
                return name, info
        return None


def validate_all(
    realms: dict[str, RealmInfo],
    realm_indices: dict[int, dict[str, int]],
    global_index: dict[str, list[int]],
    tags: set[str],
    notes: dict[KeyPair, NoteRecord],
) -> list[ValidationResult]:
    """Run all validation rules.

    ``notes`` holds every stored note reachable from the indices, plus the
    targets of their relations that could be fetched.
    """
    state = _Snapshot(realms, realm_indices, global_index, tags, notes)
    results: list[ValidationResult] = []
    results.extend(_val_idx_001(state))
    results.extend(_val_idx_002(state))
    results.extend(_val_glb_001(state))
    results.extend(_val_glb_002(state))
    results.extend(_val_rel_001(state))
    results.extend(_val_rel_002(state))
    results.extend(_val_rel_003(state))
    results.extend(_val_rel_004(state))
    results.extend(_val_tag_001(state))
    return results


def _indexed(state: _Snapshot):
    """(realm info, normalized phrase, key) for every realm index entry."""
    for info in state.realms.values():
        for phrase, pk in state.realm_indices.get(info.pk, {}).items():
            yield info, phrase, KeyPair(info.pk, pk)


def _val_idx_001(state: _Snapshot) -> list[ValidationResult]:
    """Index entries must point at a stored note."""
    results = []
    for info, phrase, key in _indexed(state):
        if key not in state.notes:
            results.append(ValidationResult(
                rule_id="VAL-IDX-001",
                severity="ERROR",
                entity_type="phrase",
                entity_id=key.enkey(),
                message=f"Indexed phrase {phrase!r} has no stored note",
                details={"realm": info.pk},
            ))
    return results


def _val_idx_002(state: _Snapshot) -> list[ValidationResult]:
    """A note must carry the key and phrase it is indexed under."""
    results = []
    for info, phrase, key in _indexed(state):
        note = state.notes.get(key)
        if note is None:
            continue
        normalized = get_normalizer(info.normalizer)(note.phrase)
        if note.realm != info.pk or normalized != phrase:
            results.append(ValidationResult(
                rule_id="VAL-IDX-002",
                severity="ERROR",
                entity_type="phrase",
                entity_id=key.enkey(),
                message=(
                    f"Note {note.phrase!r} (realm {note.realm}) is indexed as "
                    f"{phrase!r} in realm {info.pk}"
                ),
                details=None,
            ))
    return results


def _val_glb_001(state: _Snapshot) -> list[ValidationResult]:
    """Every phrase must be listed in the global index under its realm."""
    results = []
    for info, phrase, key in _indexed(state):
        note = state.notes.get(key)
        default_form = DEFAULT(note.phrase) if note is not None else phrase
        if info.pk not in state.global_index.get(default_form, ()):
            results.append(ValidationResult(
                rule_id="VAL-GLB-001",
                severity="ERROR",
                entity_type="phrase",
                entity_id=key.enkey(),
                message=(
                    f"Global index does not list realm {info.pk} "
                    f"for {default_form!r}"
                ),
                details=None,
            ))
    return results


def _val_glb_002(state: _Snapshot) -> list[ValidationResult]:
    """Global index entries must be backed by a phrase of each listed realm."""
    forms: dict[int, set[str]] = {}
    for info, phrase, key in _indexed(state):
        note = state.notes.get(key)
        forms.setdefault(info.pk, set()).add(
            DEFAULT(note.phrase) if note is not None else phrase
        )
    results = []
    for default_form, realms in state.global_index.items():
        for realm in realms:
            if default_form not in forms.get(realm, ()):
                results.append(ValidationResult(
                    rule_id="VAL-GLB-002",
                    severity="ERROR",
                    entity_type="index",
                    entity_id=default_form,
                    message=f"Realm {realm} has no phrase {default_form!r}",
                    details={"realm": realm},
                ))
    return results


def _val_rel_001(state: _Snapshot) -> list[ValidationResult]:
    """Relation labels must belong to the realm's vocabulary."""
    results = []
    for info, _, key in _indexed(state):
        note = state.notes.get(key)
        if note is None:
            continue
        for label in note.relations:
            if reverse_relation(info.relations, label) is None:
                results.append(ValidationResult(
                    rule_id="VAL-REL-001",
                    severity="WARNING",
                    entity_type="relation",
                    entity_id=key.enkey(),
                    message=f"Relation {label!r} is not defined in its realm",
                    details={"relation": label},
                ))
    return results


def _val_rel_002(state: _Snapshot) -> list[ValidationResult]:
    """Relation targets must exist and stay within the realm, except "see also"."""
    results = []
    for info, _, key in _indexed(state):
        note = state.notes.get(key)
        if note is None:
            continue
        for label, targets in note.relations.items():
            for target in targets:
                if target not in state.notes:
                    results.append(ValidationResult(
                        rule_id="VAL-REL-002",
                        severity="ERROR",
                        entity_type="relation",
                        entity_id=key.enkey(),
                        message=f"Dangling {label!r} relation",
                        details={"relation": label, "target": target.enkey()},
                    ))
                elif target.realm != info.pk and label != SEE_ALSO:
                    results.append(ValidationResult(
                        rule_id="VAL-REL-002",
                        severity="ERROR",
                        entity_type="relation",
                        entity_id=key.enkey(),
                        message=f"Cross-realm {label!r} relation",
                        details={"relation": label, "target": target.enkey()},
                    ))
    return results


def _val_rel_003(state: _Snapshot) -> list[ValidationResult]:
    """Every relation must be mirrored by its reverse on the target."""
    results = []
    for info, _, key in _indexed(state):
        note = state.notes.get(key)
        if note is None:
            continue
        for label, targets in note.relations.items():
            reverse = reverse_relation(info.relations, label)
            if reverse is None:
                continue
            for target in targets:
                other = state.notes.get(target)
                if other is not None and key not in other.relations.get(reverse, ()):
                    results.append(ValidationResult(
                        rule_id="VAL-REL-003",
                        severity="ERROR",
                        entity_type="relation",
                        entity_id=key.enkey(),
                        message=(
                            f"{target.enkey()} lacks the reverse {reverse!r} "
                            f"of {label!r}"
                        ),
                        details={"relation": label, "target": target.enkey()},
                    ))
    return results


def _val_rel_004(state: _Snapshot) -> list[ValidationResult]:
    """No note may be related to itself."""
    results = []
    for _, _, key in _indexed(state):
        note = state.notes.get(key)
        if note is None:
            continue
        for label, targets in note.relations.items():
            if key in targets:
                results.append(ValidationResult(
                    rule_id="VAL-REL-004",
                    severity="WARNING",
                    entity_type="relation",
                    entity_id=key.enkey(),
                    message=f"Note is related to itself under {label!r}",
                    details=None,
                ))
    return results


def _val_tag_001(state: _Snapshot) -> list[ValidationResult]:
    """The tag set must contain every tag in use."""
    used: set[str] = set()
    for _, _, key in _indexed(state):
        note = state.notes.get(key)
        if note is not None:
            used |= note.tags
    return [
        ValidationResult(
            rule_id="VAL-TAG-001",
            severity="ERROR",
            entity_type="tag",
            entity_id=tag,
            message="Tag is used by a note but missing from the tag set",
            details=None,
        )
        for tag in sorted(used - state.tags)
    ]
