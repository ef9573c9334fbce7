"""Conversion between phrasenote models and store values.

Store values are plain JSON-compatible structures: dicts, lists, strings,
numbers, booleans and None. Maps and sets become lists of pairs or sorted
lists so they survive any JSON-backed store.
"""

from __future__ import annotations

from typing import Any

from phrasenote.models import KeyPair, NoteRecord, RealmInfo, Sorter
from phrasenote.relations import normalize_pairs

# ---------------------------------------------------------------------------
# Notes
# ---------------------------------------------------------------------------

_NOTE_FIELDS = frozenset(
    {"key", "phrase", "realm", "note", "tags", "citations", "relations",
     "starred"}
)


def note_to_value(note: NoteRecord) -> dict[str, Any]:
    value: dict[str, Any] = dict(note.extra)
    value.update(
        key=list(note.key) if note.key is not None else None,
        phrase=note.phrase,
        realm=note.realm,
        note=note.note,
        tags=sorted(note.tags),
        citations=[dict(c) for c in note.citations],
        relations={
            label: [list(k) for k in keys]
            for label, keys in note.relations.items() if keys
        },
        starred=note.starred,
    )
    return value


def note_from_value(value: dict[str, Any]) -> NoteRecord:
    key = value.get("key")
    return NoteRecord(
        phrase=value.get("phrase", ""),
        realm=int(value.get("realm", 0)),
        key=KeyPair.coerce(key) if key is not None else None,
        note=value.get("note") or "",
        tags=set(value.get("tags") or ()),
        citations=[dict(c) for c in value.get("citations") or ()],
        relations={
            label: [KeyPair.coerce(k) for k in keys]
            for label, keys in (value.get("relations") or {}).items() if keys
        },
        starred=bool(value.get("starred", False)),
        extra={k: v for k, v in value.items() if k not in _NOTE_FIELDS},
    )


# ---------------------------------------------------------------------------
# Realms and indices
# ---------------------------------------------------------------------------

def realm_to_value(realm: RealmInfo) -> dict[str, Any]:
    return {
        "pk": realm.pk,
        "description": realm.description,
        "normalizer": realm.normalizer,
        "relations": [list(pair) for pair in realm.relations],
    }


def realm_from_value(value: dict[str, Any]) -> RealmInfo:
    return RealmInfo(
        pk=int(value["pk"]),
        description=value.get("description") or "",
        normalizer=value.get("normalizer") or "",
        relations=normalize_pairs(value.get("relations")),
    )


def realms_to_value(realms: dict[str, RealmInfo]) -> list[list[Any]]:
    return [[name, realm_to_value(info)] for name, info in realms.items()]


def realms_from_value(value: list[Any] | None) -> dict[str, RealmInfo]:
    return {name: realm_from_value(info) for name, info in value or ()}


def realm_index_to_value(index: dict[str, int]) -> list[list[Any]]:
    return [[phrase, pk] for phrase, pk in index.items()]


def realm_index_from_value(value: list[Any] | None) -> dict[str, int]:
    return {phrase: int(pk) for phrase, pk in value or ()}


def global_index_to_value(index: dict[str, list[int]]) -> list[list[Any]]:
    return [[phrase, list(realms)] for phrase, realms in index.items()]


def global_index_from_value(value: list[Any] | None) -> dict[str, list[int]]:
    return {phrase: [int(r) for r in realms] for phrase, realms in value or ()}


# ---------------------------------------------------------------------------
# Sorters
# ---------------------------------------------------------------------------

def sorter_to_value(sorter: Sorter) -> dict[str, Any]:
    return {
        "pk": sorter.pk,
        "name": sorter.name,
        "description": sorter.description,
        "prefix": sorter.prefix,
        "suffix": sorter.suffix,
        "insertables": sorter.insertables,
        "similars": list(sorter.similars),
    }


def sorter_from_value(value: dict[str, Any]) -> Sorter:
    return Sorter(
        pk=int(value.get("pk", -1)),
        name=value["name"],
        description=value.get("description") or "",
        prefix=int(value.get("prefix") or 0),
        suffix=int(value.get("suffix") or 0),
        insertables=value.get("insertables") or "",
        similars=tuple(value.get("similars") or ()),
    )
