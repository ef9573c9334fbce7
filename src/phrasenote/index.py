"""PhraseIndex: realm-partitioned phrase index over a key/value store."""

from __future__ import annotations

import asyncio
import copy
import dataclasses
import functools
import logging
from collections.abc import AsyncIterator, Callable, Iterable
from datetime import datetime
from typing import Any, TypeVar

from phrasenote import codec
from phrasenote import validator as _validator
from phrasenote.config import IndexConfig
from phrasenote.distance import LEVENSHTEIN, Metric, metric_for
from phrasenote.exceptions import (
    ConsistencyViolation,
    DuplicateEntityError,
    EntityNotFoundError,
    RelationError,
    StoreError,
    ValidationError,
)
from phrasenote.models import (
    FindOutcome,
    FindResponse,
    KeyPair,
    NoteRecord,
    RealmInfo,
    SimilarPhrase,
    Sorter,
    ValidationResult,
)
from phrasenote.normalizers import DEFAULT, get_normalizer, squish
from phrasenote.relations import (
    SEE_ALSO,
    normalize_pairs,
    relation_labels,
    reverse_relation,
)
from phrasenote.search import (
    Strictness,
    as_utc,
    fuzzy_matcher,
    note_phrases,
    passes_filters,
)
from phrasenote.store import Store

logger = logging.getLogger(__name__)

_F = TypeVar("_F", bound=Callable[..., Any])

RealmIdentifier = str | int | RealmInfo | None

# Store keys of the process-wide structures
REALMS_KEY = "realms"
INDEX_KEY = "index"
TAGS_KEY = "tags"
SORTERS_KEY = "sorters"

DEFAULT_REALM = RealmInfo(
    pk=0, description="A realm for notes that have no realm.",
)


def _serialized(method: _F) -> _F:
    """Decorator: runs the coroutine under the index lock, first come first served."""

    @functools.wraps(method)
    async def wrapper(self: PhraseIndex, *args: Any, **kwargs: Any) -> Any:
        async with self._lock:
            return await method(self, *args, **kwargs)

    return wrapper  # type: ignore[return-value]


def _clone(note: NoteRecord) -> NoteRecord:
    return copy.deepcopy(note)


class PhraseIndex:
    """Finds, stores and relates phrases, partitioned into realms.

    All state lives in this object; callers only ever get copies. Every
    mutating operation computes its new state on copies, persists it in a
    single store write, and only then commits it to memory, so a failed
    write leaves the index as it was.
    """

    def __init__(self, store: Store, config: IndexConfig | None = None) -> None:
        self._store = store
        self.config = config or IndexConfig()
        self._lock = asyncio.Lock()
        self._reset()

    def _reset(self) -> None:
        self._realms: dict[str, RealmInfo] = {"": DEFAULT_REALM}
        self._realm_names: dict[int, str] = {0: ""}
        self._realm_indices: dict[int, dict[str, int]] = {0: {}}
        self._global_index: dict[str, list[int]] = {}
        self._tags: set[str] = set()
        self._sorters: dict[int, Sorter] = {0: LEVENSHTEIN}
        self._metrics: dict[int, Metric] = {}
        self._cache: dict[KeyPair, NoteRecord] = {}

    @classmethod
    async def load(
        cls, store: Store, config: IndexConfig | None = None,
    ) -> PhraseIndex:
        """Read the index from ``store``, initializing it if it is empty."""
        index = cls(store, config)
        await index.reload()
        return index

    @_serialized
    async def reload(self) -> None:
        """Discard in-memory state and re-read it from the store."""
        stored = await self._get([REALMS_KEY, INDEX_KEY, TAGS_KEY, SORTERS_KEY])
        realms = codec.realms_from_value(stored.get(REALMS_KEY))
        storable: dict[str, Any] = {}
        if "" not in realms:
            realms[""] = DEFAULT_REALM
            storable[REALMS_KEY] = codec.realms_to_value(realms)
        found = await self._get(str(info.pk) for info in realms.values())
        indices = {
            info.pk: codec.realm_index_from_value(found.get(str(info.pk)))
            for info in realms.values()
        }
        if "0" not in found:
            storable["0"] = []
        if storable:
            await self._set(storable)
            logger.info("Initialized the default realm")

        self._reset()
        self._realms = realms
        self._realm_names = {info.pk: name for name, info in realms.items()}
        self._realm_indices = indices
        self._global_index = codec.global_index_from_value(stored.get(INDEX_KEY))
        self._tags = set(stored.get(TAGS_KEY) or ())
        for value in stored.get(SORTERS_KEY) or ():
            sorter = codec.sorter_from_value(value)
            if sorter.pk > 0:
                self._sorters[sorter.pk] = sorter
        logger.debug(
            f"Loaded {len(realms)} realm(s), "
            f"{sum(len(i) for i in indices.values())} phrase(s)"
        )

    # ------------------------------------------------------------------
    # Store access
    # ------------------------------------------------------------------

    async def _call_store(self, operation: str, *args: Any) -> Any:
        try:
            return await getattr(self._store, operation)(*args)
        except StoreError:
            raise
        except Exception as e:
            raise StoreError(f"Store {operation} failed: {e}") from e

    async def _get(self, keys: Iterable[str]) -> dict[str, Any]:
        keys = list(keys)
        if not keys:
            return {}
        return await self._call_store("get", keys)

    async def _set(self, items: dict[str, Any]) -> None:
        await self._call_store("set", items)

    async def _remove(self, keys: Iterable[str]) -> None:
        keys = list(keys)
        if keys:
            await self._call_store("remove", keys)

    async def _fetch(
        self, keys: Iterable[KeyPair], *, cache: bool = True,
    ) -> dict[KeyPair, NoteRecord]:
        """Cached notes for ``keys``, fetching the rest from the store.

        Keys absent from the store are absent from the result. The returned
        records are the cached originals and must not be handed out.
        """
        notes: dict[KeyPair, NoteRecord] = {}
        missing: list[KeyPair] = []
        for key in dict.fromkeys(keys):
            note = self._cache.get(key)
            if note is None:
                missing.append(key)
            else:
                notes[key] = note
        if missing:
            found = await self._get(key.enkey() for key in missing)
            for key in missing:
                value = found.get(key.enkey())
                if value is None:
                    continue
                note = codec.note_from_value(value)
                note.key = key
                notes[key] = note
                if cache:
                    self._cache[key] = note
            logger.debug(f"Fetched {len(found)} of {len(missing)} uncached note(s)")
        return notes

    # ------------------------------------------------------------------
    # Realm resolution and normalization
    # ------------------------------------------------------------------

    def find_realm(self, realm: RealmIdentifier = None) -> tuple[str, RealmInfo]:
        """Resolve a realm name, pk or RealmInfo to ``(name, info)``.

        Anything unresolvable resolves to the default realm.
        """
        resolved = self._resolve_realm(realm)
        return resolved if resolved is not None else ("", self._realms[""])

    def _resolve_realm(self, realm: RealmIdentifier) -> tuple[str, RealmInfo] | None:
        if realm is None:
            return None
        if isinstance(realm, RealmInfo):
            realm = realm.pk
        if isinstance(realm, bool):
            raise TypeError(f"Not a realm identifier: {realm!r}")
        if isinstance(realm, int):
            name = self._realm_names.get(realm)
            return None if name is None else (name, self._realms[name])
        if isinstance(realm, str):
            info = self._realms.get(realm)
            return None if info is None else (realm, info)
        raise TypeError(f"Not a realm identifier: {realm!r}")

    def _require_realm(self, realm: RealmIdentifier) -> tuple[str, RealmInfo]:
        resolved = self._resolve_realm(realm)
        if resolved is None:
            raise EntityNotFoundError(f"Realm not found: {realm!r}")
        return resolved

    def realms(self) -> dict[str, RealmInfo]:
        return dict(self._realms)

    def normalize(self, phrase: str, realm: RealmIdentifier = None) -> str:
        """Normalize a phrase with the realm's normalizer."""
        _, info = self.find_realm(realm)
        return get_normalizer(info.normalizer)(phrase)

    def default_normalize(self, phrase: str) -> str:
        return DEFAULT(phrase)

    def key(self, phrase: str, realm: RealmIdentifier = None) -> KeyPair | None:
        """The key a phrase is stored under in a realm, if it is indexed."""
        _, info = self.find_realm(realm)
        pk = self._realm_indices[info.pk].get(self.normalize(phrase, info))
        return None if pk is None else KeyPair(info.pk, pk)

    def relations_for_realm(self, realm: RealmIdentifier = None) -> frozenset[str]:
        _, info = self.find_realm(realm)
        return relation_labels(info.relations)

    def reverse_relation(
        self, realm: RealmIdentifier, relation: str,
    ) -> str | None:
        _, info = self.find_realm(realm)
        return reverse_relation(info.relations, relation)

    @property
    def tags(self) -> frozenset[str]:
        return frozenset(self._tags)

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    @_serialized
    async def find(
        self, phrase: str, realm: RealmIdentifier = None,
    ) -> FindResponse:
        """Look a phrase up in a realm, or across all realms.

        Without a realm the default normalization is looked up in the global
        index; if several realms contain the phrase the response lists them
        for the caller to choose from.
        """
        if realm is None:
            realms = self._global_index.get(self.default_normalize(phrase), [])
            if not realms:
                return FindResponse(FindOutcome.NONE)
            if len(realms) > 1:
                return FindResponse(FindOutcome.AMBIGUOUS, realms=tuple(realms))
            realm = realms[0]
        name, info = self.find_realm(realm)
        key = self.key(phrase, info)
        if key is None:
            return FindResponse(FindOutcome.NONE)
        note = (await self._fetch([key])).get(key)
        if note is None:
            logger.warning(f"Index entry {key.enkey()} has no stored note")
            return FindResponse(FindOutcome.NONE)
        return FindResponse(FindOutcome.FOUND, match=_clone(note), realm=name)

    def similar(
        self,
        phrase: str,
        realm: RealmIdentifier = None,
        *,
        sorter: int = 0,
        limit: int | None = None,
    ) -> list[SimilarPhrase]:
        """Rank a realm's other phrases by edit distance, closest first."""
        _, info = self.find_realm(realm)
        norm = self.normalize(phrase, info)
        metric = self.metric(sorter)
        ranked = sorted(
            (
                SimilarPhrase(metric(norm, candidate), candidate,
                              KeyPair(info.pk, pk))
                for candidate, pk in self._realm_indices[info.pk].items()
                if candidate != norm
            ),
            key=lambda s: (s.distance, s.phrase),
        )
        return ranked[:limit if limit is not None else self.config.similar_count]

    async def scan(
        self, realms: Iterable[RealmIdentifier] | None = None,
    ) -> AsyncIterator[NoteRecord]:
        """Yield a copy of every stored note, in no particular order.

        ``realms`` restricts the scan; each of them must exist.
        """
        wanted = None
        if realms is not None:
            wanted = {self._require_realm(r)[1].pk for r in realms}
        keys = [
            KeyPair(realm, pk)
            for realm, index in self._realm_indices.items()
            if wanted is None or realm in wanted
            for pk in index.values()
        ]
        size = self.config.scan_batch_size
        for start in range(0, len(keys), size):
            notes = await self._fetch(keys[start:start + size], cache=False)
            for note in notes.values():
                yield _clone(note)

    async def search(
        self,
        phrase: str | None = None,
        *,
        realms: Iterable[RealmIdentifier] | None = None,
        tags: Iterable[str] = (),
        url: str | None = None,
        after: datetime | str | None = None,
        before: datetime | str | None = None,
        strictness: Strictness | str = Strictness.EXACT,
        sorter: int | None = None,
        limit: int | None = None,
    ) -> FindResponse:
        """Ad hoc query over stored notes.

        A note matches when it is in one of ``realms``, carries every tag in
        ``tags``, has a citation whose source URL contains ``url``, and has
        citations on or after ``after`` and on or before ``before``. With a
        ``phrase``, its own phrase or one of its citation phrases must also
        match: exactly once normalized for the note's realm, or, with fuzzy
        strictness, containing the normalized query's characters in order.

        Several matches are ranked by the distance to ``phrase`` under
        ``sorter`` when both are given, otherwise by realm and normalized
        phrase, and cut to ``limit``.
        """
        strictness = Strictness(strictness)
        tags = list(tags)
        start = as_utc(after) if after is not None else None
        end = as_utc(before) if before is not None else None

        matched: list[NoteRecord] = []
        async for note in self.scan(realms):
            if not passes_filters(note, tags=tags, url=url, start=start, end=end):
                continue
            if phrase is not None and not self._phrase_matches(
                phrase, note, strictness
            ):
                continue
            matched.append(note)

        if not matched:
            return FindResponse(FindOutcome.NONE)
        if len(matched) == 1:
            note = matched[0]
            return FindResponse(
                FindOutcome.FOUND, match=note, realm=self.find_realm(note.realm)[0],
            )

        def fallback(note: NoteRecord) -> tuple[int, str]:
            return note.realm, self.normalize(note.phrase, note.realm)

        if sorter is not None and phrase is not None:
            metric = self.metric(sorter)
            query = squish(phrase.lower())
            matched.sort(
                key=lambda n: (metric(query, squish(n.phrase.lower())), *fallback(n))
            )
        else:
            matched.sort(key=fallback)
        if limit is not None:
            matched = matched[:limit]
        return FindResponse(
            FindOutcome.AMBIGUOUS,
            realms=tuple(dict.fromkeys(n.realm for n in matched)),
            matches=tuple(matched),
        )

    def _phrase_matches(
        self, phrase: str, note: NoteRecord, strictness: Strictness,
    ) -> bool:
        _, info = self.find_realm(note.realm)
        query = self.normalize(phrase, info)
        candidates = [self.normalize(p, info) for p in note_phrases(note)]
        if strictness is Strictness.EXACT:
            return query in candidates
        matcher = fuzzy_matcher(query)
        return any(matcher.search(c) for c in candidates)

    async def memfree(self) -> int:
        """Bytes left before the store reaches its capacity."""
        used = await self._call_store("get_bytes_in_use")
        return self.config.capacity_bytes - used

    # ------------------------------------------------------------------
    # Phrase mutations
    # ------------------------------------------------------------------

    @_serialized
    async def add(self, phrase: str, data: NoteRecord) -> int:
        """Store ``data`` under ``phrase`` in realm ``data.realm``.

        Returns the phrase's primary key within the realm.
        """
        return await self._add(phrase, data)

    async def save(self, note: NoteRecord) -> int:
        """Store a note under its own phrase and realm."""
        realm = note.key.realm if note.key is not None else note.realm
        return await self.add(note.phrase, dataclasses.replace(note, realm=realm))

    async def _add(self, phrase: str, data: NoteRecord) -> int:
        name, info = self.find_realm(data.realm)
        norm = self.normalize(phrase, info)
        if not norm:
            raise ValidationError(f"Phrase has no indexable characters: {phrase!r}")

        storable: dict[str, Any] = {}
        realm_index = self._realm_indices[info.pk]
        new_realm_index: dict[str, int] | None = None
        new_global: dict[str, list[int]] | None = None
        old: NoteRecord | None = None
        pk = realm_index.get(norm)
        if pk is None:
            pk = max(realm_index.values(), default=-1) + 1
            new_realm_index = {**realm_index, norm: pk}
            storable[str(info.pk)] = codec.realm_index_to_value(new_realm_index)
            default_form = self.default_normalize(phrase)
            listed = self._global_index.get(default_form, [])
            if info.pk not in listed:
                new_global = {**self._global_index, default_form: [*listed, info.pk]}
                storable[INDEX_KEY] = codec.global_index_to_value(new_global)
        key = KeyPair(info.pk, pk)
        if new_realm_index is None:
            old = (await self._fetch([key])).get(key)

        note = _clone(data)
        note.key = key
        note.realm = info.pk
        # the phrase that created the entry stays canonical; it is also the
        # phrase the global index entry above was derived from
        note.phrase = old.phrase if old is not None else phrase
        note.relations = self._clean_relations(note.relations)

        new_tags = self._tags | note.tags
        if len(new_tags) > len(self._tags):
            storable[TAGS_KEY] = sorted(new_tags)

        modified = await self._reverse_edges(name, info, key, note, old)
        storable[key.enkey()] = codec.note_to_value(note)
        for target_key, target in modified.items():
            storable[target_key.enkey()] = codec.note_to_value(target)

        await self._set(storable)

        if new_realm_index is not None:
            self._realm_indices[info.pk] = new_realm_index
        if new_global is not None:
            self._global_index = new_global
        self._tags = new_tags
        self._cache[key] = note
        self._cache.update(modified)
        logger.debug(
            f"Saved {note.phrase!r} as {key.enkey()} "
            f"({len(modified)} related note(s) updated)"
        )
        return pk

    @staticmethod
    def _clean_relations(
        relations: dict[str, Iterable[Any]],
    ) -> dict[str, list[KeyPair]]:
        cleaned: dict[str, list[KeyPair]] = {}
        for label, keys in relations.items():
            pairs = list(dict.fromkeys(KeyPair.coerce(k) for k in keys))
            if pairs:
                cleaned[label] = pairs
        return cleaned

    def _check_relation(
        self, name: str, info: RealmInfo, source: KeyPair, relation: str,
        target: KeyPair,
    ) -> str:
        """Validate one edge and return the label of its reverse."""
        reverse = reverse_relation(info.relations, relation)
        if reverse is None:
            raise ValidationError(
                f"Realm {name!r} has no relation {relation!r}"
            )
        if source == target:
            raise ValidationError(
                f"A phrase cannot be related to itself: {source.enkey()}"
            )
        if target.realm != source.realm and relation != SEE_ALSO:
            raise ValidationError(
                f"Only {SEE_ALSO!r} may relate phrases in different realms, "
                f"not {relation!r}"
            )
        if target.realm not in self._realm_indices:
            raise EntityNotFoundError(f"Realm not found: {target.realm!r}")
        return reverse

    async def _reverse_edges(
        self,
        name: str,
        info: RealmInfo,
        key: KeyPair,
        note: NoteRecord,
        old: NoteRecord | None,
    ) -> dict[KeyPair, NoteRecord]:
        """Copies of related notes, updated to mirror ``note``'s relations."""
        added = [
            (label, target, self._check_relation(name, info, key, label, target))
            for label, targets in note.relations.items()
            for target in targets
        ]
        current = {(label, t) for label, targets in note.relations.items() for t in targets}
        dropped = [
            (label, target)
            for label, targets in (old.relations.items() if old else ())
            for target in targets
            if (label, target) not in current
        ]

        related = await self._fetch(
            [t for _, t, _ in added] + [t for _, t in dropped]
        )
        absent = sorted({t.enkey() for _, t, _ in added if t not in related})
        if absent:
            raise ConsistencyViolation(
                f"Related phrase(s) not stored: {', '.join(absent)}"
            )

        modified: dict[KeyPair, NoteRecord] = {}

        def working_copy(target: KeyPair) -> NoteRecord:
            if target not in modified:
                modified[target] = _clone(related[target])
            return modified[target]

        for label, target in dropped:
            reverse = reverse_relation(info.relations, label)
            if target not in related or reverse is None:
                logger.warning(
                    f"Cannot unlink {key.enkey()} from {target.enkey()} "
                    f"under {label!r}"
                )
                continue
            if key in related[target].relations.get(reverse, ()):
                working_copy(target).unlink(reverse, key)
        for label, target, reverse in added:
            current_target = modified.get(target, related[target])
            if key not in current_target.relations.get(reverse, ()):
                working_copy(target).link(reverse, key)
        return modified

    @_serialized
    async def relate(
        self, source: KeyPair, relation: str, target: KeyPair,
    ) -> tuple[NoteRecord, NoteRecord]:
        """Relate two stored notes under ``relation`` and its reverse."""
        return await self._relate(KeyPair.coerce(source), relation,
                                  KeyPair.coerce(target))

    async def _relate(
        self, source: KeyPair, relation: str, target: KeyPair,
    ) -> tuple[NoteRecord, NoteRecord]:
        name, info = self._require_realm(source.realm)
        reverse = self._check_relation(name, info, source, relation, target)
        notes = await self._fetch([source, target])
        for key in (source, target):
            if key not in notes:
                raise EntityNotFoundError(f"Phrase not stored: {key.enkey()}")

        head, dependent = _clone(notes[source]), _clone(notes[target])
        changed = head.link(relation, target)
        changed = dependent.link(reverse, source) or changed
        if changed:
            await self._set({
                source.enkey(): codec.note_to_value(head),
                target.enkey(): codec.note_to_value(dependent),
            })
            self._cache[source] = head
            self._cache[target] = dependent
        return _clone(head), _clone(dependent)

    @_serialized
    async def delete(self, phrase: str, realm: RealmIdentifier = None) -> bool:
        """Delete a phrase and every relation it takes part in.

        Returns whether other notes had to be modified.
        """
        return await self._delete(phrase, realm)

    async def _delete(self, phrase: str, realm: RealmIdentifier) -> bool:
        name, info = self.find_realm(realm)
        norm = self.normalize(phrase, info)
        realm_index = self._realm_indices[info.pk]
        pk = realm_index.get(norm)
        if pk is None:
            raise EntityNotFoundError(
                f"Phrase not found in realm {name!r}: {phrase!r}"
            )
        key = KeyPair(info.pk, pk)
        note = (await self._fetch([key])).get(key)
        modified = await self._strip_references(key, note)

        new_realm_index = {k: v for k, v in realm_index.items() if k != norm}
        storable: dict[str, Any] = {
            str(info.pk): codec.realm_index_to_value(new_realm_index),
        }
        new_global = await self._unlist(
            info, new_realm_index,
            self.default_normalize(note.phrase if note else phrase),
            self._global_index,
        )
        if new_global is not None:
            storable[INDEX_KEY] = codec.global_index_to_value(new_global)
        for target, other in modified.items():
            storable[target.enkey()] = codec.note_to_value(other)

        await self._set(storable)

        self._realm_indices[info.pk] = new_realm_index
        if new_global is not None:
            self._global_index = new_global
        self._cache.pop(key, None)
        self._cache.update(modified)
        # the note is unreachable now; removing it only reclaims space
        await self._remove([key.enkey()])
        logger.debug(f"Deleted {phrase!r} ({key.enkey()}) from realm {name!r}")
        return bool(modified)

    async def _strip_references(
        self, key: KeyPair, note: NoteRecord | None,
    ) -> dict[KeyPair, NoteRecord]:
        """Copies of the notes ``note`` relates to, with ``key`` unlinked."""
        modified: dict[KeyPair, NoteRecord] = {}
        if note is None:
            return modified
        targets = {t for keys in note.relations.values() for t in keys}
        related = await self._fetch(targets)
        for target in targets:
            if target not in related:
                logger.warning(
                    f"{key.enkey()} is related to missing note {target.enkey()}"
                )
                continue
            other = _clone(related[target])
            changed = False
            for label in list(other.relations):
                changed = other.unlink(label, key) or changed
            if changed:
                modified[target] = other
        return modified

    async def _unlist(
        self,
        info: RealmInfo,
        realm_index: dict[str, int],
        default_form: str,
        global_index: dict[str, list[int]],
    ) -> dict[str, list[int]] | None:
        """``global_index`` without the realm under ``default_form``.

        Returns None when nothing changes: the realm is not listed, or
        another of its phrases still has that default form.
        """
        listed = global_index.get(default_form, [])
        if info.pk not in listed or await self._shares_default_form(
            info, realm_index, default_form
        ):
            return None
        unlisted = dict(global_index)
        remaining = [r for r in listed if r != info.pk]
        if remaining:
            unlisted[default_form] = remaining
        else:
            del unlisted[default_form]
        return unlisted

    async def _shares_default_form(
        self, info: RealmInfo, realm_index: dict[str, int], default_form: str,
    ) -> bool:
        """Whether any phrase in ``realm_index`` normalizes to ``default_form``."""
        if get_normalizer(info.normalizer) is DEFAULT:
            return default_form in realm_index
        notes = await self._fetch(
            (KeyPair(info.pk, pk) for pk in realm_index.values()), cache=False,
        )
        return any(
            self.default_normalize(n.phrase) == default_form
            for n in notes.values()
        )

    @_serialized
    async def delete_relation(
        self,
        phrase: str,
        realm: RealmIdentifier,
        relation: str,
        pair: KeyPair,
    ) -> None:
        """Remove one relation of a phrase together with its reverse."""
        name, info = self.find_realm(realm)
        key = self.key(phrase, info)
        if key is None:
            raise EntityNotFoundError(
                f"Phrase not found in realm {name!r}: {phrase!r}"
            )
        pair = KeyPair.coerce(pair)
        reverse = reverse_relation(info.relations, relation)
        if reverse is None:
            raise RelationError(
                f"Could not find the reverse of {relation!r} in realm {name!r}"
            )
        notes = await self._fetch([key, pair])
        if key not in notes:
            raise EntityNotFoundError(f"Phrase not stored: {key.enkey()}")

        changed: dict[KeyPair, NoteRecord] = {}
        near = _clone(notes[key])
        if near.unlink(relation, pair):
            changed[key] = near
        if pair in notes:
            other = _clone(notes[pair])
            if other.unlink(reverse, key):
                changed[pair] = other
        if changed:
            await self._set(
                {k.enkey(): codec.note_to_value(n) for k, n in changed.items()}
            )
            self._cache.update(changed)

    @_serialized
    async def switch_realm(
        self,
        phrase: str,
        source: RealmIdentifier,
        target: RealmIdentifier,
    ) -> NoteRecord:
        """Move a note to another realm, keeping only its "see also" relations.

        The note is re-indexed under its stored phrase. Both realm indices,
        the global index, the moved note and every related note are written
        together; the old note key is removed last.
        """
        src_name, src = self.find_realm(source)
        dst_name, dst = self._require_realm(target)
        if src.pk == dst.pk:
            raise ValidationError(f"{phrase!r} is already in realm {dst_name!r}")
        src_norm = self.normalize(phrase, src)
        key = self.key(phrase, src)
        note = (await self._fetch([key])).get(key) if key is not None else None
        if note is None:
            raise EntityNotFoundError(
                f"Phrase not found in realm {src_name!r}: {phrase!r}"
            )
        dst_index = self._realm_indices[dst.pk]
        dst_norm = self.normalize(note.phrase, dst)
        if not dst_norm:
            raise ValidationError(
                f"Phrase has no indexable characters in realm {dst_name!r}: "
                f"{note.phrase!r}"
            )
        if dst_norm in dst_index:
            raise DuplicateEntityError(
                f"A note for {note.phrase!r} already exists in realm {dst_name!r}"
            )
        keepable = note.related(SEE_ALSO)
        if keepable and SEE_ALSO not in relation_labels(dst.relations):
            logger.warning(
                f"Realm {dst_name!r} has no {SEE_ALSO!r} relation; "
                f"dropping {len(keepable)} relation(s) of {phrase!r}"
            )
            keepable = []

        pk = max(dst_index.values(), default=-1) + 1
        moved_key = KeyPair(dst.pk, pk)
        moved = _clone(note)
        moved.key = moved_key
        moved.realm = dst.pk
        moved.relations = {}

        modified = await self._strip_references(key, note)
        existing = await self._fetch(keepable)
        for other in keepable:
            if other not in existing:
                continue
            reverse = self._check_relation(dst_name, dst, moved_key, SEE_ALSO, other)
            if other not in modified:
                modified[other] = _clone(existing[other])
            moved.link(SEE_ALSO, other)
            modified[other].link(reverse, moved_key)

        new_src_index = {
            k: v for k, v in self._realm_indices[src.pk].items() if k != src_norm
        }
        new_dst_index = {**dst_index, dst_norm: pk}
        default_form = self.default_normalize(note.phrase)
        new_global = await self._unlist(
            src, new_src_index, default_form, self._global_index,
        )
        if new_global is None:
            new_global = dict(self._global_index)
        listed = new_global.get(default_form, [])
        if dst.pk not in listed:
            new_global[default_form] = [*listed, dst.pk]

        storable: dict[str, Any] = {
            str(src.pk): codec.realm_index_to_value(new_src_index),
            str(dst.pk): codec.realm_index_to_value(new_dst_index),
            INDEX_KEY: codec.global_index_to_value(new_global),
            moved_key.enkey(): codec.note_to_value(moved),
        }
        for target_key, other in modified.items():
            storable[target_key.enkey()] = codec.note_to_value(other)

        await self._set(storable)

        self._realm_indices[src.pk] = new_src_index
        self._realm_indices[dst.pk] = new_dst_index
        self._global_index = new_global
        self._cache.pop(key, None)
        self._cache[moved_key] = moved
        self._cache.update(modified)
        await self._remove([key.enkey()])
        logger.info(
            f"Moved {note.phrase!r} from realm {src_name!r} to {dst_name!r} "
            f"as {moved_key.enkey()}"
        )
        return _clone(moved)

    # ------------------------------------------------------------------
    # Realm management
    # ------------------------------------------------------------------

    @_serialized
    async def save_realm(
        self,
        name: str,
        description: str | None = None,
        normalizer: str = "",
        relations: Iterable[tuple[str, str]] | None = None,
    ) -> int:
        """Create a realm, or update the one with this name.

        Returns the realm's primary key.
        """
        name = squish(name)
        description = squish(description or "") or "[no description]"
        normalizer = normalizer or ""
        pairs = normalize_pairs(relations)
        existing = self._realms.get(name)
        storable: dict[str, Any] = {}
        if existing is not None:
            pk = existing.pk
            renormalized = (
                get_normalizer(existing.normalizer) is not get_normalizer(normalizer)
            )
            if renormalized and self._realm_indices[pk]:
                raise ValidationError(
                    f"Cannot change the normalizer of non-empty realm {name!r}"
                )
        else:
            pk = max(info.pk for info in self._realms.values()) + 1
            storable[str(pk)] = []
        info = RealmInfo(
            pk=pk, description=description, normalizer=normalizer,
            relations=pairs,
        )
        realms = {**self._realms, name: info}
        storable[REALMS_KEY] = codec.realms_to_value(realms)

        await self._set(storable)

        self._realms = realms
        self._realm_names[pk] = name
        self._realm_indices.setdefault(pk, {})
        logger.info(f"{'Updated' if existing else 'Created'} realm {name!r} ({pk})")
        return pk

    @_serialized
    async def remove_realm(self, realm: RealmIdentifier) -> None:
        """Delete a realm with all its phrases and all relations into it."""
        name, info = self._require_realm(realm)
        if info.pk == 0:
            raise ValidationError("The default realm cannot be removed")
        keys = [KeyPair(info.pk, pk) for pk in self._realm_indices[info.pk].values()]
        notes = await self._fetch(keys, cache=False)
        outside = {
            target
            for note in notes.values()
            for targets in note.relations.values()
            for target in targets
            if target.realm != info.pk
        }
        related = await self._fetch(outside)
        modified: dict[KeyPair, NoteRecord] = {}
        for target, other in related.items():
            other = _clone(other)
            changed = False
            for label in list(other.relations):
                for ref in other.related(label):
                    if ref.realm == info.pk:
                        changed = other.unlink(label, ref) or changed
            if changed:
                modified[target] = other

        global_index = {}
        for phrase, realms in self._global_index.items():
            remaining = [r for r in realms if r != info.pk]
            if remaining:
                global_index[phrase] = remaining
        realms = {n: i for n, i in self._realms.items() if i.pk != info.pk}
        storable: dict[str, Any] = {
            REALMS_KEY: codec.realms_to_value(realms),
            INDEX_KEY: codec.global_index_to_value(global_index),
        }
        for target, other in modified.items():
            storable[target.enkey()] = codec.note_to_value(other)

        await self._set(storable)

        self._realms = realms
        del self._realm_names[info.pk]
        del self._realm_indices[info.pk]
        self._global_index = global_index
        for key in [k for k in self._cache if k.realm == info.pk]:
            del self._cache[key]
        self._cache.update(modified)
        await self._remove([str(info.pk)] + [k.enkey() for k in keys])
        logger.info(
            f"Removed realm {name!r} ({info.pk}) with {len(keys)} phrase(s)"
        )

    # ------------------------------------------------------------------
    # Tags
    # ------------------------------------------------------------------

    @_serialized
    async def reset_tags(self) -> frozenset[str]:
        """Rebuild the tag set from the tags of every stored note."""
        tags: set[str] = set()
        async for note in self.scan():
            tags |= note.tags
        await self._set({TAGS_KEY: sorted(tags)})
        self._tags = tags
        return frozenset(tags)

    # ------------------------------------------------------------------
    # Sorters
    # ------------------------------------------------------------------

    def sorters(self) -> list[Sorter]:
        return [self._sorters[pk] for pk in sorted(self._sorters)]

    def sorter(self, pk: int) -> Sorter:
        try:
            return self._sorters[pk]
        except KeyError:
            raise EntityNotFoundError(f"Sorter not found: {pk!r}") from None

    def metric(self, pk: int = 0) -> Metric:
        """The edit-distance function of a sorter, built on first use."""
        if pk not in self._metrics:
            self._metrics[pk] = metric_for(self.sorter(pk))
        return self._metrics[pk]

    @_serialized
    async def save_sorter(self, sorter: Sorter) -> int:
        """Create a sorter, or update the one with ``sorter.pk``."""
        name = squish(sorter.name)
        if not name:
            raise ValidationError("Sorter name must not be blank")
        if sorter.prefix < 0 or sorter.suffix < 0:
            raise ValidationError(
                f"Sorter {name!r}: prefix and suffix must be non-negative"
            )
        if sorter.pk == 0:
            raise ValidationError(f"The {LEVENSHTEIN.name} sorter cannot be changed")
        pk = sorter.pk if sorter.pk in self._sorters else max(self._sorters) + 1
        for other in self._sorters.values():
            if other.pk != pk and other.name == name:
                raise DuplicateEntityError(f"Sorter name already in use: {name!r}")
        sorters = {**self._sorters, pk: dataclasses.replace(sorter, pk=pk, name=name)}

        await self._set({SORTERS_KEY: self._sorters_value(sorters)})

        self._sorters = sorters
        self._metrics.pop(pk, None)
        return pk

    @_serialized
    async def delete_sorter(self, pk: int) -> None:
        if pk == 0:
            raise ValidationError(f"The {LEVENSHTEIN.name} sorter cannot be deleted")
        self.sorter(pk)
        sorters = {k: v for k, v in self._sorters.items() if k != pk}

        await self._set({SORTERS_KEY: self._sorters_value(sorters)})

        self._sorters = sorters
        self._metrics.pop(pk, None)

    @staticmethod
    def _sorters_value(sorters: dict[int, Sorter]) -> list[dict[str, Any]]:
        return [
            codec.sorter_to_value(s) for pk, s in sorted(sorters.items()) if pk
        ]

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    @_serialized
    async def clear(self) -> None:
        """Delete everything from the store and start over with the default realm."""
        await self._call_store("clear")
        self._reset()
        await self._set({
            REALMS_KEY: codec.realms_to_value(self._realms),
            "0": [],
        })
        logger.info("Cleared the phrase index")

    @_serialized
    async def check(self) -> list[ValidationResult]:
        """Check the stored notes against the index invariants."""
        keys = [
            KeyPair(realm, pk)
            for realm, index in self._realm_indices.items()
            for pk in index.values()
        ]
        notes = await self._fetch(keys, cache=False)
        referenced = {
            target
            for note in notes.values()
            for targets in note.relations.values()
            for target in targets
            if target not in notes
        }
        notes.update(await self._fetch(referenced, cache=False))
        return _validator.validate_all(
            self._realms,
            self._realm_indices,
            self._global_index,
            self._tags,
            notes,
        )
