"""Domain model dataclasses and enums for phrasenote."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, NamedTuple

from phrasenote.relations import DEFAULT_RELATIONS

# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class FindOutcome(str, Enum):
    """Discriminator for the result of a phrase lookup."""

    FOUND = "found"
    AMBIGUOUS = "ambiguous"
    NONE = "none"


class ValidationSeverity(str, Enum):
    """Severity level for consistency check results."""

    ERROR = "ERROR"
    WARNING = "WARNING"


# ---------------------------------------------------------------------------
# Identifiers
# ---------------------------------------------------------------------------

class KeyPair(NamedTuple):
    """Global identifier of a stored note: ``(realm pk, phrase pk)``."""

    realm: int
    phrase: int

    def enkey(self) -> str:
        """The store key the note lives under."""
        return f"{self.realm}:{self.phrase}"

    @classmethod
    def dekey(cls, key: str) -> KeyPair:
        realm, _, phrase = key.partition(":")
        return cls(int(realm), int(phrase))

    @classmethod
    def coerce(cls, value: Any) -> KeyPair:
        """Accept a KeyPair, a 2-sequence, or an ``"r:p"`` string."""
        if isinstance(value, KeyPair):
            return value
        if isinstance(value, str):
            return cls.dekey(value)
        realm, phrase = value
        return cls(int(realm), int(phrase))


# ---------------------------------------------------------------------------
# Dataclasses
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class RealmInfo:
    """A realm: an isolated namespace of phrases."""

    pk: int
    description: str = "[no description]"
    normalizer: str = ""
    relations: tuple[tuple[str, str], ...] = DEFAULT_RELATIONS


@dataclass(slots=True)
class NoteRecord:
    """A phrase entry with its annotations and relations."""

    phrase: str
    realm: int = 0
    key: KeyPair | None = None
    note: str = ""
    tags: set[str] = field(default_factory=set)
    citations: list[dict[str, Any]] = field(default_factory=list)
    relations: dict[str, list[KeyPair]] = field(default_factory=dict)
    starred: bool = False
    extra: dict[str, Any] = field(default_factory=dict)

    def related(self, relation: str) -> list[KeyPair]:
        """Keys related under ``relation``; empty if the label is absent."""
        return list(self.relations.get(relation, ()))

    def link(self, relation: str, key: KeyPair) -> bool:
        """Add ``key`` under ``relation``. Returns False if already present."""
        pairs = self.relations.setdefault(relation, [])
        if key in pairs:
            return False
        pairs.append(key)
        return True

    def unlink(self, relation: str, key: KeyPair) -> bool:
        """Remove ``key`` from ``relation``, dropping the label when emptied."""
        pairs = self.relations.get(relation)
        if not pairs or key not in pairs:
            return False
        remaining = [k for k in pairs if k != key]
        if remaining:
            self.relations[relation] = remaining
        else:
            del self.relations[relation]
        return True


@dataclass(frozen=True, slots=True)
class Sorter:
    """A named configuration for the weighted edit-distance metric."""

    name: str
    pk: int = -1
    description: str = ""
    prefix: int = 0
    suffix: int = 0
    insertables: str = ""
    similars: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class FindResponse:
    """Outcome of :meth:`PhraseIndex.find` and :meth:`PhraseIndex.search`.

    ``matches`` is only filled by an ambiguous search.
    """

    type: FindOutcome
    match: NoteRecord | None = None
    realm: str | None = None
    realms: tuple[int, ...] = ()
    matches: tuple[NoteRecord, ...] = ()

    @property
    def found(self) -> bool:
        return self.type is FindOutcome.FOUND


@dataclass(frozen=True, slots=True)
class SimilarPhrase:
    """A phrase ranked by edit distance."""

    distance: float
    phrase: str
    key: KeyPair


@dataclass(frozen=True, slots=True)
class ValidationResult:
    """A single consistency finding (error or warning)."""

    rule_id: str
    severity: str
    entity_type: str
    entity_id: str
    message: str
    details: dict[str, Any] | None
