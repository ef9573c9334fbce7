"""Custom exception hierarchy for phrasenote."""


class PhraseIndexError(Exception):
    """Base exception for all phrasenote errors."""


class StoreError(PhraseIndexError):
    """The external key/value store failed a get, set, remove or size call."""


class ConsistencyViolation(PhraseIndexError):
    """An operation would break an index invariant (e.g., missing relation target)."""


class ValidationError(PhraseIndexError):
    """Invalid data (self relation, unknown label, protected realm or sorter)."""


class EntityNotFoundError(PhraseIndexError):
    """Phrase, realm or sorter doesn't exist."""


class DuplicateEntityError(PhraseIndexError):
    """Entity with the same name already exists."""


class RelationError(PhraseIndexError):
    """Relation constraint violation (e.g., no reverse label in the realm)."""


class ConfigError(PhraseIndexError):
    """Failed to load a configuration file."""

    def __init__(self, message: str, line: int | None = None):
        self.line = line
        super().__init__(message)
