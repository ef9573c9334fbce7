__version__ = "0.1.0"

from .exceptions import (
    PhraseIndexError as PhraseIndexError,
    StoreError as StoreError,
    ConsistencyViolation as ConsistencyViolation,
    ValidationError as ValidationError,
    EntityNotFoundError as EntityNotFoundError,
    DuplicateEntityError as DuplicateEntityError,
    RelationError as RelationError,
    ConfigError as ConfigError,
)

from .models import (
    FindOutcome as FindOutcome,
    FindResponse as FindResponse,
    KeyPair as KeyPair,
    NoteRecord as NoteRecord,
    RealmInfo as RealmInfo,
    SimilarPhrase as SimilarPhrase,
    Sorter as Sorter,
    ValidationResult as ValidationResult,
)

from .normalizers import (
    Normalizer as Normalizer,
    get_normalizer as get_normalizer,
    register_normalizer as register_normalizer,
    normalize as normalize,
)

from .distance import (
    LEVENSHTEIN as LEVENSHTEIN,
    build_edit_distance_metric as build_edit_distance_metric,
)

from .trie import (
    trie as trie,
    trie_pattern as trie_pattern,
)

from .search import (
    Strictness as Strictness,
    relative_window as relative_window,
)

from .config import (
    IndexConfig as IndexConfig,
    load_config as load_config,
)

from .store import (
    Store as Store,
    MemoryStore as MemoryStore,
)

from .index import (
    PhraseIndex as PhraseIndex,
    DEFAULT_REALM as DEFAULT_REALM,
)

__all__ = [
    # Index
    "PhraseIndex",
    "DEFAULT_REALM",
    # Stores
    "Store",
    "MemoryStore",
    # Models
    "FindOutcome",
    "FindResponse",
    "KeyPair",
    "NoteRecord",
    "RealmInfo",
    "SimilarPhrase",
    "Sorter",
    "ValidationResult",
    # Normalizers
    "Normalizer",
    "get_normalizer",
    "register_normalizer",
    "normalize",
    # Matching
    "LEVENSHTEIN",
    "build_edit_distance_metric",
    "trie",
    "trie_pattern",
    # Search
    "Strictness",
    "relative_window",
    # Configuration
    "IndexConfig",
    "load_config",
    # Exceptions
    "PhraseIndexError",
    "StoreError",
    "ConsistencyViolation",
    "ValidationError",
    "EntityNotFoundError",
    "DuplicateEntityError",
    "RelationError",
    "ConfigError",
]
