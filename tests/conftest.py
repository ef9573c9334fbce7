"""Shared test fixtures for phrasenote."""

import pytest

from phrasenote import MemoryStore, NoteRecord, PhraseIndex


class FlakyStore(MemoryStore):
    """A MemoryStore whose operations can be made to fail on demand."""

    def __init__(self, data=None):
        super().__init__(data)
        self.failing: set[str] = set()
        self.error: Exception = RuntimeError("storage unavailable")
        self.calls: list[str] = []
        # operation -> calls that still succeed before it starts failing
        self.allowed: dict[str, int] = {}

    def _maybe_fail(self, operation):
        self.calls.append(operation)
        if operation in self.allowed:
            if self.allowed[operation] == 0:
                raise self.error
            self.allowed[operation] -= 1
        if operation in self.failing:
            raise self.error

    async def get(self, keys):
        self._maybe_fail("get")
        return await super().get(keys)

    async def set(self, items):
        self._maybe_fail("set")
        await super().set(items)

    async def remove(self, keys):
        self._maybe_fail("remove")
        await super().remove(keys)

    async def get_bytes_in_use(self):
        self._maybe_fail("get_bytes_in_use")
        return await super().get_bytes_in_use()

    async def clear(self):
        self._maybe_fail("clear")
        await super().clear()


@pytest.fixture
def store():
    """An empty, controllable in-memory store."""
    return FlakyStore()


@pytest.fixture
async def index(store):
    """A freshly loaded index over an empty store."""
    return await PhraseIndex.load(store)


@pytest.fixture
async def index_with_realms(index):
    """Index with realms 'en' (pk 1) and 'de' (pk 2, German normalizer)."""
    await index.save_realm(
        "en", "English",
        relations=[("see also", "see also"), ("synonym", "synonym"),
                   ("broader", "narrower")],
    )
    await index.save_realm("de", "German", normalizer="German")
    return index


@pytest.fixture
async def index_with_data(index_with_realms):
    """Index with cat (0), dog (1) and pet (2) in realm 'en'."""
    ix = index_with_realms
    await ix.add("cat", NoteRecord(phrase="cat", realm=1, tags={"animal"}))
    await ix.add("dog", NoteRecord(phrase="dog", realm=1, tags={"animal"}))
    await ix.add("pet", NoteRecord(phrase="pet", realm=1))
    return ix
