"""Tests for relating, unrelating, deleting and moving phrases."""

import pytest

from phrasenote import (
    DuplicateEntityError,
    EntityNotFoundError,
    FindOutcome,
    KeyPair,
    NoteRecord,
    PhraseIndex,
    RelationError,
    StoreError,
    ValidationError,
)

CAT, DOG, PET = KeyPair(1, 0), KeyPair(1, 1), KeyPair(1, 2)


class TestRelate:

    async def test_links_both_directions(self, index_with_data):
        head, dependent = await index_with_data.relate(CAT, "broader", PET)
        assert head.related("broader") == [PET]
        assert dependent.related("narrower") == [CAT]
        pet = (await index_with_data.find("pet", "en")).match
        assert pet.related("narrower") == [CAT]

    async def test_idempotent(self, index_with_data, store):
        await index_with_data.relate(CAT, "synonym", DOG)
        store.calls.clear()
        head, _ = await index_with_data.relate(CAT, "synonym", DOG)
        assert head.related("synonym") == [DOG]
        assert "set" not in store.calls

    async def test_accepts_string_keys(self, index_with_data):
        head, _ = await index_with_data.relate("1:0", "synonym", "1:1")
        assert head.related("synonym") == [DOG]

    async def test_self_relation_rejected(self, index_with_data):
        with pytest.raises(ValidationError):
            await index_with_data.relate(CAT, "synonym", CAT)

    async def test_unknown_label_rejected(self, index_with_data):
        with pytest.raises(ValidationError):
            await index_with_data.relate(CAT, "cousin", DOG)

    async def test_missing_note(self, index_with_data):
        with pytest.raises(EntityNotFoundError):
            await index_with_data.relate(CAT, "synonym", KeyPair(1, 42))

    async def test_persisted(self, index_with_data, store):
        await index_with_data.relate(CAT, "broader", PET)
        fresh = await PhraseIndex.load(store)
        pet = (await fresh.find("pet", "en")).match
        assert pet.related("narrower") == [CAT]


class TestDeleteRelation:

    async def test_removes_both_directions(self, index_with_data):
        ix = index_with_data
        await ix.relate(CAT, "broader", PET)
        await ix.delete_relation("cat", "en", "broader", PET)
        cat = (await ix.find("cat", "en")).match
        pet = (await ix.find("pet", "en")).match
        assert cat.relations == {}
        assert pet.relations == {}

    async def test_no_op_safe(self, index_with_data, store):
        store.calls.clear()
        await index_with_data.delete_relation("cat", "en", "synonym", DOG)
        assert "set" not in store.calls

    async def test_unknown_reverse(self, index_with_data):
        with pytest.raises(RelationError):
            await index_with_data.delete_relation("cat", "en", "cousin", DOG)

    async def test_unknown_phrase(self, index_with_data):
        with pytest.raises(EntityNotFoundError):
            await index_with_data.delete_relation("cow", "en", "synonym", DOG)


class TestDelete:

    async def test_removes_phrase(self, index_with_data, store):
        ix = index_with_data
        await ix.delete("cat", "en")
        assert not (await ix.find("cat", "en")).found
        assert not (await ix.find("cat")).found
        assert "1:0" not in store
        assert ["cat", 0] not in store.snapshot()["1"]

    async def test_strips_reverse_edges(self, index_with_data):
        ix = index_with_data
        await ix.relate(CAT, "synonym", DOG)
        await ix.relate(PET, "narrower", CAT)
        assert await ix.delete("cat", "en") is True
        dog = (await ix.find("dog", "en")).match
        pet = (await ix.find("pet", "en")).match
        assert dog.relations == {}
        assert pet.relations == {}
        assert await ix.check() == []

    async def test_nothing_related(self, index_with_data):
        assert await index_with_data.delete("dog", "en") is False

    async def test_unknown_phrase(self, index_with_data):
        with pytest.raises(EntityNotFoundError):
            await index_with_data.delete("unicorn", "en")

    async def test_global_index_kept_for_other_realm(self, index_with_realms):
        ix = index_with_realms
        await ix.add("bank", NoteRecord(phrase="bank", realm=1))
        await ix.add("bank", NoteRecord(phrase="bank", realm=2))
        await ix.delete("bank", "en")
        result = await ix.find("bank")
        assert result.found
        assert result.realm == "de"

    async def test_global_index_kept_for_shared_default_form(self, index_with_realms):
        ix = index_with_realms
        await ix.add("Bär", NoteRecord(phrase="Bär", realm=2))
        await ix.add("Bar", NoteRecord(phrase="Bar", realm=2))
        assert ix.key("Bär", "de") != ix.key("Bar", "de")

        await ix.delete("Bär", "de")
        result = await ix.find("bar")
        assert result.found
        assert result.match.phrase == "Bar"

        await ix.delete("Bar", "de")
        assert not (await ix.find("bar")).found
        assert "bar" not in dict(ix._global_index)

    async def test_global_index_entry_dropped(self, index):
        await index.add("cat", NoteRecord(phrase="cat"))
        await index.delete("cat")
        assert not (await index.find("cat")).found
        assert index._global_index == {}


class TestSwitchRealm:

    async def test_moves_note(self, index_with_data):
        ix = index_with_data
        moved = await ix.switch_realm("dog", "en", "de")
        assert moved.key == KeyPair(2, 0)
        assert moved.realm == 2
        assert moved.tags == {"animal"}
        assert ix.key("dog", "en") is None
        result = await ix.find("dog")
        assert result.realm == "de"

    async def test_keeps_only_see_also(self, index_with_data):
        ix = index_with_data
        await ix.add("kitty", NoteRecord(phrase="kitty"))
        await ix.relate(CAT, "see also", KeyPair(0, 0))
        await ix.relate(CAT, "synonym", DOG)

        moved = await ix.switch_realm("cat", "en", "de")
        assert moved.relations == {"see also": [KeyPair(0, 0)]}
        kitty = (await ix.find("kitty")).match
        assert kitty.related("see also") == [moved.key]
        dog = (await ix.find("dog", "en")).match
        assert dog.relations == {}
        assert await ix.check() == []

    async def test_target_already_has_phrase(self, index_with_data):
        ix = index_with_data
        await ix.add("dog", NoteRecord(phrase="dog", realm=2))
        with pytest.raises(DuplicateEntityError):
            await ix.switch_realm("dog", "en", "de")

    async def test_same_realm(self, index_with_data):
        with pytest.raises(ValidationError):
            await index_with_data.switch_realm("dog", "en", "en")

    async def test_unknown_target_realm(self, index_with_data):
        with pytest.raises(EntityNotFoundError):
            await index_with_data.switch_realm("dog", "en", "fr")

    async def test_unknown_phrase(self, index_with_data):
        with pytest.raises(EntityNotFoundError):
            await index_with_data.switch_realm("cow", "en", "de")

    async def test_written_in_one_batch(self, index_with_data, store):
        ix = index_with_data
        await ix.add("kitty", NoteRecord(phrase="kitty"))
        await ix.relate(CAT, "see also", KeyPair(0, 0))
        store.calls.clear()
        await ix.switch_realm("cat", "en", "de")
        assert store.calls.count("set") == 1
        assert store.calls[-1] == "remove"
        assert "1:0" not in store.snapshot()

    async def test_failed_write_keeps_note(self, index_with_data, store):
        ix = index_with_data
        await ix.add("kitty", NoteRecord(phrase="kitty"))
        await ix.relate(CAT, "see also", KeyPair(0, 0))
        await ix.relate(CAT, "synonym", DOG)
        before = store.snapshot()
        store.failing.add("set")
        with pytest.raises(StoreError):
            await ix.switch_realm("cat", "en", "de")
        store.failing.clear()

        assert store.snapshot() == before
        cat = (await ix.find("cat", "en")).match
        assert cat.related("synonym") == [DOG]
        assert (await ix.find("cat", "de")).type is FindOutcome.NONE
        fresh = await PhraseIndex.load(store)
        assert (await fresh.find("cat")).realm == "en"
        assert await fresh.check() == []

    async def test_failed_remove_leaves_move_complete(self, index_with_data, store):
        ix = index_with_data
        store.allowed["set"] = 1
        store.failing.add("remove")
        with pytest.raises(StoreError):
            await ix.switch_realm("dog", "en", "de")
        store.failing.clear()

        assert (await ix.find("dog")).realm == "de"
        fresh = await PhraseIndex.load(store)
        assert (await fresh.find("dog")).realm == "de"
        assert fresh.key("dog", "en") is None
        assert await fresh.check() == []

    async def test_duplicate_checked_with_stored_phrase(self, index_with_data):
        ix = index_with_data
        await ix.add("Straße", NoteRecord(phrase="Straße", realm=2))
        await ix.add("Straße", NoteRecord(phrase="Straße", realm=1))
        # "strasse" finds the German note; its stored phrase is taken in "en"
        with pytest.raises(DuplicateEntityError):
            await ix.switch_realm("strasse", "de", "en")
        assert ix.key("Straße", "de") is not None

    async def test_reindexed_under_stored_phrase(self, index_with_data):
        ix = index_with_data
        await ix.add("Straße", NoteRecord(phrase="Straße", realm=2))
        moved = await ix.switch_realm("strasse", "de", "en")
        assert moved.phrase == "Straße"
        assert ix.key("Straße", "en") == moved.key
        assert ix.key("strasse", "en") is None
        assert (await ix.find("straße")).realm == "en"
        assert await ix.check() == []
