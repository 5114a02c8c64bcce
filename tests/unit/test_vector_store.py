"""Tests for the Qdrant vector store client (in-process Qdrant)."""

from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from forge.app.content import ContentType
from forge.app.vector import StoreUnavailable, VectorStore, point_id
from forge.app.vector.store import build_filter, collection_name
from tests.fakes import bag_of_words


def _payload(text: str, **extra):
    return {"sourceText": text, "metadata": {}, **extra}


@pytest.mark.asyncio
async def test_ensure_collections_is_idempotent(vector_store):
    assert await vector_store.ensure_collections() == []

    stats = await vector_store.get_stats()
    assert set(stats) == {ct.value for ct in ContentType}
    assert all(info["points_count"] == 0 for info in stats.values())


@pytest.mark.asyncio
async def test_upsert_same_record_twice_keeps_one_point(vector_store):
    first = await vector_store.upsert(
        ContentType.npc, "npc-1", bag_of_words("old guard"), _payload("old guard")
    )
    second = await vector_store.upsert(
        ContentType.npc, "npc-1", bag_of_words("new guard"), _payload("new guard")
    )

    assert first == second == point_id(ContentType.npc, "npc-1")
    stats = await vector_store.get_stats()
    assert stats["npc"]["points_count"] == 1

    stored = await vector_store.get(ContentType.npc, "npc-1")
    assert stored.payload["sourceText"] == "new guard"
    assert stored.content_type == "npc"
    assert stored.content_id == "npc-1"


@pytest.mark.asyncio
async def test_search_orders_by_score_and_respects_threshold(vector_store):
    texts = {
        "a": "castle guard sword shield",
        "b": "castle guard sword",
        "c": "tavern bard lute song",
    }
    for content_id, text in texts.items():
        await vector_store.upsert(
            ContentType.npc, content_id, bag_of_words(text), _payload(text)
        )

    query = bag_of_words("castle guard sword shield")
    hits = await vector_store.search(ContentType.npc, query, limit=10, threshold=0.0)

    assert hits[0].content_id == "a"
    assert hits[0].score == pytest.approx(1.0, abs=1e-4)
    scores = [hit.score for hit in hits]
    assert scores == sorted(scores, reverse=True)

    strict = await vector_store.search(ContentType.npc, query, limit=10, threshold=0.8)
    assert [hit.content_id for hit in strict] == ["a", "b"]
    assert all(hit.score >= 0.8 for hit in strict)


@pytest.mark.asyncio
async def test_raising_threshold_never_adds_results(vector_store):
    for i, text in enumerate(["red dragon", "red wyvern", "blue dragon", "green slime"]):
        await vector_store.upsert(
            ContentType.lore, f"lore-{i}", bag_of_words(text), _payload(text)
        )
    query = bag_of_words("red dragon")

    previous = None
    for threshold in (0.0, 0.3, 0.5, 0.7, 0.9, 1.0):
        ids = {
            hit.content_id
            for hit in await vector_store.search(
                ContentType.lore, query, limit=10, threshold=threshold
            )
        }
        if previous is not None:
            assert ids <= previous
        previous = ids


@pytest.mark.asyncio
async def test_search_all_merges_collections(vector_store):
    await vector_store.upsert(
        ContentType.npc, "npc-1", bag_of_words("fire mage"), _payload("fire mage")
    )
    await vector_store.upsert(
        ContentType.item, "item-1", bag_of_words("fire staff"), _payload("fire staff")
    )

    hits = await vector_store.search("all", bag_of_words("fire mage"), limit=5)

    assert [(hit.content_type, hit.content_id) for hit in hits] == [
        ("npc", "npc-1"),
        ("item", "item-1"),
    ]


@pytest.mark.asyncio
async def test_visibility_filter_admits_owner_and_global_content(vector_store):
    vector = bag_of_words("shared text")
    await vector_store.upsert(ContentType.lore, "mine", vector, _payload("x", ownerId="u1"))
    await vector_store.upsert(ContentType.lore, "theirs", vector, _payload("x", ownerId="u2"))
    await vector_store.upsert(ContentType.lore, "global", vector, _payload("x"))

    hits = await vector_store.search(ContentType.lore, vector, limit=10, visible_to="u1")

    assert {hit.content_id for hit in hits} == {"mine", "global"}


@pytest.mark.asyncio
async def test_filter_requires_every_pair(vector_store):
    vector = bag_of_words("same")
    await vector_store.upsert(ContentType.quest, "q1", vector, _payload("x", projectId="p1"))
    await vector_store.upsert(ContentType.quest, "q2", vector, _payload("x", projectId="p2"))

    hits = await vector_store.search(
        ContentType.quest, vector, limit=10, filter={"projectId": "p2"}
    )

    assert [hit.content_id for hit in hits] == ["q2"]


@pytest.mark.asyncio
async def test_delete_is_idempotent(vector_store):
    await vector_store.upsert(
        ContentType.item, "sword", bag_of_words("sword"), _payload("sword")
    )

    await vector_store.delete(ContentType.item, "sword")
    await vector_store.delete(ContentType.item, "sword")

    assert not await vector_store.exists(ContentType.item, "sword")


@pytest.mark.asyncio
async def test_health_check(vector_store):
    assert await vector_store.health_check() is True


@pytest.mark.asyncio
async def test_transport_failure_raises_store_unavailable(test_settings):
    client = MagicMock()
    client.query_points = AsyncMock(side_effect=httpx.ConnectError("refused"))
    store = VectorStore(client=client, settings=test_settings)

    with pytest.raises(StoreUnavailable):
        await store.search(ContentType.npc, [0.1] * 256, limit=5)


def test_point_ids_are_deterministic_per_type():
    assert point_id(ContentType.npc, "1") == point_id(ContentType.npc, "1")
    assert point_id(ContentType.npc, "1") != point_id(ContentType.lore, "1")
    assert collection_name(ContentType.npc) == "content_npc"


def test_build_filter_without_conditions_is_none():
    assert build_filter() is None
    built = build_filter({"projectId": "p"}, visible_to="u")
    assert len(built.must) == 1
    assert len(built.should) == 2
