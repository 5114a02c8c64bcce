"""Tests for ordering, deduplication and truncation of context entries."""

from datetime import datetime, timedelta, timezone

from hypothesis import given, settings
from hypothesis import strategies as st

from forge.app.context import RetrievalPolicy, merge_entries
from forge.app.context.types import SOURCE_ORDER, ContextEntry, SourceResult

BASE_TIME = datetime(2024, 6, 1, tzinfo=timezone.utc)


def entry(source, key, content_type="npc", minutes=0, score=None):
    return ContextEntry(
        content_type=content_type,
        key=key,
        record={"id": key, "from": source},
        source=source,
        recency=BASE_TIME + timedelta(minutes=minutes),
        score=score,
    )


def policy(**overrides):
    return RetrievalPolicy(**{"prefer_recent": False, **overrides})


def test_first_source_wins_duplicates():
    results = [
        SourceResult.ok("cdn", [entry("cdn", "guard"), entry("cdn", "wizard")]),
        SourceResult.ok("ownPreview", [entry("ownPreview", "guard")]),
    ]

    context, sources = merge_entries(results, policy())

    assert [(item.source_tag, [r["id"] for r in item.data]) for item in context] == [
        ("ownPreview", ["guard"]),
        ("cdn", ["wizard"]),
    ]
    assert sources.own_preview == 1
    assert sources.cdn == 1


def test_same_key_different_type_is_not_a_duplicate():
    results = [
        SourceResult.ok(
            "ownPreview",
            [entry("ownPreview", "sword", "item"), entry("ownPreview", "sword", "lore")],
        )
    ]

    context, sources = merge_entries(results, policy())

    assert [item.type for item in context] == ["item", "lore"]
    assert sources.own_preview == 2


def test_budget_truncates_after_dedup():
    results = [
        SourceResult.ok("ownPreview", [entry("ownPreview", "a"), entry("ownPreview", "a")]),
        SourceResult.ok("cdn", [entry("cdn", "b"), entry("cdn", "c")]),
    ]

    context, sources = merge_entries(results, policy(max_context_items=2))

    kept = [r["id"] for item in context for r in item.data]
    assert kept == ["a", "b"]
    assert sources.own_preview == 1
    assert sources.cdn == 1


def test_budget_of_one_keeps_a_single_item():
    results = [SourceResult.ok("cdn", [entry("cdn", "a"), entry("cdn", "b")])]

    context, sources = merge_entries(results, policy(max_context_items=1))

    assert len(context) == 1
    assert context[0].data == [{"id": "a", "from": "cdn"}]
    assert sources.cdn == 1


def test_prefer_recent_orders_newest_first():
    results = [
        SourceResult.ok("ownPreview", [entry("ownPreview", "guard", minutes=0)]),
        SourceResult.ok("cdn", [entry("cdn", "guard", minutes=5)]),
    ]

    context, sources = merge_entries(results, policy(prefer_recent=True))

    assert [item.source_tag for item in context] == ["cdn"]
    assert sources.cdn == 1
    assert sources.own_preview == 0


def test_prefer_recent_ties_keep_source_order():
    results = [
        SourceResult.ok("cdn", [entry("cdn", "guard", minutes=1)]),
        SourceResult.ok("teamPreview", [entry("teamPreview", "guard", minutes=1)]),
    ]

    context, _ = merge_entries(results, policy(prefer_recent=True))

    assert [item.source_tag for item in context] == ["teamPreview"]


def test_missing_recency_sorts_last():
    undated = entry("ownPreview", "old")
    undated.recency = None
    results = [
        SourceResult.ok("ownPreview", [undated]),
        SourceResult.ok("cdn", [entry("cdn", "new")]),
    ]

    context, _ = merge_entries(results, policy(prefer_recent=True))

    assert [item.source_tag for item in context] == ["cdn", "ownPreview"]


def test_prefer_recent_keeps_vector_hits_in_score_order():
    results = [
        SourceResult.ok("ownPreview", [entry("ownPreview", "guard", minutes=0)]),
        SourceResult.ok("cdn", [entry("cdn", "wizard", minutes=10)]),
        SourceResult.ok(
            "vectorSearch",
            [
                entry("vectorSearch", "best", "lore", minutes=1, score=0.97),
                entry("vectorSearch", "weak", "lore", minutes=90, score=0.31),
            ],
        ),
    ]

    context, sources = merge_entries(results, policy(prefer_recent=True, max_context_items=3))

    assert [(item.source_tag, [r["id"] for r in item.data]) for item in context] == [
        ("cdn", ["wizard"]),
        ("ownPreview", ["guard"]),
        ("vectorSearch", ["best"]),
    ]
    assert sources.vector_search == 1


def test_without_prefer_recent_recency_is_ignored():
    results = [
        SourceResult.ok("ownPreview", [entry("ownPreview", "guard", minutes=0)]),
        SourceResult.ok("cdn", [entry("cdn", "guard", minutes=60)]),
    ]

    context, _ = merge_entries(results, policy())

    assert [item.source_tag for item in context] == ["ownPreview"]


def test_similarity_score_is_best_in_group():
    results = [
        SourceResult.ok(
            "vectorSearch",
            [
                entry("vectorSearch", "a", score=0.81),
                entry("vectorSearch", "b", score=0.93),
            ],
        )
    ]

    [item] = merge_entries(results, policy())[0]

    assert item.similarity_score == 0.93
    assert item.source_tag == "vectorSearch"


def test_failed_sources_contribute_nothing():
    results = [
        SourceResult.failed("cdn", RuntimeError("down")),
        SourceResult.ok("ownPreview", [entry("ownPreview", "a")]),
    ]

    context, sources = merge_entries(results, policy())

    assert len(context) == 1
    assert sources.cdn == 0


entries_strategy = st.lists(
    st.tuples(
        st.sampled_from(SOURCE_ORDER),
        st.sampled_from(["a", "b", "c", "d", "e"]),
        st.sampled_from(["npc", "item"]),
        st.integers(min_value=0, max_value=10),
    ),
    max_size=30,
)


@settings(max_examples=100, deadline=None)
@given(
    raw=entries_strategy,
    max_items=st.integers(min_value=1, max_value=10),
    prefer_recent=st.booleans(),
)
def test_merged_context_respects_budget_and_counts(raw, max_items, prefer_recent):
    by_source: dict[str, list[ContextEntry]] = {}
    for source, key, content_type, minutes in raw:
        by_source.setdefault(source, []).append(entry(source, key, content_type, minutes))
    results = [SourceResult.ok(source, items) for source, items in by_source.items()]

    context, sources = merge_entries(
        results, policy(max_context_items=max_items, prefer_recent=prefer_recent)
    )

    pairs = [(item.type, record["id"]) for item in context for record in item.data]
    total = len(pairs)
    assert total <= max_items
    assert len(set(pairs)) == total
    assert sum(sources.model_dump().values()) == total
    assert total == min(max_items, len({(t, k) for _, k, t, _ in raw}))
