"""Tests for the content type registry and embedding text extraction."""

import pytest

from forge.app.content import (
    ContentType,
    UnknownContentTypeError,
    build_embedding_text,
    content_type_for_manifest,
    extract_metadata,
    parse_content_type,
    record_key,
)


def test_npc_text_follows_field_order_and_drops_empty_fields():
    data = {
        "personality": "Gruff but loyal",
        "name": "Guard Captain Bram",
        "description": "",
        "backstory": "Served the crown for twenty years.",
        "location": "North Gate",
    }

    text = build_embedding_text(ContentType.npc, data)

    assert text == (
        "Guard Captain Bram\n\n"
        "Served the crown for twenty years.\n\n"
        "Gruff but loyal\n\n"
        "Location: North Gate"
    )


def test_quest_title_falls_back_to_name_and_renders_rewards_as_json():
    data = {"name": "Rat Problem", "rewards": {"gold": 10, "xp": 50}}

    text = build_embedding_text(ContentType.quest, data)

    assert text.split("\n\n") == ["Rat Problem", 'Rewards: {"gold": 10, "xp": 50}']


def test_npc_dialogue_keeps_first_three_phrases():
    data = {"name": "Wizard", "dialogue": ["Hello", "Begone", "Magic!", "Unused"]}

    text = build_embedding_text(ContentType.npc, data)

    assert text.endswith("Common phrases: Hello; Begone; Magic!")


def test_manifest_items_lists_at_most_five_names():
    data = {"name": "Bundle", "items": [{"name": f"item{i}"} for i in range(7)]}

    text = build_embedding_text(ContentType.manifest, data)

    assert "Items: item0, item1, item2, item3, item4..." in text


def test_record_with_no_fields_yields_empty_text():
    assert build_embedding_text(ContentType.lore, {"unrelated": "value"}) == ""
    assert build_embedding_text(ContentType.lore, {"title": None, "content": ""}) == ""


def test_extract_metadata_uses_aliases_and_skips_missing():
    data = {"name": "Elf Ranger", "species": "Elf", "location": None}

    assert extract_metadata(ContentType.character, data) == {
        "name": "Elf Ranger",
        "race": "Elf",
    }


@pytest.mark.parametrize(
    "value,expected",
    [
        ("npc", ContentType.npc),
        ("NPC", ContentType.npc),
        ("npcs", ContentType.npc),
        ("avatars", ContentType.character),
        ("resources", ContentType.item),
        (ContentType.lore, ContentType.lore),
    ],
)
def test_parse_content_type_accepts_names_and_manifest_aliases(value, expected):
    assert parse_content_type(value) is expected


def test_parse_content_type_rejects_unknown_names():
    with pytest.raises(UnknownContentTypeError):
        parse_content_type("music")


def test_manifest_types_map_to_content_types():
    assert content_type_for_manifest("items") is ContentType.item
    assert content_type_for_manifest("quest") is ContentType.quest
    assert content_type_for_manifest("biomes") is ContentType.manifest


def test_record_key_prefers_id_and_hashes_anonymous_records():
    assert record_key({"id": 42, "name": "x"}) == "42"

    anonymous = record_key({"name": "x", "tier": 1})
    assert anonymous.startswith("sha1:")
    # Key order does not matter
    assert record_key({"tier": 1, "name": "x"}) == anonymous
    assert record_key({"name": "y", "tier": 1}) != anonymous
