from __future__ import annotations

from taskrelay.core.references.extract import extract_references, extract_references_from_text

FIRST = "0f1e2d3c4b5a69788796a5b4c3d2e1f0"
FIRST_CANONICAL = "0f1e2d3c-4b5a-6978-8796-a5b4c3d2e1f0"
SECOND = "aaaabbbbccccddddeeeeffff00001111"
SECOND_CANONICAL = "aaaabbbb-cccc-dddd-eeee-ffff00001111"


def test_mention_and_url_of_same_record_yield_one_reference() -> None:
    segments = [
        {
            "type": "mention",
            "mention": {"type": "page", "page": {"id": FIRST_CANONICAL}},
            "plain_text": "Roadmap",
            "href": f"https://www.notion.so/{FIRST}",
        },
        {"type": "text", "plain_text": f" see https://www.notion.so/Roadmap-{FIRST}", "href": None},
    ]

    references = extract_references(segments)

    assert [reference.id for reference in references] == [FIRST_CANONICAL]
    assert references[0].source == "mention"


def test_first_appearance_order_is_preserved() -> None:
    segments = [
        {"type": "text", "plain_text": f"https://www.notion.so/Design-{SECOND}"},
        {"type": "text", "plain_text": f"and {FIRST_CANONICAL} plus {SECOND} again"},
    ]

    references = extract_references(segments)

    assert [reference.id for reference in references] == [SECOND_CANONICAL, FIRST_CANONICAL]
    assert [reference.source for reference in references] == ["url", "id"]


def test_plain_text_scan_finds_bare_and_hyphenated_ids() -> None:
    text = f"Links: {FIRST}, https://www.notion.so/x/{SECOND_CANONICAL.upper()}"

    references = extract_references_from_text(text)

    assert [reference.id for reference in references] == [FIRST_CANONICAL, SECOND_CANONICAL]


def test_text_without_ids_yields_nothing() -> None:
    assert extract_references_from_text("just a description, https://example.com") == []
    assert extract_references([{"type": "text", "plain_text": "deadbeef"}]) == []


def test_plain_text_references_follow_segment_references_without_duplicates() -> None:
    segments = [{"type": "text", "plain_text": f"see {FIRST}"}]

    references = extract_references(segments, f"https://www.notion.so/Doc-{FIRST} and {SECOND}")

    assert [reference.id for reference in references] == [FIRST_CANONICAL, SECOND_CANONICAL]
