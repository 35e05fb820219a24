from __future__ import annotations

from unittest.mock import patch

import pytest

from yardline.llm.schemas import CategorizeOutput
from yardline.pipeline.nodes.categorize import (
    apply_duplication_rules,
    categorize_lines,
    ground_in_refined,
)
from yardline.pipeline.state import CategorizedLine, Category, ChatLine

pytestmark = [pytest.mark.unit, pytest.mark.asyncio]


def _line(text: str, category: Category, speaker: str = "Jan") -> CategorizedLine:
    return CategorizedLine(speaker=speaker, text=text, category=category)


async def test_repair_and_recon_duplicate_each_other():
    lines = [
        _line("ABC123 needs new seat trim", Category.REPAIR),
        _line("Sky trimming booked for XYZ789", Category.RECON_APPOINTMENT),
    ]

    result = apply_duplication_rules(lines)

    assert [(l.text, l.category) for l in result] == [
        ("ABC123 needs new seat trim", Category.REPAIR),
        ("ABC123 needs new seat trim", Category.RECON_APPOINTMENT),
        ("Sky trimming booked for XYZ789", Category.RECON_APPOINTMENT),
        ("Sky trimming booked for XYZ789", Category.REPAIR),
    ]


async def test_drop_off_adds_next_location():
    result = apply_duplication_rules([_line("Drop the Hilux to Imad", Category.DROP_OFF)])

    assert [l.category for l in result] == [Category.DROP_OFF, Category.NEXT_LOCATION]


async def test_duplicates_collapse_and_first_wins():
    lines = [
        _line("ABC123 needs bonnet", Category.REPAIR),
        _line("ABC123 needs bonnet", Category.RECON_APPOINTMENT),
        _line("ABC123 sold", Category.SOLD),
        _line("ABC123 sold", Category.SOLD),
    ]

    result = apply_duplication_rules(lines)

    assert [(l.text, l.category) for l in result] == [
        ("ABC123 needs bonnet", Category.REPAIR),
        ("ABC123 needs bonnet", Category.RECON_APPOINTMENT),
        ("ABC123 sold", Category.SOLD),
    ]


async def test_other_lines_are_not_duplicated():
    result = apply_duplication_rules([_line("morning all", Category.OTHER)])

    assert len(result) == 1


async def test_ground_in_refined_drops_invented_lines_and_keeps_source_text():
    refined = [ChatLine(speaker="Jan", text="ABC123 now at Workshop")]
    categorized = [
        _line("abc123 now at workshop", Category.LOCATION_UPDATE, speaker="jan"),
        _line("XYZ789 sold", Category.SOLD),
    ]

    grounded = ground_in_refined(categorized, refined)

    assert len(grounded) == 1
    assert grounded[0].text == "ABC123 now at Workshop"
    assert grounded[0].speaker == "Jan"
    assert grounded[0].category is Category.LOCATION_UPDATE


async def test_categorize_lines_uses_model_labels(fake_llm):
    refined = [
        ChatLine(speaker="Jan", text="ABC123 now at Workshop"),
        ChatLine(speaker="Sam", text="XYZ789 sold"),
    ]
    fake_llm.structured_responses.append(
        CategorizeOutput.model_validate(
            {
                "items": [
                    {"speaker": "Jan", "text": "ABC123 now at Workshop", "category": "location update"},
                    {"speaker": "Sam", "text": "XYZ789 sold", "category": "SOLD"},
                    {"speaker": "Sam", "text": "invented line", "category": "TASK"},
                ]
            }
        )
    )

    with patch("yardline.pipeline.utils.get_llm_service", return_value=fake_llm):
        lines = await categorize_lines(refined)

    assert [(l.text, l.category) for l in lines] == [
        ("ABC123 now at Workshop", Category.LOCATION_UPDATE),
        ("XYZ789 sold", Category.SOLD),
    ]
    assert fake_llm.nodes_called() == ["categorize"]


async def test_categorize_lines_skips_call_for_empty_input(fake_llm):
    with patch("yardline.pipeline.utils.get_llm_service", return_value=fake_llm):
        assert await categorize_lines([]) == []
    assert fake_llm.calls == []
