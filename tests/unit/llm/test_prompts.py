from __future__ import annotations

import pytest

from yardline.llm.prompts import (
    EXTRACTION_SYSTEM_PROMPTS,
    get_categorize_prompt,
    get_extraction_prompt,
)
from yardline.pipeline.actions import ActionType
from yardline.store.port import ReconCategory

pytestmark = pytest.mark.unit

CATEGORIES = [
    ReconCategory(name="Upholstery", keywords=["seat", "trim"], default_service="seat repair", sort_order=2),
    ReconCategory(name="Paint", keywords=["scratch"], rules=["panel work"], sort_order=1),
]


def test_every_action_type_has_extraction_instructions():
    for action_type in ActionType:
        messages = get_extraction_prompt(action_type, "Jan: 'ABC123'", CATEGORIES)
        assert action_type.value in messages[0]["content"]
        assert messages[1]["content"].startswith(f"{action_type.value} lines:")

    assert ActionType.RECON_APPOINTMENT not in EXTRACTION_SYSTEM_PROMPTS


def test_recon_instructions_list_categories_in_priority_order():
    system = get_extraction_prompt(ActionType.RECON_APPOINTMENT, "", CATEGORIES)[0]["content"]

    assert system.index('"Paint"') < system.index('"Upholstery"')
    assert "Upholstery: seat repair" in system


def test_recon_instructions_without_categories_fall_back_to_other():
    system = get_extraction_prompt(ActionType.RECON_APPOINTMENT, "", [])[0]["content"]

    assert 'one of "Other"' in system


def test_categorize_prompt_includes_recon_hints():
    messages = get_categorize_prompt("Jan: 'ABC123 needs seat trim'", CATEGORIES)

    content = " ".join(m["content"] for m in messages)
    assert "panel work" in content
