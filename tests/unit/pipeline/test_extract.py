from __future__ import annotations

from unittest.mock import patch

import pytest

from yardline.llm.schemas import ActionsOutput
from yardline.pipeline.actions import ActionType, LocationUpdateAction, SoldAction
from yardline.pipeline.nodes.extract import (
    extract_actions,
    group_by_category,
    normalize_action_regos,
)
from yardline.pipeline.state import CategorizedLine, Category, Trace

pytestmark = [pytest.mark.unit, pytest.mark.asyncio]


def _line(text: str, category: Category) -> CategorizedLine:
    return CategorizedLine(speaker="Jan", text=text, category=category)


def _actions(*items: dict) -> ActionsOutput:
    return ActionsOutput.model_validate({"actions": list(items)})


async def test_group_by_category_skips_other():
    groups = group_by_category(
        [
            _line("ABC123 sold", Category.SOLD),
            _line("lunch?", Category.OTHER),
            _line("XYZ789 sold", Category.SOLD),
        ]
    )

    assert list(groups) == [ActionType.SOLD]
    assert len(groups[ActionType.SOLD]) == 2


async def test_normalize_action_regos_strips_spaces_and_uppercases():
    actions = normalize_action_regos([SoldAction(rego=" abc 123 ")])

    assert actions[0].rego == "ABC123"


async def test_extract_actions_merges_in_category_order(fake_llm):
    categorized = [
        _line("XYZ789 sold", Category.SOLD),
        _line("abc 123 now at Workshop", Category.LOCATION_UPDATE),
    ]
    fake_llm.by_node = {
        "extract_sold": [_actions({"type": "SOLD", "rego": "XYZ789"})],
        "extract_location_update": [
            _actions({"type": "LOCATION_UPDATE", "rego": "abc 123", "location": "Workshop"})
        ],
    }

    with patch("yardline.pipeline.utils.get_llm_service", return_value=fake_llm):
        actions = await extract_actions(categorized, concurrency=2)

    assert [type(a) for a in actions] == [LocationUpdateAction, SoldAction]
    assert actions[0].rego == "ABC123"
    assert actions[0].location == "Workshop"


async def test_extract_category_discards_other_variants(fake_llm):
    fake_llm.by_node = {
        "extract_sold": [
            _actions(
                {"type": "SOLD", "rego": "XYZ789"},
                {"type": "LOCATION_UPDATE", "rego": "XYZ789", "location": "Yard"},
            )
        ]
    }

    with patch("yardline.pipeline.utils.get_llm_service", return_value=fake_llm):
        actions = await extract_actions([_line("XYZ789 sold", Category.SOLD)])

    assert [a.type for a in actions] == ["SOLD"]


async def test_failed_category_contributes_nothing(fake_llm):
    trace = Trace()
    fake_llm.by_node = {
        "extract_sold": [RuntimeError("provider down")],
        "extract_task": [_actions({"type": "TASK", "task": "take photos", "rego": "ABC123"})],
    }

    with patch("yardline.pipeline.utils.get_llm_service", return_value=fake_llm):
        actions = await extract_actions(
            [_line("XYZ789 sold", Category.SOLD), _line("photos of ABC123", Category.TASK)],
            trace=trace,
        )

    assert [a.type for a in actions] == ["TASK"]
    assert trace.errors == ["extract_sold: provider down"]


async def test_no_groups_means_no_calls(fake_llm):
    with patch("yardline.pipeline.utils.get_llm_service", return_value=fake_llm):
        assert await extract_actions([_line("hi", Category.OTHER)]) == []
    assert fake_llm.calls == []
