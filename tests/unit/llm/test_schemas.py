from __future__ import annotations

import pytest

from yardline.llm.schemas import (
    ActionsOutput,
    AuditOutput,
    CategorizeOutput,
    ChatLinesOutput,
    VehiclePhotoAnalysis,
)
from yardline.pipeline.state import Category, Verdict

pytestmark = pytest.mark.unit


def test_chat_lines_accept_speaker_prefixed_strings_and_drop_malformed():
    output = ChatLinesOutput.model_validate(
        {"messages": ["Jan: ABC123 sold", {"speaker": "Sam", "text": ""}, 42, None]}
    )

    assert [(l.speaker, l.text) for l in output.messages] == [("Jan", "ABC123 sold")]


def test_chat_lines_non_list_becomes_empty():
    assert ChatLinesOutput.model_validate({"messages": "nothing"}).messages == []


def test_categorize_unknown_category_is_other():
    output = CategorizeOutput.model_validate({"items": [{"speaker": "Jan", "text": "hi", "category": "CHAT"}]})

    assert output.items[0].category is Category.OTHER


def test_actions_output_drops_invalid_items():
    output = ActionsOutput.model_validate(
        {"actions": [{"type": "SOLD", "rego": "ABC123"}, {"type": "FLY"}, "garbage", {"rego": "X"}]}
    )

    assert [a.type for a in output.actions] == ["SOLD"]


def test_audit_items_use_defaults_and_drop_bad_indices():
    output = AuditOutput.model_validate(
        {
            "items": [
                {"actionIndex": 0, "verdict": "maybe"},
                {"actionIndex": -1, "verdict": "CORRECT"},
                {"verdict": "CORRECT"},
                {"actionIndex": 2, "verdict": "partial", "reason": None},
            ]
        }
    )

    assert [(i.action_index, i.verdict) for i in output.items] == [
        (0, Verdict.UNSURE),
        (2, Verdict.PARTIAL),
    ]
    assert output.items[1].reason == ""


def test_photo_analysis_clears_placeholder_rego():
    analysis = VehiclePhotoAnalysis.model_validate(
        {"make": "Toyota", "model": None, "rego": "n/a", "colorDescription": "white with bullbar"}
    )

    assert analysis.model == ""
    assert analysis.rego == ""
    assert analysis.color_description == "white with bullbar"
