from __future__ import annotations

from unittest.mock import patch

import pytest

from yardline.llm.schemas import AuditOutput
from yardline.pipeline.actions import LocationUpdateAction, RepairAction, SoldAction
from yardline.pipeline.nodes.audit import (
    apply_audit_gate,
    audit_actions,
    format_actions,
    split_by_audit,
)
from yardline.pipeline.state import AuditVerdict, ChatLine, Trace, Verdict

pytestmark = [pytest.mark.unit, pytest.mark.asyncio]

SOURCES = [ChatLine(speaker="Jan", text="ABC123 now at Workshop")]
ACTIONS = [
    LocationUpdateAction(rego="ABC123", location="Workshop"),
    SoldAction(rego="ABC123"),
    RepairAction(rego="ABC123", checklist_item="Replace bonnet"),
]


async def test_format_actions_is_numbered_from_one():
    text = format_actions(ACTIONS[:1] + ACTIONS[2:])

    assert text.splitlines() == [
        "1. LOCATION_UPDATE ABC123 | location:Workshop",
        "2. REPAIR ABC123 | checklistItem:Replace bonnet",
    ]


async def test_one_verdict_per_action_in_order(fake_llm):
    fake_llm.structured_responses.append(
        AuditOutput.model_validate(
            {
                "items": [
                    {"actionIndex": 1, "verdict": "INCORRECT", "reason": "never said sold"},
                    {"actionIndex": 1, "verdict": "CORRECT"},
                    {"actionIndex": 0, "verdict": "correct", "evidenceText": "now at Workshop"},
                    {"actionIndex": 7, "verdict": "INCORRECT"},
                ]
            }
        )
    )

    with patch("yardline.pipeline.utils.get_llm_service", return_value=fake_llm):
        verdicts = await audit_actions(SOURCES, ACTIONS)

    assert [v.action_index for v in verdicts] == [0, 1, 2]
    assert [v.verdict for v in verdicts] == [Verdict.CORRECT, Verdict.INCORRECT, Verdict.UNSURE]
    assert verdicts[0].evidence_text == "now at Workshop"
    assert verdicts[2].reason == "No audit verdict returned"


async def test_failed_audit_leaves_everything_unsure(fake_llm):
    trace = Trace()
    fake_llm.structured_responses.append(TimeoutError())

    with patch("yardline.pipeline.utils.get_llm_service", return_value=fake_llm):
        verdicts = await audit_actions(SOURCES, ACTIONS, trace=trace)

    assert [v.verdict for v in verdicts] == [Verdict.UNSURE] * 3
    assert trace.errors == ["audit: TimeoutError"]
    assert apply_audit_gate(ACTIONS, verdicts) == ACTIONS


async def test_gate_removes_only_incorrect_and_keeps_order():
    verdicts = [
        AuditVerdict(action_index=0, verdict=Verdict.PARTIAL),
        AuditVerdict(action_index=1, verdict=Verdict.INCORRECT),
        AuditVerdict(action_index=2, verdict=Verdict.UNSURE),
    ]

    kept, dropped = split_by_audit(ACTIONS, verdicts)

    assert kept == [ACTIONS[0], ACTIONS[2]]
    assert dropped == [ACTIONS[1]]
    assert apply_audit_gate(ACTIONS, verdicts) == kept


async def test_no_actions_no_call(fake_llm):
    with patch("yardline.pipeline.utils.get_llm_service", return_value=fake_llm):
        assert await audit_actions(SOURCES, []) == []
    assert fake_llm.calls == []
