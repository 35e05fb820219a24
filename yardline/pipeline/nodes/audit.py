"""
Audit Node

Judges each extracted action against the raw batch and the refined lines.
Only actions judged INCORRECT are removed; PARTIAL and UNSURE pass.
"""

import structlog

from yardline.llm import AuditOutput
from yardline.llm.prompts import get_audit_prompt

from ..actions import Action
from ..state import AuditVerdict, ChatLine, ExtractionState, Trace, Verdict
from ..utils import begin_node, call_stage, finish_node, format_lines

logger = structlog.get_logger()

_DETAIL_FIELDS = (
    "checklistItem",
    "readiness",
    "category",
    "destination",
    "nextLocation",
    "location",
    "dateTime",
    "task",
    "name",
    "service",
    "note",
    "notes",
)


def format_actions(actions: list[Action]) -> str:
    """Numbered 1-based action listing for the audit prompt."""
    rendered = []
    for index, action in enumerate(actions, start=1):
        wire = action.wire()
        car = " / ".join(
            p for p in (action.rego, " ".join(p for p in (action.make, action.model) if p)) if p
        )
        details = [f"{name}:{wire[name]}" for name in _DETAIL_FIELDS if wire.get(name)]
        line = f"{index}. {action.type} {car}".rstrip()
        if details:
            line = f"{line} | {' | '.join(details)}"
        rendered.append(line)
    return "\n".join(rendered)


async def audit_actions(
    source_lines: list[ChatLine],
    actions: list[Action],
    *,
    trace: Trace | None = None,
) -> list[AuditVerdict]:
    """
    Return exactly one verdict per action, in action order.

    Missing verdicts become UNSURE, out-of-range indices are ignored and the
    first verdict for an index wins. A failed call leaves every action UNSURE.
    """
    if not actions:
        return []

    output = await call_stage(
        node_name="audit",
        messages=get_audit_prompt(format_lines(source_lines, numbered=True), format_actions(actions)),
        output_schema=AuditOutput,
        model_tier="fast",
        trace=trace,
    )

    by_index = {}
    for item in output.items:
        if item.action_index < len(actions) and item.action_index not in by_index:
            by_index[item.action_index] = item

    verdicts = []
    for index in range(len(actions)):
        item = by_index.get(index)
        if item is None:
            verdicts.append(AuditVerdict(action_index=index, reason="No audit verdict returned"))
            continue
        verdicts.append(
            AuditVerdict(
                action_index=index,
                verdict=item.verdict,
                reason=item.reason,
                evidence_text=item.evidence_text,
            )
        )
    return verdicts


def split_by_audit(
    actions: list[Action], verdicts: list[AuditVerdict]
) -> tuple[list[Action], list[Action]]:
    """(kept, dropped), both in original order."""
    incorrect = {v.action_index for v in verdicts if v.verdict is Verdict.INCORRECT}
    kept = [a for i, a in enumerate(actions) if i not in incorrect]
    dropped = [a for i, a in enumerate(actions) if i in incorrect]
    return kept, dropped


def apply_audit_gate(actions: list[Action], verdicts: list[AuditVerdict]) -> list[Action]:
    """Remove actions judged INCORRECT, preserving order."""
    kept, _ = split_by_audit(actions, verdicts)
    return kept


async def audit_node(state: ExtractionState) -> dict:
    trace, started_at = begin_node(state, "audit")

    source_lines = [
        ChatLine(speaker=m.speaker, text=m.text) for m in state.input.messages
    ] + list(state.refined)

    verdicts = await audit_actions(source_lines, state.actions, trace=trace)
    kept, dropped = split_by_audit(state.actions, verdicts)

    logger.info(
        "Audit complete",
        extraction_id=state.extraction_id,
        actions=len(state.actions),
        dropped=len(dropped),
        unsure=sum(1 for v in verdicts if v.verdict is Verdict.UNSURE),
    )

    return {
        "audited": True,
        "verdicts": verdicts,
        "kept_actions": kept,
        "dropped_actions": dropped,
        "trace": finish_node(trace, "audit", started_at),
    }
