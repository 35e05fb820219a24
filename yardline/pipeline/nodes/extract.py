"""
Extract Node

One structured call per non-empty category group. Calls run concurrently
behind a semaphore and are merged back in a fixed category order, so the
action list is deterministic for a given set of model responses.
"""

import asyncio

import structlog

from yardline.config import get_settings
from yardline.kernel.text import compact_rego
from yardline.llm import ActionsOutput
from yardline.llm.prompts import get_extraction_prompt
from yardline.store.port import ReconCategory

from ..actions import Action, ActionType
from ..state import CategorizedLine, ExtractionState, Trace
from ..utils import begin_node, call_stage, finish_node, format_lines

logger = structlog.get_logger()

EXTRACTION_ORDER: tuple[ActionType, ...] = tuple(ActionType)


def group_by_category(lines: list[CategorizedLine]) -> dict[ActionType, list[CategorizedLine]]:
    """Group lines by action type; OTHER lines are skipped."""
    groups: dict[ActionType, list[CategorizedLine]] = {}
    for line in lines:
        action_type = line.category.action_type
        if action_type is None:
            continue
        groups.setdefault(action_type, []).append(line)
    return groups


def normalize_action_regos(actions: list[Action]) -> list[Action]:
    """Strip whitespace from regos and uppercase them."""
    return [action.model_copy(update={"rego": compact_rego(action.rego)}) for action in actions]


async def extract_category(
    action_type: ActionType,
    lines: list[CategorizedLine],
    recon_categories: list[ReconCategory] | None = None,
    *,
    trace: Trace | None = None,
) -> list[Action]:
    """Extract actions for one category group; other variants are discarded."""
    output = await call_stage(
        node_name=f"extract_{action_type.value.lower()}",
        messages=get_extraction_prompt(action_type, format_lines(lines), recon_categories),
        output_schema=ActionsOutput,
        model_tier="balanced",
        trace=trace,
    )
    accepted = [action for action in output.actions if action.type == action_type.value]
    if len(accepted) != len(output.actions):
        logger.debug(
            "Discarded actions of another type",
            category=action_type.value,
            discarded=len(output.actions) - len(accepted),
        )
    return accepted


async def extract_actions(
    categorized: list[CategorizedLine],
    recon_categories: list[ReconCategory] | None = None,
    *,
    trace: Trace | None = None,
    concurrency: int | None = None,
) -> list[Action]:
    groups = group_by_category(categorized)
    if not groups:
        return []

    semaphore = asyncio.Semaphore(concurrency or get_settings().extract_concurrency)

    async def run(action_type: ActionType) -> list[Action]:
        async with semaphore:
            return await extract_category(
                action_type, groups[action_type], recon_categories, trace=trace
            )

    ordered = [action_type for action_type in EXTRACTION_ORDER if action_type in groups]
    results = await asyncio.gather(*(run(action_type) for action_type in ordered))

    merged = [action for batch in results for action in batch]
    return normalize_action_regos(merged)


async def extract_node(state: ExtractionState) -> dict:
    trace, started_at = begin_node(state, "extract")

    actions = await extract_actions(
        state.categorized, state.input.recon_categories, trace=trace
    )

    logger.info(
        "Extraction complete",
        extraction_id=state.extraction_id,
        categories=len(group_by_category(state.categorized)),
        actions=len(actions),
    )

    return {"actions": actions, "trace": finish_node(trace, "extract", started_at)}
