"""
Refine Node

Rewrites filtered lines into canonical phrasing without changing facts.
"""

import structlog

from yardline.llm import ChatLinesOutput
from yardline.llm.prompts import get_refine_prompt

from ..state import ChatLine, ExtractionState, Trace
from ..utils import begin_node, call_stage, finish_node, format_lines

logger = structlog.get_logger()


async def refine_lines(lines: list[ChatLine], *, trace: Trace | None = None) -> list[ChatLine]:
    if not lines:
        return []
    output = await call_stage(
        node_name="refine",
        messages=get_refine_prompt(format_lines(lines)),
        output_schema=ChatLinesOutput,
        model_tier="balanced",
        trace=trace,
    )
    return output.messages


async def refine_node(state: ExtractionState) -> dict:
    trace, started_at = begin_node(state, "refine")

    refined = await refine_lines(state.filtered, trace=trace)

    logger.info(
        "Refine complete",
        extraction_id=state.extraction_id,
        input_lines=len(state.filtered),
        refined_lines=len(refined),
    )

    return {"refined": refined, "trace": finish_node(trace, "refine", started_at)}
