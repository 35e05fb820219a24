"""
Filter Node

Drops chat lines that carry nothing actionable (no car, time or place).
"""

from typing import Sequence

import structlog

from yardline.llm import ChatLinesOutput
from yardline.llm.prompts import get_filter_prompt

from ..state import ChatLine, ExtractionState, InboundMessage, Trace
from ..utils import begin_node, call_stage, finish_node, format_lines

logger = structlog.get_logger()


async def filter_lines(
    messages: Sequence[InboundMessage | ChatLine],
    *,
    trace: Trace | None = None,
) -> list[ChatLine]:
    """Keep only actionable lines from a raw batch."""
    if not messages:
        return []
    lines = [ChatLine(speaker=m.speaker, text=m.text) for m in messages]
    output = await call_stage(
        node_name="filter",
        messages=get_filter_prompt(format_lines(lines)),
        output_schema=ChatLinesOutput,
        model_tier="fast",
        trace=trace,
    )
    return output.messages


async def filter_node(state: ExtractionState) -> dict:
    trace, started_at = begin_node(state, "filter")

    logger.info(
        "Filtering batch",
        extraction_id=state.extraction_id,
        message_count=len(state.input.messages),
    )

    filtered = await filter_lines(state.input.messages, trace=trace)

    logger.info("Filter complete", extraction_id=state.extraction_id, kept=len(filtered))

    return {"filtered": filtered, "trace": finish_node(trace, "filter", started_at)}
