"""Shared helpers for pipeline nodes: stage calls, trace bookkeeping, line formatting."""

from __future__ import annotations

import asyncio
import time
from typing import Iterable, TypeVar

import structlog
from pydantic import BaseModel

from yardline.config import get_settings
from yardline.llm import get_llm_service
from yardline.monitoring.metrics import get_metrics

from .state import ChatLine, ExtractionState, LLMCall, NodeTiming, Trace

logger = structlog.get_logger()

T = TypeVar("T", bound=BaseModel)


def format_lines(lines: Iterable[ChatLine], *, numbered: bool = False) -> str:
    """Render lines as `Speaker: 'text'`, optionally 1-based numbered."""
    rendered = []
    for index, line in enumerate(lines, start=1):
        speaker = line.speaker or "Unknown"
        body = f"{speaker}: '{line.text}'"
        rendered.append(f"{index}. {body}" if numbered else body)
    return "\n".join(rendered)


async def call_stage(
    *,
    node_name: str,
    messages: list[dict],
    output_schema: type[T],
    model_tier: str = "balanced",
    trace: Trace | None = None,
    timeout: float | None = None,
) -> T:
    """
    Run one structured LLM call for a stage.

    Any failure or timeout yields the schema's empty value; the error is
    recorded on the trace so the batch summary can mention it.
    """
    llm = get_llm_service()
    timeout = timeout or get_settings().stage_timeout_seconds
    try:
        output, call = await asyncio.wait_for(
            llm.complete_structured(
                messages=messages,
                output_schema=output_schema,
                model_tier=model_tier,
                node_name=node_name,
            ),
            timeout=timeout,
        )
    except Exception as exc:
        error = str(exc) or type(exc).__name__
        logger.warning("Stage failed, continuing with empty output", node=node_name, error=error)
        get_metrics().track_stage_failure(node_name)
        if trace is not None:
            trace.errors.append(f"{node_name}: {error}")
        return output_schema()

    if trace is not None:
        trace.llm_calls.append(
            LLMCall(
                node=node_name,
                model=getattr(call, "model", "unknown"),
                provider=getattr(call, "provider", "unknown"),
                prompt_tokens=getattr(call, "prompt_tokens", 0),
                completion_tokens=getattr(call, "completion_tokens", 0),
                duration_ms=getattr(call, "duration_ms", 0),
            )
        )
    return output


def begin_node(state: ExtractionState, node_name: str) -> tuple[Trace, float]:
    """Copy the trace for a node run and mark it current."""
    trace = state.trace.model_copy(deep=True)
    trace.current_node = node_name
    trace.nodes.append(node_name)
    return trace, time.time()


def finish_node(trace: Trace, node_name: str, started_at: float) -> Trace:
    trace.node_timings[node_name] = NodeTiming(started_at=started_at, completed_at=time.time())
    return trace
