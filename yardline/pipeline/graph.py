"""
LangGraph Extraction Pipeline

filter -> refine -> categorize -> extract -> audit, with a short-circuit to
the end whenever a stage yields nothing.
"""

import time
from typing import Literal

import structlog
from langgraph.graph import END, StateGraph

from yardline.config import get_settings
from yardline.kernel.time import utc_now
from yardline.monitoring.metrics import get_metrics
from yardline.store.port import ReconCategory

from .nodes.audit import audit_node
from .nodes.categorize import categorize_node
from .nodes.extract import extract_node
from .nodes.filter import filter_node
from .nodes.refine import refine_node
from .state import ExtractionInput, ExtractionResult, ExtractionState, InboundMessage

logger = structlog.get_logger()


# =============================================================================
# Routing Functions
# =============================================================================


def after_filter(state: ExtractionState) -> Literal["refine", "__end__"]:
    return "refine" if state.filtered else END


def after_refine(state: ExtractionState) -> Literal["categorize", "__end__"]:
    return "categorize" if state.refined else END


def after_categorize(state: ExtractionState) -> Literal["extract", "__end__"]:
    return "extract" if state.categorized else END


def after_extract(state: ExtractionState) -> Literal["audit", "__end__"]:
    if not state.actions:
        return END
    if not get_settings().audit_gate_enabled:
        return END
    return "audit"


# =============================================================================
# Graph Construction
# =============================================================================


def create_extraction_graph() -> StateGraph:
    """Create the extraction graph over ExtractionState."""
    workflow = StateGraph(ExtractionState)

    workflow.add_node("filter", filter_node)
    workflow.add_node("refine", refine_node)
    workflow.add_node("categorize", categorize_node)
    workflow.add_node("extract", extract_node)
    workflow.add_node("audit", audit_node)

    workflow.set_entry_point("filter")

    workflow.add_conditional_edges("filter", after_filter, {"refine": "refine", END: END})
    workflow.add_conditional_edges("refine", after_refine, {"categorize": "categorize", END: END})
    workflow.add_conditional_edges(
        "categorize", after_categorize, {"extract": "extract", END: END}
    )
    workflow.add_conditional_edges("extract", after_extract, {"audit": "audit", END: END})
    workflow.add_edge("audit", END)

    return workflow


def compile_extraction_graph():
    """Compile the extraction graph for execution."""
    return create_extraction_graph().compile()


# =============================================================================
# Graph Execution
# =============================================================================


async def run_extraction(
    conversation_id: str,
    messages: list[InboundMessage],
    recon_categories: list[ReconCategory] | None = None,
) -> ExtractionResult:
    """
    Run the pipeline over one released batch.

    Never raises for model failures: failed stages contribute nothing and are
    listed in the result's errors.
    """
    initial_state = ExtractionState(
        input=ExtractionInput(
            conversation_id=conversation_id,
            messages=messages,
            recon_categories=recon_categories or [],
        )
    )

    logger.info(
        "Starting extraction",
        extraction_id=initial_state.extraction_id,
        conversation_id=conversation_id,
        message_count=len(messages),
    )

    started = time.monotonic()
    compiled_graph = compile_extraction_graph()
    final = await compiled_graph.ainvoke(initial_state)
    final_state = ExtractionState.model_validate(final)
    final_state.trace.completed_at = utc_now().timestamp()

    result = ExtractionResult.from_state(final_state)

    metrics = get_metrics()
    metrics.track_actions(final_state.actions, result.dropped_actions)
    metrics.track_extraction_duration(time.monotonic() - started)

    logger.info(
        "Extraction finished",
        extraction_id=result.extraction_id,
        conversation_id=conversation_id,
        nodes=final_state.trace.nodes,
        actions=len(result.actions),
        dropped=len(result.dropped_actions),
        errors=len(result.errors),
    )

    return result
