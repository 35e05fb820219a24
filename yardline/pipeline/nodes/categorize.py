"""
Categorize Node

Assigns one category per refined line, then applies the duplication rules:
a repair is also a recon booking (and the reverse), and a drop-off also
records the car's next location.
"""

import structlog

from yardline.llm import CategorizeOutput
from yardline.llm.prompts import get_categorize_prompt
from yardline.store.port import ReconCategory

from ..state import CategorizedLine, Category, ChatLine, ExtractionState, Trace
from ..utils import begin_node, call_stage, finish_node, format_lines

logger = structlog.get_logger()

DUPLICATION_RULES: dict[Category, tuple[Category, ...]] = {
    Category.REPAIR: (Category.RECON_APPOINTMENT,),
    Category.RECON_APPOINTMENT: (Category.REPAIR,),
    Category.DROP_OFF: (Category.NEXT_LOCATION,),
}


def _line_key(speaker: str, text: str) -> tuple[str, str]:
    return speaker.strip().lower(), text.strip().lower()


def apply_duplication_rules(lines: list[CategorizedLine]) -> list[CategorizedLine]:
    """Add the implied companion categories, then drop exact repeats.

    The first occurrence of each (speaker, text, category) wins and input
    order is preserved.
    """
    expanded: list[CategorizedLine] = []
    for line in lines:
        expanded.append(line)
        for companion in DUPLICATION_RULES.get(line.category, ()):
            expanded.append(line.model_copy(update={"category": companion}))

    seen: set[tuple[str, str, Category]] = set()
    result: list[CategorizedLine] = []
    for line in expanded:
        key = (line.speaker, line.text, line.category)
        if key in seen:
            continue
        seen.add(key)
        result.append(line)
    return result


def ground_in_refined(
    categorized: list[CategorizedLine], refined: list[ChatLine]
) -> list[CategorizedLine]:
    """Drop categorized lines that do not come from a refined line."""
    sources = {_line_key(line.speaker, line.text): line for line in refined}
    grounded = []
    for line in categorized:
        source = sources.get(_line_key(line.speaker, line.text))
        if source is None:
            logger.debug("Dropping ungrounded categorized line", speaker=line.speaker, text=line.text)
            continue
        grounded.append(
            CategorizedLine(speaker=source.speaker, text=source.text, category=line.category)
        )
    return grounded


async def categorize_lines(
    refined: list[ChatLine],
    recon_categories: list[ReconCategory] | None = None,
    *,
    trace: Trace | None = None,
) -> list[CategorizedLine]:
    """Label refined lines. Duplication rules are applied separately."""
    if not refined:
        return []
    output = await call_stage(
        node_name="categorize",
        messages=get_categorize_prompt(format_lines(refined), recon_categories),
        output_schema=CategorizeOutput,
        model_tier="balanced",
        trace=trace,
    )
    return ground_in_refined(output.items, refined)


async def categorize_node(state: ExtractionState) -> dict:
    trace, started_at = begin_node(state, "categorize")

    labelled = await categorize_lines(
        state.refined, state.input.recon_categories, trace=trace
    )
    categorized = apply_duplication_rules(labelled)

    logger.info(
        "Categorize complete",
        extraction_id=state.extraction_id,
        labelled=len(labelled),
        after_duplication=len(categorized),
    )

    return {"categorized": categorized, "trace": finish_node(trace, "categorize", started_at)}
