"""
Prompt Templates for Yard Chat Extraction

One instruction set per pipeline stage. Every prompt insists on the same
rule: use only what the chat says, never invent vehicles, people or places.
"""

from yardline.pipeline.actions import ActionType
from yardline.store.port import ReconCategory

NO_INVENTION_RULES = """Hard rules:
- Use ONLY the lines you are given.
- Never invent vehicles, regos, people, places, dates or times.
- Never add lines that have no source in the input.
- If nothing qualifies, return an empty list."""


# =============================================================================
# Filter
# =============================================================================

FILTER_SYSTEM_PROMPT = f"""You read group chat from a used car yard and keep ONLY the lines that carry something actionable about a car.

Return JSON: {{"messages": [{{"speaker": "", "text": ""}}]}}

{NO_INVENTION_RULES}

Keep lines about: where a car is or is going, cars being ready, repairs or faults, sales, drop-offs, pickups and swaps, customer viewings, reconditioning bookings, and concrete to-do items.
Drop chit-chat, greetings, jokes and lines that add no car, time or place.

Shaping:
- Split bullet lists and multi-car lines into one line per car or action, carrying the sender forward.
- Rewrite fragments into short standalone statements, keeping every rego, make, model, badge, year, colour, time, person and place.
- Keep conditions together with the action they qualify ("Take the Liberty to Imad when he is free").
- Lines starting with "Photo analysis:" describe an analysed photo; treat them as normal text. A bare "Photo" line is a photo that could not be analysed; drop it."""


def get_filter_prompt(lines: str) -> list[dict]:
    """Build the filter prompt."""
    return [
        {"role": "system", "content": FILTER_SYSTEM_PROMPT},
        {"role": "user", "content": f"Chat lines:\n{lines}"},
    ]


# =============================================================================
# Refine
# =============================================================================

REFINE_SYSTEM_PROMPT = f"""You rewrite actionable car-yard statements into clear, canonical wording without changing any fact.

Return JSON: {{"messages": [{{"speaker": "", "text": ""}}]}}

{NO_INVENTION_RULES}

Wording:
- Make and model in Proper Case ("Toyota Corolla"); add the make only when the model makes it unambiguous.
- Regos in UPPERCASE without spaces ("XYZ789").
- Prefer direct phrasing: "is at ...", "is sold", "needs ...", "is ready", "drop off ... to ...", "next location ...".
- Names mentioned in a line are the people doing or receiving the action; never swap them for the sender.
- Keep "customer" or "buyer" as written.
- "Bring out", "prep" and "pull to the front" are not drop-offs unless a destination is named.
- A line mixing prep and a customer viewing becomes two lines.
- If a line cannot be safely rewritten, keep it close to the original."""


def get_refine_prompt(lines: str) -> list[dict]:
    """Build the refine prompt."""
    return [
        {"role": "system", "content": REFINE_SYSTEM_PROMPT},
        {"role": "user", "content": f"Actionable lines:\n{lines}"},
    ]


# =============================================================================
# Categorize
# =============================================================================

CATEGORY_GUIDE = """Categories (exactly one per output item):
- LOCATION_UPDATE: a car is now somewhere, or is moving from one place to another.
- SOLD: a car has been sold.
- REPAIR: mechanical, body, tyre or parts work a car needs.
- READY: a specific car is ready. "X has nothing ready" is OTHER.
- DROP_OFF: take, drop, pick up or swap a car with a named destination.
- CUSTOMER_APPOINTMENT: a customer is booked to view or collect a car.
- RECON_APPOINTMENT: a service, roadworthy, tint, tyre, body, interior or mechanical booking.
- NEXT_LOCATION: where a car needs to go next (future intent only).
- TASK: people logistics and chores: photos, fuel, cleaning, ordering parts, bringing a car out.
- OTHER: useful but not actionable."""


def format_recon_hints(categories: list[ReconCategory]) -> str:
    """Flatten configured keywords and rules into a hint list."""
    terms: list[str] = []
    seen: set[str] = set()
    for category in categories:
        for term in [*category.keywords, *category.rules]:
            if term.lower() not in seen:
                seen.add(term.lower())
                terms.append(term)
    return ", ".join(terms)


def get_categorize_prompt(lines: str, recon_categories: list[ReconCategory] | None = None) -> list[dict]:
    """Build the categorize prompt, with recon hints when categories are configured."""
    hints = format_recon_hints(recon_categories or [])
    recon_block = ""
    if hints:
        recon_block = (
            "\n\nRecon hints (case-insensitive). Any of these words in a line strongly "
            f"signals RECON_APPOINTMENT:\n{hints}"
        )

    system = f"""You label actionable car-yard lines with a category.

Return JSON: {{"items": [{{"speaker": "", "text": "", "category": ""}}]}}

{NO_INVENTION_RULES}
- "speaker" and "text" must be copied exactly from an input line.

{CATEGORY_GUIDE}{recon_block}

A line that is both a movement and a service job may appear twice, once per category."""

    return [
        {"role": "system", "content": system},
        {"role": "user", "content": f"Lines to categorize:\n{lines}"},
    ]


# =============================================================================
# Extract
# =============================================================================

VEHICLE_FIELDS_HELP = """Vehicle fields (every action):
- rego: UPPERCASE, no spaces, "" if not given.
- make: Proper Case, "" if unknown (infer from the model only when unambiguous).
- model: as commonly written ("Hilux", "i30", "BT-50").
- badge: series or variant ("SR5", "XLT"), else "".
- description: short identifiers such as colour or accessories, else "".
- year: four digits if given, else "".
Strings only. Unknown values are ""."""

_EXTRACTION_FIELDS: dict[ActionType, tuple[str, str]] = {
    ActionType.LOCATION_UPDATE: (
        '"location": ""',
        '- location: the place named in the line ("Haytham\'s", "detailer").',
    ),
    ActionType.SOLD: (
        "",
        "- Only when the line clearly says the car is sold.",
    ),
    ActionType.REPAIR: (
        '"checklistItem": ""',
        '- checklistItem: short imperative ("Replace bonnet", "Fix oil leak").',
    ),
    ActionType.READY: (
        '"readiness": ""',
        '- readiness: short phrase such as "ready for pickup" or "ready at Haytham\'s".',
    ),
    ActionType.DROP_OFF: (
        '"destination": "", "note": ""',
        "- destination: the place or person the car goes to.\n"
        "- note: conditions or pickup intent, if any.",
    ),
    ActionType.CUSTOMER_APPOINTMENT: (
        '"name": "", "dateTime": "", "notes": ""',
        '- name: as written ("Chiara", "customer").\n'
        "- dateTime: only if stated.\n"
        "- notes: short extra context.",
    ),
    ActionType.NEXT_LOCATION: (
        '"nextLocation": ""',
        "- nextLocation: the future destination as described.",
    ),
    ActionType.TASK: (
        '"task": ""',
        '- task: short imperative ("take photos", "order parts").',
    ),
}


def _extraction_system(action_type: ActionType, fields: str, notes: str) -> str:
    extra = f", {fields}" if fields else ""
    shape = (
        f'{{"type": "{action_type.value}", "rego": "", "make": "", "model": "", '
        f'"badge": "", "description": "", "year": ""{extra}}}'
    )
    return f"""From {action_type.value} lines only, extract actions.

{VEHICLE_FIELDS_HELP}

Return JSON: {{"actions": [{shape}]}}

{notes}
- If a line does not clearly describe a car, create no action for it.

{NO_INVENTION_RULES}"""


EXTRACTION_SYSTEM_PROMPTS: dict[ActionType, str] = {
    action_type: _extraction_system(action_type, fields, notes)
    for action_type, (fields, notes) in _EXTRACTION_FIELDS.items()
}


def get_recon_extraction_system(categories: list[ReconCategory]) -> str:
    """Recon instructions are built from the configured categories."""
    ordered = sorted(categories, key=lambda c: (c.sort_order, c.name.lower()))
    allowed = ", ".join(f'"{c.name}"' for c in ordered) or '"Other"'
    matching = "\n".join(
        f"- {c.name}: keywords={c.keywords or []} rules={c.rules or []}" for c in ordered
    ) or "- none configured"
    defaults = "\n".join(
        f"- {c.name}: {c.default_service}" for c in ordered if c.default_service
    ) or "- none configured"

    notes = f"""- category: one of {allowed} (case-insensitive, listed in priority order).
  A category matches when any of its keywords or rules appears in the line.
  If several categories match, output one action per matching category (at most 3, highest match count first).
  If none match, use "Other". Never invent categories.
- name: the contractor or person doing the work, as written.
- service: what is to be done; when the line gives none, use the category default.
- dateTime, notes: only if stated.

Configured categories:
{matching}

Default services:
{defaults}"""
    return _extraction_system(
        ActionType.RECON_APPOINTMENT,
        '"name": "", "service": "", "category": "", "dateTime": "", "notes": ""',
        notes,
    )


def get_extraction_prompt(
    action_type: ActionType,
    lines: str,
    recon_categories: list[ReconCategory] | None = None,
) -> list[dict]:
    """Build the per-category extraction prompt."""
    if action_type is ActionType.RECON_APPOINTMENT:
        system = get_recon_extraction_system(recon_categories or [])
    else:
        system = EXTRACTION_SYSTEM_PROMPTS[action_type]
    return [
        {"role": "system", "content": system},
        {"role": "user", "content": f"{action_type.value} lines:\n{lines}"},
    ]


# =============================================================================
# Audit
# =============================================================================

AUDIT_SYSTEM_PROMPT = """You audit extracted car-yard actions against the chat messages they came from. You do not create actions; you only judge them.

Return JSON: {"items": [{"actionIndex": 0, "verdict": "CORRECT", "reason": "", "evidenceText": ""}]}

The MESSAGES are the only source of truth.

Verdicts:
- CORRECT: type, car and key details match what the messages say or strongly imply. Paraphrase is fine.
- PARTIAL: car and intent are right but some detail is over-precise or slightly off.
- INCORRECT: wrong car, wrong type, or something the messages never say.
- UNSURE: the messages are too vague to judge.

Type notes:
- TASK, DROP_OFF and NEXT_LOCATION never need an appointment.
- RECON_APPOINTMENT is correct when a line books work or names work the team will schedule.
- REPAIR is correct when checklistItem summarises a fault the messages mention.

Evidence:
- For CORRECT and PARTIAL, evidenceText is a short quote copied from the messages.
- For INCORRECT, reason says what is wrong.

Indexing:
- MESSAGES and ACTIONS are listed 1-based.
- actionIndex is 0-based (action 1 is actionIndex 0).
- Give exactly one item per action."""


def get_audit_prompt(messages: str, actions: str) -> list[dict]:
    """Build the audit prompt."""
    return [
        {"role": "system", "content": AUDIT_SYSTEM_PROMPT},
        {"role": "user", "content": f"MESSAGES:\n{messages}\n\nACTIONS:\n{actions}"},
    ]


# =============================================================================
# Vision
# =============================================================================

VEHICLE_PHOTO_SYSTEM_PROMPT = """You look at one photo taken in a used car yard.

Return JSON: {"make": "", "model": "", "rego": "", "colorDescription": "", "analysis": ""}

- make, model: only when you can recognise the vehicle; otherwise "".
- rego: the number plate exactly as printed, UPPERCASE, no spaces; "" if unreadable. Never guess characters.
- colorDescription: body colour and notable accessories.
- analysis: one sentence on what the photo shows that matters to the yard (damage, a part, paperwork, a location).
- If the photo shows no vehicle, leave make, model and rego empty and describe the photo in analysis."""
