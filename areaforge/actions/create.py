"""Create action: a typology description (and optional total area) becomes a create-areas proposal.

The model never returns final numbers. It answers with a ``create_program``
intent (ratios and fixed totals), and the intent executor turns that into
exact per-unit areas. When the prompt states an area that does not fit the
typology, the user is asked to confirm the scale before the model is called.
"""

import re
import sys

from areaforge.actions.registry import Action
from areaforge.intents import parse_intent, process_intent
from areaforge.state import ActionContext, AreaNode
from areaforge.typology import format_area, generate_scale_clarification, match_typology

_AREA_RE = re.compile(r"(\d[\d,]*(?:\.\d+)?)\s*(?:sqm|m²|m2|square\s*met(?:er|re)s?)\b", re.IGNORECASE)
_HAS_AREA_RE = re.compile(r"\d[\d,]*\s*(?:sqm|m²|m2|square)", re.IGNORECASE)
_HAS_TYPOLOGY_RE = re.compile(
    r"\b(hotel|office|apartment|residential|commercial|school|hospital|museum|library|retail"
    r"|restaurant|warehouse|factory|building|facility|center|centre)\b",
    re.IGNORECASE,
)

DETAIL_LEVELS = {
    "abstract": "4-6 major zones, no counts",
    "typical": "6-10 areas, with unit counts where rooms repeat",
    "detailed": "12-20 specific spaces, with unit counts where rooms repeat",
}

CREATE_SYSTEM_PROMPT = """\
You are an architectural programming assistant. Given a building typology and
optionally a total floor area, you produce an area program as an INTENT.

You do NOT compute final areas. You describe shares and fixed totals; exact
numbers are calculated afterwards so that everything sums to the target.

## Output format (JSON only, no markdown fences)

{
  "message": "One-line summary of the program",
  "intent": {
    "type": "create_program",
    "target_total": <number, total m²>,
    "areas": [
      {
        "name": "Guest Rooms",
        "ratio": 0.6,
        "count": 120,
        "group_hint": "Accommodation",
        "note": "Standard double rooms, 25-30 m² each"
      },
      {
        "name": "Parking",
        "total_area": 2000,
        "group_hint": "Services"
      }
    ]
  }
}

## Rules
- Every area has a "name".
- Use "ratio" (0-1 share of the remaining area) for areas that scale with the
  building. Use "total_area" only when the category total is fixed regardless
  of building size.
- "count" is the number of identical units; the ratio/total is for ALL units
  of that area together.
- If no total area is given, choose a realistic total for the typology.
- Use metric units (m²).
- Respond with ONLY the JSON object.
"""


def extract_area(prompt: str) -> float | None:
    """First explicit area in the prompt, in m², or None."""
    match = _AREA_RE.search(prompt)
    if not match:
        return None
    return float(match.group(1).replace(",", ""))


def _check_create_response(data: dict) -> None:
    intent = parse_intent(data)
    if intent is None or intent["type"] not in ("create_program", "passthrough"):
        raise ValueError("Response must contain a create_program intent")
    if intent["type"] == "create_program" and (
        not isinstance(intent.get("areas"), list) or not intent["areas"]
    ):
        raise ValueError("create_program intent must list at least one area")


class CreateAction(Action):
    id = "create"
    name = "Create Program"
    description = "Generate a new area program for a building typology"
    examples = [
        "Create a 5000 sqm hotel",
        "Generate program for 200-room resort",
        "Design a mixed-use building with office and retail",
    ]
    patterns = [
        re.compile(
            r"\b(create|generate|make|design|plan)\b.*\b(program|brief|layout|building|hotel|office"
            r"|apartment|residential|commercial|school|hospital|museum|library|retail|restaurant"
            r"|warehouse|factory)\b",
            re.IGNORECASE,
        ),
        re.compile(r"\b(program|brief)\b.*\b(for|of)\b", re.IGNORECASE),
    ]
    selection_requirement = "none"
    priority = 10

    def validate(self, prompt: str, selection: list[AreaNode], context: ActionContext) -> dict:
        has_typology = bool(_HAS_TYPOLOGY_RE.search(prompt))
        has_area = bool(_HAS_AREA_RE.search(prompt))
        if not has_typology and not has_area and len(prompt) < 20:
            return {
                "valid": False,
                "error": 'Please specify what to create (e.g., "Create a 5000 sqm hotel")',
            }
        return {"valid": True}

    async def execute(self, prompt: str, selection: list[AreaNode], context: ActionContext) -> dict:
        area = extract_area(prompt)
        typology = match_typology(prompt)
        print(
            f"[AreaForge] Create: level={context['detail_level']}, area={area}, typology={typology}",
            file=sys.stderr,
        )

        if area is not None and typology is not None:
            clarification = generate_scale_clarification(area, typology)
            if clarification["needs_clarification"]:
                print(
                    f"[AreaForge] Scale mismatch ({clarification['severity']}): asking user to confirm",
                    file=sys.stderr,
                )
                return {
                    "message": clarification["question"],
                    "needs_clarification": True,
                    "clarification_options": [
                        {"label": option["label"], "value": option}
                        for option in clarification["options"]
                    ],
                    "data": {"original_prompt": prompt, "severity": clarification["severity"]},
                    "warnings": clarification["analysis"]["warnings"],
                }

        return await self._generate(self._user_prompt(prompt, area, context), area, context)

    async def execute_with_choice(self, prompt: str, option: dict, context: ActionContext) -> dict:
        """Continue a create after the user picked one of the clarification options."""
        user_prompt = (
            f"Original request: {prompt}\n\n"
            f"User confirmed: {option['label']}\n"
            f"Corrected area: {format_area(option['area'])}\n"
            f"Scale: {option['scale']}\n\n"
            f"Detail level: {DETAIL_LEVELS[context['detail_level']]}\n\n"
            "Proceed with generating the program."
        )
        return await self._generate(user_prompt, option["area"], context)

    @staticmethod
    def _user_prompt(prompt: str, area: float | None, context: ActionContext) -> str:
        parts = []
        if area is not None:
            parts.append(f"Total area: {format_area(area)} ({area:g} m²)")
        parts.append(f"Detail level: {DETAIL_LEVELS[context['detail_level']]}")
        if context.get("project_notes"):
            parts.append(f"Project notes: {context['project_notes']}")
        parts.append(prompt)
        return "\n\n".join(parts)

    async def _generate(self, user_prompt: str, area: float | None, context: ActionContext) -> dict:
        data = await self.oracle.generate_json(
            CREATE_SYSTEM_PROMPT, user_prompt, validate=_check_create_response
        )
        # Older outputs list finished proposals instead of an intent
        intent = dict(parse_intent(data))
        if area is not None and intent["type"] == "create_program":
            # The stated area wins over whatever total the model picked
            intent["target_total"] = area

        result = process_intent(intent, context["nodes"], context["groups"])
        return {
            "message": result["message"],
            "data": {"proposals": result["proposals"], "adjustments": result["adjustments"]},
            "warnings": result["warnings"],
        }
