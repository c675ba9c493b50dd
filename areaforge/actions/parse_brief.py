"""Parse-brief action: long-form brief text becomes a create-areas proposal.

The text is classified first. Garbage is rejected, short generation prompts
are redirected to the create action, and everything else goes through the
extraction model. Areas come back literally as written in the brief, so no
allocation math runs here; the proposal carries per-area provenance notes and
the groups the brief itself declares.
"""

import re
import sys

from areaforge.actions.registry import Action
from areaforge.classifier import analyze, can_proceed_with_parsing, describe_category, describe_strategy
from areaforge.intents import process_intent
from areaforge.state import ActionContext, AreaNode

# Strict parsing flags a mismatch between parsed and stated totals above this share
TOTAL_TOLERANCE = 0.02

_PREFIX_RES = [
    re.compile(r"^parse\s*(?:this\s*)?(?:brief)?:\s*", re.IGNORECASE),
    re.compile(r"^extract\s*(?:areas?\s*)?(?:from)?:\s*", re.IGNORECASE),
    re.compile(r"^brief\s*:\s*", re.IGNORECASE),
    re.compile(
        r"^(?:please\s+)?(?:create|generate|read|import|load)\s+(?:(?:areas?|program)\s+)?from\s+(?:this\s+)?"
        r"(?:file|brief|list|excel|table|text|doc(?:ument)?|spreadsheet)\s*[:.]?\s*",
        re.IGNORECASE,
    ),
    re.compile(r"^from\s+(?:file|brief|list|excel|table|text)\s*:\s*", re.IGNORECASE),
]
_EXPLICIT_FROM_RE = re.compile(
    r"(?:create|generate|read|import|load)\s+.*from\s+(?:this\s+)?"
    r"(?:file|brief|list|excel|table|text|doc(?:ument)?|spreadsheet)",
    re.IGNORECASE,
)

BRIEF_SYSTEM_PROMPT = """\
You extract the area program from an architectural brief.

Extract literally. Do not invent spaces, do not redistribute areas, do not
round. Every row that has a space name and an area value becomes one area.

## Output format (JSON only, no markdown fences)

{
  "areas": [
    {
      "name": "Guest Room",
      "area_per_unit": 30,
      "count": 80,
      "brief_note": "King bed, balcony. Adjacent to corridor.",
      "group_hint": "Accommodation"
    }
  ],
  "detected_groups": [
    {"name": "Accommodation", "area_names": ["Guest Room", "Suite"]}
  ],
  "brief_total": 5000,
  "ambiguities": ["Spa size given as a range (300-400 m²), used 350"]
}

## Rules
- "N × X m²" means count N, area_per_unit X. A single row is count 1.
- area_per_unit is in m² for ONE unit.
- "group_hint" is the section header the row sits under, if any.
- "brief_note" keeps requirements, adjacencies or remarks from that row.
- "brief_total" is the overall total stated in the brief, or null.
- List anything you had to guess in "ambiguities".
- Respond with ONLY the JSON object.
"""


def has_explicit_trigger(prompt: str) -> bool:
    lower = prompt.lower().lstrip()
    return (
        lower.startswith(("parse", "extract", "brief:", "from file", "from brief"))
        or bool(_EXPLICIT_FROM_RE.search(lower))
    )


def strip_command_prefix(prompt: str) -> str:
    cleaned = prompt.strip()
    for pattern in _PREFIX_RES:
        cleaned = pattern.sub("", cleaned)
    return cleaned.strip()


def _check_brief_response(data: dict) -> None:
    areas = data.get("areas")
    if not isinstance(areas, list):
        raise ValueError("Response must contain an areas list")
    for area in areas:
        if not isinstance(area, dict) or not area.get("name"):
            raise ValueError("Every area needs a name")
        value = area.get("area_per_unit")
        if not isinstance(value, (int, float)) or isinstance(value, bool) or value <= 0:
            raise ValueError(f"{area['name']}: area_per_unit must be a positive number")


def _area_spec(area: dict) -> dict:
    count = max(1, int(area.get("count") or 1))
    value = area["area_per_unit"]
    spec = {
        "name": area["name"],
        "area_per_unit": value,
        "count": count,
        "formula_reasoning": f"Extracted from brief: {count} × {value:g} m²" if count > 1
        else f"Extracted from brief: {value:g} m²",
    }
    if area.get("brief_note"):
        spec["brief_note"] = area["brief_note"]
    if area.get("group_hint"):
        spec["group_hint"] = area["group_hint"]
    return spec


class ParseBriefAction(Action):
    id = "parse_brief"
    name = "Parse Brief"
    description = "Extract area program from long-form brief text with tables/lists"
    examples = [
        "Create from brief: Guest rooms 200 x 35sqm...",
        "Generate from this list: Lobby 500m², Restaurant 300m²...",
        "Read from file: [paste your brief text]",
        "Parse this: Area specifications...",
    ]
    patterns = [
        re.compile(r"^parse\s*(?:this\s*)?(?:brief)?:", re.IGNORECASE),
        re.compile(r"^extract\s*(?:areas?\s*)?(?:from)?:", re.IGNORECASE),
        re.compile(r"^brief\s*:\s*", re.IGNORECASE),
        re.compile(
            r"\b(?:please\s+)?(?:create|generate|read|import|load)\s+(?:(?:areas?|program)\s+)?from\s+(?:this\s+)?"
            r"(?:file|brief|list|excel|table|text|doc(?:ument)?|spreadsheet)",
            re.IGNORECASE,
        ),
        re.compile(r"^from\s+(?:file|brief|list|excel|table|text):", re.IGNORECASE),
        re.compile(
            r"(?:\d+\s*[×x]\s*\d+|\d+\s*m²|\d+\s*sqm).{10,}(?:\d+\s*[×x]\s*\d+|\d+\s*m²|\d+\s*sqm)",
            re.IGNORECASE | re.DOTALL,
        ),
    ]
    selection_requirement = "none"
    priority = 25

    def validate(self, prompt: str, selection: list[AreaNode], context: ActionContext) -> dict:
        if analyze(prompt)["category"] == "garbage" and not has_explicit_trigger(prompt):
            return {
                "valid": False,
                "error": "This text doesn't look like a brief. Try \"create\" with a simple prompt instead.",
            }
        return {"valid": True}

    async def execute(self, prompt: str, selection: list[AreaNode], context: ActionContext) -> dict:
        explicit = has_explicit_trigger(prompt)
        cleaned = strip_command_prefix(prompt)
        classification = analyze(cleaned)
        print(
            f"[AreaForge] Parse brief ({len(cleaned)} chars): "
            f"{describe_category(classification['category'])}, {describe_strategy(classification['strategy'])}",
            file=sys.stderr,
        )

        if not can_proceed_with_parsing(classification) and not explicit:
            return {
                "message": "This text doesn't look like a brief. " + " ".join(classification["suggestions"]),
                "data": {"proposals": []},
                "warnings": classification["warnings"],
            }
        if classification["strategy"] == "redirect_to_agent" and not explicit:
            return {
                "message": "This looks like a generation request rather than a brief to parse. "
                           "Try \"create\" action instead.",
                "data": {"proposals": [], "redirect": True},
                "warnings": ["Input redirected - use create action for prompts"],
            }

        data = await self.oracle.generate_json(
            BRIEF_SYSTEM_PROMPT, classification["cleaned_text"] or cleaned, validate=_check_brief_response
        )
        areas = [_area_spec(a) for a in data["areas"]]
        if not areas:
            return {
                "message": "No areas found in the brief.",
                "data": {"proposals": []},
                "warnings": ["no_areas"] + classification["warnings"],
            }

        detected_groups = [g for g in data.get("detected_groups") or [] if isinstance(g, dict) and g.get("name")]
        ambiguities = [str(a) for a in data.get("ambiguities") or []]
        parsed_total = sum(a["area_per_unit"] * a["count"] for a in areas)
        brief_total = data.get("brief_total")
        if (
            classification["strategy"] == "extract_strict"
            and isinstance(brief_total, (int, float))
            and brief_total > 0
            and abs(parsed_total - brief_total) > brief_total * TOTAL_TOLERANCE
        ):
            ambiguities.append(
                f"Program total: parsed {parsed_total:g}m² vs stated {brief_total:g}m² "
                f"(diff: {abs(parsed_total - brief_total):g}m²)"
            )

        message = f"Extracted {len(areas)} areas from brief ({parsed_total:,.0f} m² total)"
        if detected_groups:
            message += f"\nDetected {len(detected_groups)} groups: {', '.join(g['name'] for g in detected_groups)}"
        if ambiguities:
            message += "\n\nAmbiguities: " + "; ".join(ambiguities)

        proposal = {"type": "create_areas", "areas": areas}
        if detected_groups:
            proposal["detected_groups"] = detected_groups
        result = process_intent(
            {"type": "passthrough", "proposals": [proposal], "message": message},
            context["nodes"],
            context["groups"],
        )
        return {
            "message": result["message"],
            "data": {
                "proposals": result["proposals"],
                "parsed_total": parsed_total,
                "brief_total": brief_total,
                "ambiguities": ambiguities,
            },
            "warnings": classification["warnings"],
        }
