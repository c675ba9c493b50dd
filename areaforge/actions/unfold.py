"""Unfold action: expand existing areas one scale level down into sub-areas.

Each target node is sent to the model with scale guidance (what kind of
children fit its size, and how many). The model answers with a ``split_area``
intent whose shares are turned into exact areas summing to the parent total.
Nodes below the minimum unfold area are skipped with a warning; the rest of
the batch still runs.
"""

import re
import sys

from areaforge.actions.registry import Action
from areaforge.config import get_config
from areaforge.intents import parse_intent, process_intent
from areaforge.state import ActionContext, AreaNode, area_total
from areaforge.typology import describe_scale, format_area, get_scale_unfold_guidance, validate_split_for_scale

DEPTH_HINTS = {
    "abstract": "3-5 zones",
    "typical": "5-8 areas",
    "detailed": "8-12 specific spaces",
}

UNFOLD_SYSTEM_PROMPT = """\
You are an architectural programming assistant. You break an existing area
down into sub-areas one scale level finer (a district into plots, a building
into departments, a department into rooms).

You do NOT compute final areas. You describe shares of the parent; exact
numbers are calculated afterwards so the children sum to the parent total.

## Output format (JSON only, no markdown fences)

{
  "message": "Breaking down <area name> into ...",
  "intent": {
    "type": "split_area",
    "splits": [
      {"name": "Reception", "ratio": 0.15},
      {"name": "Meeting Room", "ratio": 0.35, "count": 4},
      {"name": "Plant Room", "total_area": 40}
    ]
  }
}

## Rules
- Every split has a "name" and either a "ratio" (share of the parent) or a
  fixed "total_area" in m².
- "count" is the number of identical units; the share covers all of them.
- Follow the scale guidance for the number and size of children.
- Respond with ONLY the JSON object.
"""


def _check_unfold_response(data: dict) -> None:
    intent = parse_intent(data)
    if intent is None or intent["type"] not in ("split_area", "passthrough"):
        raise ValueError("Response must contain a split_area intent")
    if intent["type"] == "split_area" and (
        not isinstance(intent.get("splits"), list) or len(intent["splits"]) < 2
    ):
        raise ValueError("split_area intent must list at least two splits")


def _min_area() -> float:
    return get_config().get("min_unfold_area", 10)


class UnfoldAction(Action):
    id = "unfold"
    name = "Unfold Area"
    description = "Expand a selected area into detailed sub-areas"
    examples = [
        "Unfold this zone into rooms",
        "Expand with focus on guest amenities",
        "Break down into specific spaces",
    ]
    patterns = [
        re.compile(r"\b(unfold|expand|divide|grain|break\s*down|detail|sub-?divide|elaborate)\b", re.IGNORECASE),
        re.compile(r"\b(split\s*into|more\s*detail|drill\s*down)\b", re.IGNORECASE),
    ]
    selection_requirement = "single"
    priority = 20

    def validate(self, prompt: str, selection: list[AreaNode], context: ActionContext) -> dict:
        if not selection:
            return {
                "valid": False,
                "error": "Unfold requires selecting an area first. Please select one area to expand.",
            }
        if len(selection) > 1:
            return {
                "valid": False,
                "error": "Unfold works on one area at a time. Please select a single area to expand.",
            }
        node = selection[0]
        total = area_total(node)
        if total < _min_area():
            return {
                "valid": False,
                "error": f'"{node["name"]}" ({total:g}m²) is too small to unfold. Select a larger area.',
            }
        return {"valid": True}

    def _user_prompt(self, node: AreaNode, guidance: dict, prompt: str, context: ActionContext) -> str:
        total = area_total(node)
        lines = [
            f'Expand/breakdown "{node["name"]}" ({format_area(total)}, {total:g} m²) into sub-areas.',
            "",
            f"Detected scale: {describe_scale(guidance['current_scale'])}",
            f"Children should be {guidance['children_type']}, e.g. {', '.join(guidance['examples'])}.",
            guidance["constraint"],
            f"Detail level: {DEPTH_HINTS[context['detail_level']]}",
        ]
        if node.get("notes"):
            lines.append(f"Notes from brief: {' '.join(node['notes'])}")
        if prompt:
            lines.append(f"Additional context: {prompt}")
        return "\n".join(lines)

    async def _unfold_one(self, node: AreaNode, prompt: str, context: ActionContext) -> dict:
        total = area_total(node)
        guidance = get_scale_unfold_guidance(total)
        print(
            f"[AreaForge] Unfold \"{node['name']}\" ({format_area(total)}): "
            f"{guidance['current_scale']} scale -> {guidance['children_type']}",
            file=sys.stderr,
        )
        data = await self.oracle.generate_json(
            UNFOLD_SYSTEM_PROMPT,
            self._user_prompt(node, guidance, prompt, context),
            validate=_check_unfold_response,
        )
        intent = dict(parse_intent(data))
        if intent["type"] == "split_area":
            intent["source_node_id"] = node["id"]
            intent["source_name"] = node["name"]
            intent["group_name"] = node["name"]
        intent.setdefault("message", "")
        result = process_intent(intent, context["nodes"], context["groups"])
        for proposal in result["proposals"]:
            if proposal["type"] != "split_area":
                continue
            parts = sum(s.get("count", 1) for s in proposal["splits"])
            check = validate_split_for_scale(total, parts, guidance["next_scale"] or guidance["current_scale"])
            if not check["valid"]:
                print(f"[AreaForge] {check['warning']}", file=sys.stderr)
                result["warnings"] = result["warnings"] + [check["warning"]]
        result["message"] = f"[{guidance['current_scale']} scale → {guidance['children_type']}] {result['message']}"
        return result

    async def execute(self, prompt: str, selection: list[AreaNode], context: ActionContext) -> dict:
        minimum = _min_area()
        proposals = []
        lines = []
        warnings = []
        unfolded = 0

        for node in selection:
            total = area_total(node)
            if total < minimum:
                print(f"[AreaForge] Skipping \"{node['name']}\": below {minimum:g} m²", file=sys.stderr)
                lines.append(
                    f'"{node["name"]}" ({format_area(total)}) is too small to split meaningfully. '
                    f"Minimum splittable area is ~{minimum:g} m²."
                )
                warnings.append("area_too_small")
                continue
            try:
                result = await self._unfold_one(node, prompt, context)
            except ValueError as exc:
                print(f"[AreaForge] Unfold of \"{node['name']}\" rejected: {exc}", file=sys.stderr)
                lines.append(f"{node['name']}: could not unfold ({exc})")
                warnings.append("unfold_failed")
                continue
            proposals.extend(result["proposals"])
            warnings.extend(result["warnings"])
            splits = result["proposals"][0].get("splits", []) if result["proposals"] else []
            lines.append(
                result["message"] if len(selection) == 1
                else f"{node['name']}: expanded into {len(splits)} sub-areas"
            )
            unfolded += 1

        if len(selection) == 1:
            message = lines[0] if lines else "Nothing to unfold."
        else:
            message = f"Unfolded {unfolded}/{len(selection)} areas:\n" + "\n".join(f"• {line}" for line in lines)

        return {
            "message": message,
            "data": {"proposals": proposals, "unfolded_count": unfolded, "total_areas": len(selection)},
            "warnings": warnings,
        }
