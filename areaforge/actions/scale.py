"""Scale action: deterministic resize of existing areas. No model call.

"scale to 5000 sqm" becomes a proportional ``redistribute`` intent and
"+10%" / "reduce by 20%" an ``adjust_percent`` intent. The intent executor
does the math, including the final rounding correction.
"""

import re
import sys

from areaforge.actions.registry import Action
from areaforge.errors import ValidationError
from areaforge.intents import process_intent
from areaforge.state import ActionContext, AreaNode, area_total
from areaforge.typology import format_area

# Whole number only: "5,000" but not the "500" inside "5000" or the "20" in "20%"
_NUM = r"(\d[\d,]*(?:\.\d+)?)(?![\d,]|\.\d)"

_SCALE_RES = [
    re.compile(rf"(?:scale|adjust|set|change|make)\s+(?:total\s+)?(?:to\s+)?{_NUM}(?!\s*%)", re.IGNORECASE),
    re.compile(rf"(?:target|total)\s+(?:of\s+)?{_NUM}(?!\s*%)", re.IGNORECASE),
    re.compile(rf"{_NUM}\s*(?:m²|sqm)\s+(?:total|target)", re.IGNORECASE),
]
_PERCENT_RES = [
    re.compile(rf"(?:increase|raise|grow|add)\s+(?:by\s+)?{_NUM}\s*%", re.IGNORECASE),
    re.compile(rf"(?:decrease|reduce|cut|lower)\s+(?:by\s+)?{_NUM}\s*%", re.IGNORECASE),
    re.compile(r"([+-]?\d[\d,]*(?:\.\d+)?)\s*%"),
]
_DECREASE_RE = re.compile(r"decrease|reduce|cut|lower", re.IGNORECASE)


def _number(text: str) -> float:
    return float(text.replace(",", ""))


def detect_numeric_intent(prompt: str) -> dict:
    """Read a scale-to-target or percent directive from free text.

    Returns {"type": "scale_to_target", "target_value", "confidence"},
    {"type": "adjust_percent", "percent", "confidence"} or {"type": "other"}.
    Decrease verbs and a leading minus make the percent negative.
    """
    for pattern in _SCALE_RES:
        match = pattern.search(prompt)
        if match:
            return {"type": "scale_to_target", "target_value": _number(match.group(1)), "confidence": 0.9}

    for pattern in _PERCENT_RES:
        match = pattern.search(prompt)
        if match:
            value = _number(match.group(1))
            if _DECREASE_RE.search(prompt) or match.group(1).startswith("-"):
                value = -abs(value)
            return {"type": "adjust_percent", "percent": value, "confidence": 0.85}

    return {"type": "other", "confidence": 0.0}


def _plural(count: int) -> str:
    return "s" if count != 1 else ""


class ScaleAction(Action):
    id = "scale"
    name = "Scale Areas"
    description = "Scale areas to a target total or adjust by percentage"
    examples = [
        "Scale to 5000 sqm",
        "Increase by 10%",
        "+15%",
        "Reduce by 20%",
    ]
    patterns = [
        re.compile(r"\b(scale|adjust|set|change|make)\s+(?:total\s+)?(?:to\s+)?\d", re.IGNORECASE),
        re.compile(r"\b(target|total)\s+(?:of\s+)?\d", re.IGNORECASE),
        re.compile(r"\b(increase|raise|grow|add|decrease|reduce|cut|lower)\s+(?:by\s+)?\d+\s*%", re.IGNORECASE),
        re.compile(r"^\s*[+-]?\d+\s*%\s*$"),
    ]
    selection_requirement = "none"
    priority = 30

    def validate(self, prompt: str, selection: list[AreaNode], context: ActionContext) -> dict:
        if detect_numeric_intent(prompt)["type"] == "other":
            return {
                "valid": False,
                "error": 'Could not understand the scale/adjust command. Try "scale to 5000" or "+10%"',
            }
        if not (selection or context["nodes"]):
            return {"valid": False, "error": "No areas to scale. Create a program first."}
        return {"valid": True}

    async def execute(self, prompt: str, selection: list[AreaNode], context: ActionContext) -> dict:
        detected = detect_numeric_intent(prompt)
        targets = selection or list(context["nodes"].values())
        scope = "selected" if selection else "all"
        print(f"[AreaForge] Scale: {detected['type']} on {len(targets)} areas ({scope})", file=sys.stderr)

        if detected["type"] == "other":
            return {
                "message": 'Could not determine scale operation. Try "scale to 5000" or "+10%"',
                "data": {"proposals": []},
                "warnings": ["parse_error"],
            }

        node_ids = [n["id"] for n in targets]
        current = sum(area_total(n) for n in targets)
        if detected["type"] == "scale_to_target":
            intent = {
                "type": "redistribute",
                "target_total": detected["target_value"],
                "node_ids": node_ids,
                "method": "proportional",
            }
        else:
            intent = {"type": "adjust_percent", "percent": detected["percent"], "node_ids": node_ids}

        try:
            result = process_intent(intent, context["nodes"], context["groups"])
        except ValidationError as exc:
            print(f"[AreaForge] Scale rejected: {exc}", file=sys.stderr)
            return {
                "success": False,
                "message": "; ".join(exc.errors),
                "data": {"proposals": []},
                "warnings": ["validation_error"],
            }
        counts = {n["id"]: n.get("count", 1) for n in targets}
        new_total = sum(
            u["changes"]["area_per_unit"] * counts[u["node_id"]]
            for p in result["proposals"]
            for u in p["updates"]
        )

        n = len(targets)
        if detected["type"] == "scale_to_target":
            change = (new_total - current) / current * 100 if current else 0.0
            message = (
                f"Scaled {n} area{_plural(n)} from {format_area(current)} to {format_area(new_total)} "
                f"({'+' if change >= 0 else ''}{change:.1f}%)"
            )
        else:
            percent = detected["percent"]
            message = (
                f"Adjusted {n} area{_plural(n)} by {'+' if percent >= 0 else ''}{percent:g}%: "
                f"{format_area(current)} → {format_area(new_total)}"
            )

        return {
            "message": message,
            "data": {"proposals": result["proposals"], "adjustments": result["adjustments"]},
            "warnings": result["warnings"],
        }
