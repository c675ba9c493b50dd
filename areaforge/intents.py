"""Intent executor: turns what the model *wants* into exact, reproducible area numbers.

The model only ever speaks in intents (ratios, percentages, fixed areas,
operation keywords). All arithmetic happens here, so every proposal handed to
the user sums exactly to the target it was asked for.
"""

import math
import sys
from typing import Literal, TypedDict, get_args

from areaforge.config import get_config
from areaforge.errors import ValidationError
from areaforge.proposals import PROPOSAL_TYPES, make_proposal
from areaforge.state import AreaNode, Group, area_total
from areaforge.utils.integrity import check_proposal

IntentType = Literal[
    "create_program",
    "split_area",
    "split_by_quantity",
    "merge_areas",
    "redistribute",
    "adjust_percent",
    "passthrough",
]

INTENT_TYPES = get_args(IntentType)

# Deviation (fraction of target) beyond which all entries are rescaled.
RESCALE_TOLERANCE = 0.01


class AreaIntent(TypedDict, total=False):
    name: str
    total_area: float  # Preferred: exact total for this category
    fixed_area: float  # Same meaning as total_area, kept for older outputs
    ratio: float  # 0-1 share, or a percentage when > 1
    count: int
    group_hint: str
    note: str


class CreateProgramIntent(TypedDict, total=False):
    type: Literal["create_program"]
    target_total: float
    areas: list[AreaIntent]
    message: str


class SplitAreaIntent(TypedDict, total=False):
    type: Literal["split_area"]
    source_node_id: str
    source_name: str
    splits: list[AreaIntent]
    group_name: str
    group_color: str
    message: str


class SplitByQuantityIntent(TypedDict, total=False):
    type: Literal["split_by_quantity"]
    source_node_id: str
    source_name: str
    quantities: list[int]
    names: list[str]
    message: str


class MergeAreasIntent(TypedDict, total=False):
    type: Literal["merge_areas"]
    source_node_ids: list[str]
    source_names: list[str]
    result_name: str
    message: str


class RedistributeIntent(TypedDict, total=False):
    type: Literal["redistribute"]
    target_total: float
    node_ids: list[str]  # Empty means every node
    method: Literal["proportional", "equal"]
    message: str


class AdjustPercentIntent(TypedDict, total=False):
    type: Literal["adjust_percent"]
    percent: float  # +10 grows by 10%, -20 shrinks by 20%
    node_ids: list[str]
    message: str


class PassthroughIntent(TypedDict, total=False):
    type: Literal["passthrough"]
    proposals: list[dict]
    message: str


def round_half_up(value: float) -> int:
    """Round .5 away from zero for positives, matching the allocation rules."""
    return math.floor(value + 0.5)


def _log(message: str) -> None:
    print(f"[AreaForge] {message}", file=sys.stderr)


# --- Validation ---


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _validate_area_entries(entries, label: str, errors: list[str], warnings: list[str]) -> None:
    if not entries:
        errors.append(f"{label} array cannot be empty")
        return
    for entry in entries:
        if not isinstance(entry, dict) or not entry.get("name"):
            errors.append(f"every entry in {label} needs a name")
            continue
        for key in ("total_area", "fixed_area", "ratio"):
            if key in entry and (not _is_number(entry[key]) or entry[key] < 0):
                errors.append(f"{entry['name']}: {key} must be a non-negative number")
        if "count" in entry and (not _is_number(entry["count"]) or entry["count"] < 1):
            errors.append(f"{entry['name']}: count must be >= 1")
        elif "count" in entry and not float(entry["count"]).is_integer():
            errors.append(f"{entry['name']}: count must be a whole number")
    if not all(
        isinstance(e, dict) and any(k in e for k in ("ratio", "fixed_area", "total_area"))
        for e in entries
    ):
        warnings.append("Some areas have no ratio or fixedArea - will distribute equally")


def _validate_node_ids(node_ids, nodes: dict, errors: list[str]) -> None:
    for node_id in node_ids or []:
        if node_id not in nodes:
            errors.append(f'nodeId "{node_id}" does not exist')


def _validate_create_program(intent, nodes, groups, errors, warnings):
    target = intent.get("target_total")
    if not _is_number(target) or target <= 0:
        errors.append("targetTotal must be positive")
    _validate_area_entries(intent.get("areas"), "areas", errors, warnings)


def _validate_source(intent, nodes, errors) -> AreaNode | None:
    source_id = intent.get("source_node_id")
    if not source_id:
        errors.append("sourceNodeId is required")
        return None
    if source_id not in nodes:
        errors.append(f'sourceNodeId "{source_id}" does not exist')
        return None
    return nodes[source_id]


def _validate_split_area(intent, nodes, groups, errors, warnings):
    _validate_source(intent, nodes, errors)
    _validate_area_entries(intent.get("splits"), "splits", errors, warnings)


def _validate_split_by_quantity(intent, nodes, groups, errors, warnings):
    quantities = intent.get("quantities") or []
    source = _validate_source(intent, nodes, errors)
    if source is not None:
        count = source.get("count", 1)
        if count < 2:
            errors.append("source node must have count >= 2 for quantity split")
        total = sum(q for q in quantities if _is_number(q))
        if total != count:
            errors.append(f"quantities sum ({total}) must equal source count ({count})")
        if any(not _is_number(q) or q < 1 or q != int(q) for q in quantities):
            errors.append("all quantities must be >= 1")
    if len(quantities) < 2:
        errors.append("quantities array must have at least 2 elements")
    names = intent.get("names")
    if names and len(names) != len(quantities):
        errors.append("names must match quantities one-to-one")


def _validate_merge_areas(intent, nodes, groups, errors, warnings):
    source_ids = intent.get("source_node_ids") or []
    if len(set(source_ids)) < 2:
        errors.append("merge requires at least 2 sourceNodeIds")
    for node_id in source_ids:
        if node_id not in nodes:
            errors.append(f'sourceNodeId "{node_id}" does not exist')


def _validate_redistribute(intent, nodes, groups, errors, warnings):
    target = intent.get("target_total")
    if not _is_number(target) or target <= 0:
        errors.append("targetTotal must be positive")
    if intent.get("method", "proportional") not in ("proportional", "equal"):
        errors.append("method must be 'proportional' or 'equal'")
    _validate_node_ids(intent.get("node_ids"), nodes, errors)
    if not errors and not _select_nodes(intent, nodes):
        errors.append("no areas to redistribute")
    elif not errors and sum(area_total(n) for n in _select_nodes(intent, nodes)) <= 0:
        errors.append("selected areas have no area to redistribute")


def _validate_adjust_percent(intent, nodes, groups, errors, warnings):
    percent = intent.get("percent")
    if percent is None:
        errors.append("percent is required")
    elif not _is_number(percent):
        errors.append("percent must be a number")
    elif percent <= -100:
        errors.append("percent must be greater than -100")
    _validate_node_ids(intent.get("node_ids"), nodes, errors)
    if not errors and not _select_nodes(intent, nodes):
        errors.append("no areas to adjust")


def _validate_passthrough(intent, nodes, groups, errors, warnings):
    proposals = intent.get("proposals") or []
    if not proposals:
        errors.append("proposals array cannot be empty")
    for proposal in proposals:
        if not isinstance(proposal, dict) or proposal.get("type") not in PROPOSAL_TYPES:
            kind = proposal.get("type") if isinstance(proposal, dict) else proposal
            errors.append(f"unknown proposal type: {kind}")
            continue
        errors.extend(check_proposal(proposal, nodes, groups))


_VALIDATORS = {
    "create_program": _validate_create_program,
    "split_area": _validate_split_area,
    "split_by_quantity": _validate_split_by_quantity,
    "merge_areas": _validate_merge_areas,
    "redistribute": _validate_redistribute,
    "adjust_percent": _validate_adjust_percent,
    "passthrough": _validate_passthrough,
}


def validate_intent(intent: dict, nodes: dict[str, AreaNode], groups: dict[str, Group]) -> dict:
    """Structural and referential checks for one intent.

    Returns {"valid": bool, "errors": [...], "warnings": [...]}. Never runs any
    area math.
    """
    errors: list[str] = []
    warnings: list[str] = []
    validator = _VALIDATORS.get(intent.get("type") if isinstance(intent, dict) else None)
    if validator is None:
        kind = intent.get("type") if isinstance(intent, dict) else intent
        errors.append(f"unknown intent type: {kind}")
    else:
        validator(intent, nodes, groups, errors, warnings)
    return {"valid": not errors, "errors": errors, "warnings": warnings}


# --- Area math ---


def normalize_ratios(entries: list[AreaIntent]) -> list[float]:
    """Normalize ratio-based entries so their shares sum to 1.0.

    A ratio above 1 is read as a percentage, a missing ratio is one equal
    share. If every share is zero the entries split equally.
    """
    ratios = []
    for entry in entries:
        ratio = entry.get("ratio")
        if ratio is None:
            ratios.append(1.0)
        else:
            ratios.append(ratio / 100 if ratio > 1 else float(ratio))

    total = sum(ratios)
    if total == 0:
        return [1 / len(ratios) for _ in ratios] if ratios else []
    return [r / total for r in ratios]


def _explicit_value(entry: AreaIntent) -> float | None:
    if entry.get("total_area") is not None:
        return entry["total_area"]
    if entry.get("fixed_area") is not None:
        return entry["fixed_area"]
    return None


def _correction_note(item: dict, delta: int) -> str:
    note = f"Rounding correction {delta:+d} m² on {item['name']}"
    if item["count"] > 1:
        note += f" (per unit, ×{item['count']})"
    return note


def _correct_residual(items: list[dict], target: int, preferred: int) -> list[str]:
    """Move per-unit areas so sum(area_per_unit * count) lands exactly on target.

    The residual goes whole to ``preferred`` when its count divides it, else to
    the entry with the smallest count that does. Failing that it is split over
    a pair of entries. Whatever cannot be placed without dropping an area
    below 1 m² is reported as a shortfall instead of being hidden.
    """
    residual = target - sum(i["area_per_unit"] * i["count"] for i in items)
    if not residual or not items:
        return []

    order = [preferred] + sorted(
        (i for i in range(len(items)) if i != preferred), key=lambda i: items[i]["count"]
    )

    def fits(index: int, delta: int) -> bool:
        return items[index]["area_per_unit"] + delta >= 1

    notes: list[str] = []
    for index in order:
        count = items[index]["count"]
        if residual % count == 0 and fits(index, residual // count):
            items[index]["area_per_unit"] += residual // count
            return [_correction_note(items[index], residual // count)]

    for first in order:
        for second in order:
            if first == second:
                continue
            step = items[second]["count"]
            for delta in sorted(range(-step, step + 1), key=abs):
                rest = residual - delta * items[first]["count"]
                if rest % step or not fits(first, delta) or not fits(second, rest // step):
                    continue
                for index, change in ((first, delta), (second, rest // step)):
                    if change:
                        items[index]["area_per_unit"] += change
                        notes.append(_correction_note(items[index], change))
                return notes

    # No exact fit: get as close as possible and say so
    for index in order:
        count = items[index]["count"]
        change = int(residual / count)
        new_value = max(1, items[index]["area_per_unit"] + change)
        change = new_value - items[index]["area_per_unit"]
        if change:
            items[index]["area_per_unit"] = new_value
            residual -= change * count
            notes.append(_correction_note(items[index], change))
        if not residual:
            return notes
    total = target - residual
    message = f"Total {total:,} m² differs from target {target:,} m² by {-residual:+,} m²"
    _log(message)
    notes.append(message)
    return notes


def calculate_exact_areas(
    entries: list[AreaIntent],
    target_total: float,
    tolerance: float = RESCALE_TOLERANCE,
) -> tuple[list[dict], list[str]]:
    """Allocate exact per-unit areas for entries so their totals hit target_total.

    Order: explicit totals first, ratio shares of the remainder second, one
    corrective rescale when the result is off by more than ``tolerance``, then
    the residual rounding error goes to the largest single-count entry (or the
    first entry) when that keeps the total exact. Every per-unit area stays >= 1.

    Returns (calculated entries, adjustment notes).
    """
    adjustments: list[str] = []

    explicit_sum = sum(v for v in (_explicit_value(e) for e in entries) if v is not None)
    remaining = target_total - explicit_sum
    if remaining < 0:
        message = (
            f"Explicit areas ({explicit_sum:g} m²) exceed target "
            f"({target_total:g} m²); ratio areas get nothing before rescale"
        )
        _log(message)
        adjustments.append(message)

    ratio_entries = [e for e in entries if _explicit_value(e) is None]
    shares = iter(normalize_ratios(ratio_entries))

    calculated = []
    for entry in entries:
        count = max(1, int(entry.get("count") or 1))
        explicit = _explicit_value(entry)
        if explicit is not None:
            category_total = explicit
        else:
            category_total = next(shares) * max(0, remaining)
        item = {
            "name": entry["name"],
            "area_per_unit": max(1, round_half_up(category_total / count)),
            "count": count,
        }
        if entry.get("group_hint"):
            item["group_hint"] = entry["group_hint"]
        if entry.get("note"):
            item["note"] = entry["note"]
        calculated.append(item)

    current_total = sum(c["area_per_unit"] * c["count"] for c in calculated)
    error = target_total - current_total
    if abs(error) > target_total * tolerance and current_total > 0:
        factor = target_total / current_total
        message = f"Scaled all areas by {factor * 100:.1f}% to match target"
        _log(message)
        adjustments.append(message)
        for item in calculated:
            item["area_per_unit"] = max(1, round_half_up(item["area_per_unit"] * factor))

    best = -1
    for i, item in enumerate(calculated):
        if item["count"] == 1 and (
            best == -1 or item["area_per_unit"] > calculated[best]["area_per_unit"]
        ):
            best = i
    adjustments.extend(_correct_residual(calculated, round_half_up(target_total), max(best, 0)))

    return calculated, adjustments


def _select_nodes(intent: dict, nodes: dict[str, AreaNode]) -> list[AreaNode]:
    node_ids = intent.get("node_ids") or []
    if node_ids:
        return [nodes[i] for i in node_ids if i in nodes]
    return list(nodes.values())


def _correct_updates(updates: list[dict], selected: list[AreaNode], target: int) -> list[str]:
    """Rounding correction for update_areas, starting from the first update."""
    items = [
        {
            "name": u["node_name"],
            "area_per_unit": u["changes"]["area_per_unit"],
            "count": max(1, int(n.get("count", 1))),
        }
        for u, n in zip(updates, selected)
    ]
    notes = _correct_residual(items, target, 0)
    for update, item in zip(updates, items):
        update["changes"]["area_per_unit"] = item["area_per_unit"]
    return notes


def _format_m2(value: float) -> str:
    return f"{value:,.0f} m²"


def _tolerance() -> float:
    return get_config().get("rescale_tolerance", RESCALE_TOLERANCE)


# --- Executors ---


def _execute_create_program(intent, nodes, groups) -> dict:
    calculated, adjustments = calculate_exact_areas(
        intent["areas"], intent["target_total"], _tolerance()
    )
    total = sum(c["area_per_unit"] * c["count"] for c in calculated)
    areas = []
    for item in calculated:
        spec = {"name": item["name"], "area_per_unit": item["area_per_unit"], "count": item["count"]}
        if item.get("group_hint"):
            spec["group_hint"] = item["group_hint"]
        if item.get("note"):
            spec["brief_note"] = item["note"]
        areas.append(spec)
    return {
        "proposals": [make_proposal("create_areas", areas=areas)],
        "message": intent.get("message")
        or f"Creating program: {len(calculated)} areas, {_format_m2(total)} total",
        "adjustments": adjustments,
    }


def _execute_split_area(intent, nodes, groups) -> dict:
    source = nodes[intent["source_node_id"]]
    source_name = intent.get("source_name") or source["name"]
    calculated, adjustments = calculate_exact_areas(intent["splits"], area_total(source), _tolerance())
    payload = {
        "source_node_id": source["id"],
        "source_name": source_name,
        "splits": [
            {"name": c["name"], "area_per_unit": c["area_per_unit"], "count": c["count"]}
            for c in calculated
        ],
    }
    if intent.get("group_name"):
        payload["group_name"] = intent["group_name"]
    if intent.get("group_color"):
        payload["group_color"] = intent["group_color"]
    return {
        "proposals": [make_proposal("split_area", **payload)],
        "message": intent.get("message") or f"Split {source_name} into {len(calculated)} parts",
        "adjustments": adjustments,
    }


def _execute_split_by_quantity(intent, nodes, groups) -> dict:
    source = nodes[intent["source_node_id"]]
    source_name = intent.get("source_name") or source["name"]
    quantities = [int(q) for q in intent["quantities"]]
    names = intent.get("names") or [
        source["name"] if i == 0 else f"{source['name']} ({i + 1})"
        for i in range(len(quantities))
    ]
    proposal = make_proposal(
        "split_by_quantity",
        source_node_id=source["id"],
        source_name=source_name,
        quantities=quantities,
        names=names,
    )
    joined = " + ×".join(str(q) for q in quantities)
    return {
        "proposals": [proposal],
        "message": intent.get("message")
        or f"Split {source_name} by quantity: ×{joined} (linked instances)",
        "adjustments": [],
    }


def _execute_merge_areas(intent, nodes, groups) -> dict:
    source_ids = list(dict.fromkeys(intent["source_node_ids"]))
    sources = [nodes[i] for i in source_ids]
    source_names = intent.get("source_names") or [n["name"] for n in sources]
    result_name = intent.get("result_name") or " + ".join(source_names)
    merged_total = sum(area_total(n) for n in sources)
    proposal = make_proposal(
        "merge_areas",
        source_node_ids=source_ids,
        source_names=source_names,
        result={"name": result_name, "area_per_unit": merged_total, "count": 1},
    )
    return {
        "proposals": [proposal],
        "message": intent.get("message") or f"Merge {', '.join(source_names)} into {result_name}",
        "adjustments": [],
    }


def _execute_redistribute(intent, nodes, groups) -> dict:
    selected = _select_nodes(intent, nodes)
    target = round_half_up(intent["target_total"])
    current_total = sum(area_total(n) for n in selected)
    factor = target / current_total
    method = intent.get("method", "proportional")

    updates = []
    for node in selected:
        if method == "proportional":
            new_area = round_half_up(node["area_per_unit"] * factor)
        else:
            new_area = round_half_up(target / len(selected) / node.get("count", 1))
        updates.append({
            "node_id": node["id"],
            "node_name": node["name"],
            "changes": {"area_per_unit": max(1, new_area)},
        })

    adjustments = [f"Scale factor {factor:.4f} ({method})"]
    adjustments.extend(_correct_updates(updates, selected, target))
    return {
        "proposals": [make_proposal("update_areas", updates=updates)],
        "message": intent.get("message") or f"Redistribute to {_format_m2(target)}",
        "adjustments": adjustments,
    }


def _execute_adjust_percent(intent, nodes, groups) -> dict:
    selected = _select_nodes(intent, nodes)
    percent = intent["percent"]
    factor = 1 + percent / 100
    target = round_half_up(sum(area_total(n) for n in selected) * factor)

    updates = [
        {
            "node_id": node["id"],
            "node_name": node["name"],
            "changes": {"area_per_unit": max(1, round_half_up(node["area_per_unit"] * factor))},
        }
        for node in selected
    ]
    adjustments = [f"Scale factor {factor:.4f}"]
    adjustments.extend(_correct_updates(updates, selected, target))
    direction = "increase" if percent >= 0 else "decrease"
    return {
        "proposals": [make_proposal("update_areas", updates=updates)],
        "message": intent.get("message") or f"{direction} by {abs(percent):g}%",
        "adjustments": adjustments,
    }


def _execute_passthrough(intent, nodes, groups) -> dict:
    proposals = []
    for raw in intent["proposals"]:
        payload = {k: v for k, v in raw.items() if k not in ("id", "type", "status")}
        proposals.append(make_proposal(raw["type"], **payload))
    return {
        "proposals": proposals,
        "message": intent.get("message") or "AI proposal",
        "adjustments": [],
    }


_EXECUTORS = {
    "create_program": _execute_create_program,
    "split_area": _execute_split_area,
    "split_by_quantity": _execute_split_by_quantity,
    "merge_areas": _execute_merge_areas,
    "redistribute": _execute_redistribute,
    "adjust_percent": _execute_adjust_percent,
    "passthrough": _execute_passthrough,
}

# New intent types must be wired into both dispatch tables.
for _table in (_VALIDATORS, _EXECUTORS):
    if set(_table) != set(INTENT_TYPES):
        raise RuntimeError(f"Intent dispatch out of sync: {sorted(set(INTENT_TYPES) ^ set(_table))}")


def execute_intent(intent: dict, nodes: dict[str, AreaNode], groups: dict[str, Group]) -> dict:
    """Execute a validated intent into stamped proposals.

    Returns {"proposals": [...], "message": str, "adjustments": [...]}.
    Call validate_intent first; process_intent does both.
    """
    return _EXECUTORS[intent["type"]](intent, nodes, groups)


# --- Parsing model output ---


def parse_intent(output) -> dict | None:
    """Extract an intent from parsed model JSON.

    Accepts {"intent": {...}}, a bare intent with a known type, or the older
    {"proposals": [...]} shape. Returns None when nothing usable is found.
    """
    if not isinstance(output, dict):
        return None

    if isinstance(output.get("intent"), dict):
        intent = output["intent"]
        if not isinstance(intent.get("type"), str):
            return None
        if output.get("message") and not intent.get("message"):
            intent = {**intent, "message": output["message"]}
        return intent

    if output.get("type") in INTENT_TYPES and output["type"] != "passthrough":
        return output

    proposals = output.get("proposals")
    if isinstance(proposals, list):
        create = next(
            (p for p in proposals if isinstance(p, dict) and p.get("type") == "create_areas"),
            None,
        )
        if create is not None and isinstance(create.get("areas"), list):
            areas = create["areas"]
            has_ratios = any("ratio" in a or "percentage" in a for a in areas)
            if has_ratios:
                total = sum(a.get("area_per_unit", 0) * a.get("count", 1) for a in areas)
                converted = []
                for area in areas:
                    entry = {"name": area.get("name"), "count": area.get("count") or 1}
                    ratio = area.get("ratio") or area.get("percentage")
                    if ratio is not None:
                        entry["ratio"] = ratio
                    if area.get("fixed_area") is not None:
                        entry["fixed_area"] = area["fixed_area"]
                    if area.get("group_hint"):
                        entry["group_hint"] = area["group_hint"]
                    if area.get("brief_note"):
                        entry["note"] = area["brief_note"]
                    converted.append(entry)
                intent = {"type": "create_program", "target_total": total, "areas": converted}
                if output.get("message"):
                    intent["message"] = output["message"]
                return intent

        intent = {"type": "passthrough", "proposals": proposals}
        if output.get("message"):
            intent["message"] = output["message"]
        return intent

    return None


def process_intent(intent: dict, nodes: dict[str, AreaNode], groups: dict[str, Group]) -> dict:
    """Validate then execute. Raises ValidationError without running any math if invalid."""
    validation = validate_intent(intent, nodes, groups)
    if not validation["valid"]:
        raise ValidationError(validation["errors"])
    for warning in validation["warnings"]:
        _log(f"Intent warning: {warning}")
    result = execute_intent(intent, nodes, groups)
    for proposal in result["proposals"]:
        problems = check_proposal(proposal, nodes, groups)
        if problems:
            raise ValidationError(problems)
    result["warnings"] = validation["warnings"]
    return result


def process_model_output(output, nodes: dict[str, AreaNode], groups: dict[str, Group]) -> dict:
    """Parse, validate and execute raw model JSON in one step."""
    intent = parse_intent(output)
    if intent is None:
        raise ValidationError(["Could not parse intent from model output"])
    return process_intent(intent, nodes, groups)
