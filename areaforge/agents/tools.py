"""Tool executors for the agent loop, and the tools node that runs them.

Every executor receives arguments already checked against its schema, the
read-only turn context, the proposals accumulated so far this turn and the
action registry. It returns a tool result and never touches agent state: the
tools node appends proposals and history. create, unfold, organize, scale and
parse_brief delegate to actions; the group tools compute their proposals
directly; quantity splits and merges go through the intent executor.

A failing tool produces a failed result and the loop continues. Only oracle
failures and cancellation propagate.
"""

import json
import sys

from langchain_core.runnables import RunnableConfig

from areaforge.actions.organize import categorize_by_function, groups_proposal
from areaforge.actions.registry import Registry
from areaforge.agents.tool_schemas import SCHEMAS_BY_NAME
from areaforge.context import group_members, selected_nodes
from areaforge.errors import OracleCancelled, OracleError, ToolExecutionError
from areaforge.intents import process_intent, round_half_up
from areaforge.proposals import make_proposal
from areaforge.state import ActionContext, AgentState, AreaNode, Group, area_total
from areaforge.typology import format_area
from areaforge.utils.integrity import check_proposal
from areaforge.utils.parsing import parse_tool_arguments

_PY_TYPES = {"string": str, "boolean": bool, "array": list, "object": dict}

PENDING_CREATE_MESSAGE = "A create proposal is already pending. User needs to accept it before creating more."


# --- Argument validation ---


def _coerce(value, schema: dict, path: str):
    kind = schema.get("type")
    if kind in ("number", "integer"):
        if isinstance(value, str):
            try:
                value = float(value.replace(",", ""))
            except ValueError:
                raise ToolExecutionError(f"{path} must be a number") from None
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ToolExecutionError(f"{path} must be a number")
        if kind == "integer":
            if value != int(value):
                raise ToolExecutionError(f"{path} must be an integer")
            value = int(value)
    elif kind in _PY_TYPES and not isinstance(value, _PY_TYPES[kind]):
        raise ToolExecutionError(f"{path} must be of type {kind}")

    if "enum" in schema and value not in schema["enum"]:
        raise ToolExecutionError(f"{path} must be one of: {', '.join(schema['enum'])}")
    if kind == "array" and "items" in schema:
        value = [_coerce(item, schema["items"], f"{path}[{i}]") for i, item in enumerate(value)]
    if kind == "object" and "properties" in schema:
        value = _coerce_object(value, schema, path)
    return value


def _coerce_object(value: dict, schema: dict, path: str) -> dict:
    missing = [key for key in schema.get("required", []) if value.get(key) is None]
    if missing:
        raise ToolExecutionError(f"{path}: missing required argument(s): {', '.join(missing)}")
    coerced = dict(value)
    for key, prop in schema.get("properties", {}).items():
        if coerced.get(key) is not None:
            coerced[key] = _coerce(coerced[key], prop, f"{path}.{key}")
    return coerced


def validate_arguments(name: str, args: dict) -> dict:
    """Check required keys, types and enums against the tool's schema.

    Numeric strings are accepted for number/integer fields. Returns the
    coerced arguments; raises ToolExecutionError on the first problem.
    """
    return _coerce_object(args, SCHEMAS_BY_NAME[name], name)


# --- Helpers ---


def _result(success: bool, message: str | None = None, error: str | None = None,
            result: dict | None = None, proposals: list[dict] | None = None) -> dict:
    return {
        "success": success,
        "message": message,
        "error": error,
        "result": result or {},
        "proposals": proposals or [],
    }


def _has_pending_create(proposals: list[dict]) -> bool:
    return any(p.get("type") == "create_areas" for p in proposals)


def _action(registry: Registry, action_id: str):
    action = registry.get(action_id)
    if action is None:
        raise ToolExecutionError(f"{action_id} action not available")
    return action


def _action_context(context: ActionContext, prompt: str, detail_level: str | None = None) -> ActionContext:
    return {**context, "prompt": prompt, "detail_level": detail_level or context["detail_level"]}


def _find_by_name(items, query: str):
    """Exact case-insensitive name match first, then the first substring match."""
    needle = query.lower().strip()
    items = list(items)
    for item in items:
        if item["name"].lower() == needle:
            return item
    for item in items:
        if needle in item["name"].lower():
            return item
    return None


def resolve_target_nodes(args: dict, context: ActionContext) -> list[AreaNode]:
    """Explicit area_id or area_name first, then the selection, then members of selected groups."""
    if args.get("area_id"):
        node = context["nodes"].get(args["area_id"])
        if node is None:
            raise ToolExecutionError(f"Area '{args['area_id']}' does not exist.")
        return [node]
    if args.get("area_name"):
        node = _find_by_name(context["nodes"].values(), args["area_name"])
        if node is None:
            raise ToolExecutionError(f'No area found matching "{args["area_name"]}".')
        return [node]
    return selected_nodes(context)


def resolve_group(args: dict, context: ActionContext, purpose: str) -> Group:
    if args.get("group_id"):
        group = context["groups"].get(args["group_id"])
        if group is None:
            raise ToolExecutionError(f"Group '{args['group_id']}' does not exist.")
        return group
    if args.get("group_name"):
        group = _find_by_name(context["groups"].values(), args["group_name"])
        if group is None:
            raise ToolExecutionError(f'No group found matching "{args["group_name"]}".')
        return group
    if context["selected_group_ids"]:
        return context["groups"][context["selected_group_ids"][0]]
    raise ToolExecutionError(
        f"Could not find group to {purpose}. Please specify group_id, group_name, or select a group."
    )


def _number(value: float) -> str:
    return str(int(value)) if value == int(value) else str(value)


# --- Executors delegating to actions ---


async def _create_program(args, context, proposals, registry) -> dict:
    if _has_pending_create(proposals):
        return _result(True, PENDING_CREATE_MESSAGE, result={"already_pending": True})

    action = _action(registry, "create")
    description = args["description"]
    ctx = _action_context(context, description, args.get("detail_level"))
    selection = selected_nodes(context)
    print(f'[AreaForge] create_program -> create action: "{description}"', file=sys.stderr)

    outcome = await action.execute(description, selection, ctx)
    if outcome.get("needs_clarification"):
        options = [option["label"] for option in outcome["clarification_options"]]
        return _result(
            False,
            outcome["message"],
            error="Scale clarification needed. Ask the user which option they meant.",
            result={"needs_clarification": True, "options": options},
        )

    created = action.to_proposals(outcome, selection, ctx)
    areas = created[0]["areas"] if created else []
    return _result(
        bool(created),
        outcome["message"],
        result={"areas_created": len(areas), "adjustments": outcome["data"].get("adjustments", [])},
        proposals=created,
    )


async def _unfold_area(args, context, proposals, registry) -> dict:
    if not context["nodes"] and _has_pending_create(proposals):
        return _result(
            True,
            "Create proposal is pending. User needs to accept it first, then can unfold the created areas.",
            result={"waiting_for_accept": True},
        )

    action = _action(registry, "unfold")
    targets = resolve_target_nodes(args, context)
    if not targets:
        return _result(
            False,
            error="Could not find area(s) to unfold. Please specify area_id/area_name, "
                  "select areas, or select groups containing areas.",
        )

    focus = args.get("focus") or ""
    ctx = _action_context(context, focus, args.get("detail_level"))
    outcome = await action.execute(focus, targets, ctx)
    created = action.to_proposals(outcome, targets, ctx)
    unfolded = outcome["data"]["unfolded_count"]
    return _result(
        unfolded > 0,
        outcome["message"],
        error=None if unfolded else outcome["message"],
        result={"unfolded_count": unfolded, "total_areas": len(targets)},
        proposals=created,
    )


async def _organize_areas(args, context, proposals, registry) -> dict:
    action = _action(registry, "organize")
    strategy = args.get("strategy") or "functional"
    custom = args.get("custom_grouping")
    prompt = f"organize: {custom}" if custom else f"organize by {strategy}"
    targets = selected_nodes(context) or list(context["nodes"].values())
    print(f"[AreaForge] organize_areas -> organize action: {len(targets)} areas, {strategy}", file=sys.stderr)

    ctx = _action_context(context, prompt)
    outcome = await action.execute(prompt, targets, ctx)
    created = action.to_proposals(outcome, targets, ctx)
    return _result(
        bool(created),
        outcome["message"],
        error=None if created else outcome["message"],
        result={"strategy": strategy},
        proposals=created,
    )


async def _scale_areas(args, context, proposals, registry) -> dict:
    action = _action(registry, "scale")
    operation = args["operation"]
    value = args["value"]
    unit = args.get("unit") or ("percent" if operation in ("increase", "decrease") else "sqm")

    target_ids = args.get("target_area_ids")
    if target_ids:
        unknown = [i for i in target_ids if i not in context["nodes"]]
        if unknown:
            raise ToolExecutionError(f"Unknown area id(s): {', '.join(unknown)}")
        targets = [context["nodes"][i] for i in dict.fromkeys(target_ids)]
    else:
        targets = selected_nodes(context) or list(context["nodes"].values())
    if not targets:
        return _result(False, error="No areas to scale. Create a program first.")

    current = sum(area_total(n) for n in targets)
    if operation in ("set", "redistribute"):
        prompt = f"scale to {_number(value)} sqm"
    elif unit == "percent":
        prompt = f"{operation} by {_number(value)}%"
    else:
        target = current + value if operation == "increase" else current - value
        if target <= 0:
            return _result(False, error=f"Cannot {operation} by {_number(value)} m²: selection totals {current:g} m².")
        prompt = f"scale to {_number(target)} sqm"

    ctx = _action_context(context, prompt)
    outcome = await action.execute(prompt, targets, ctx)
    created = action.to_proposals(outcome, targets, ctx)
    parsed = outcome.get("success", True) and "parse_error" not in outcome["warnings"]
    return _result(
        parsed,
        outcome["message"],
        error=None if parsed else outcome["message"],
        result={"operation": operation, "value": value, "unit": unit},
        proposals=created,
    )


async def _parse_brief(args, context, proposals, registry) -> dict:
    if _has_pending_create(proposals):
        return _result(
            True,
            "A create proposal is already pending. User needs to accept it before parsing more.",
            result={"already_pending": True},
        )

    action = _action(registry, "parse_brief")
    brief_text = args["brief_text"]
    print(f"[AreaForge] parse_brief -> parse_brief action: {len(brief_text)} chars", file=sys.stderr)

    ctx = _action_context(context, brief_text)
    outcome = await action.execute(brief_text, [], ctx)
    created = action.to_proposals(outcome, [], ctx)
    create = next((p for p in created if p["type"] == "create_areas"), None)
    return _result(
        bool(created),
        outcome["message"],
        error=None if created else outcome["message"],
        result={
            "areas_extracted": len(create["areas"]) if create else 0,
            "groups_detected": len(create.get("detected_groups", [])) if create else 0,
        },
        proposals=created,
    )


# --- Deterministic executors ---


async def _split_group(args, context, proposals, registry) -> dict:
    group = resolve_group(args, context, "split")
    members = group_members(context, [group["id"]])
    if not members:
        return _result(False, error=f'Group "{group["name"]}" has no areas to split.')
    parts = args["number_of_groups"]
    if parts < 2:
        return _result(False, error="number_of_groups must be at least 2.")

    payload = {"group_id": group["id"], "group_name": group["name"], "parts": parts}
    if args.get("naming_pattern"):
        payload["name_suffix"] = args["naming_pattern"]
    proposal = make_proposal("split_group_equal", **payload)

    total_units = sum(n.get("count", 1) for n in members)
    area_per_group = round_half_up(sum(area_total(n) for n in members) / parts)
    split_by_count = total_units >= parts
    if split_by_count:
        message = (
            f'Will split "{group["name"]}" ({total_units} units) into {parts} groups '
            f"(~{total_units // parts} units each, ~{area_per_group}m² each)"
        )
    else:
        message = (
            f'Will split "{group["name"]}" into {parts} groups (~{area_per_group}m² each) '
            f"by dividing area sizes"
        )
    return _result(
        True,
        message,
        result={
            "source_group": group["name"],
            "new_group_count": parts,
            "total_units": total_units,
            "split_by_count": split_by_count,
            "area_per_group": area_per_group,
        },
        proposals=[proposal],
    )


async def _split_group_by_proportion(args, context, proposals, registry) -> dict:
    group = resolve_group(args, context, "split")
    members = group_members(context, [group["id"]])
    if not members:
        return _result(False, error=f'Group "{group["name"]}" has no areas to split.')

    proportions = args["proportions"]
    if len(proportions) < 2:
        return _result(False, error="Need at least 2 proportions to split a group.")
    if any(p["percent"] <= 0 for p in proportions):
        return _result(False, error="Every proportion must be a positive percentage.")
    total_percent = sum(p["percent"] for p in proportions)
    if abs(total_percent - 100) > 0.01:
        return _result(False, error=f"Proportions must add up to 100% (got {total_percent:g}%).")

    total = sum(area_total(n) for n in members)
    proposal = make_proposal(
        "split_group_proportion",
        group_id=group["id"],
        group_name=group["name"],
        proportions=[{"name": p["name"], "percent": p["percent"]} for p in proportions],
    )
    shares = ", ".join(
        f'"{p["name"]}" {p["percent"]:g}% (~{format_area(total * p["percent"] / 100)})'
        for p in proportions
    )
    return _result(
        True,
        f'Will split "{group["name"]}" ({format_area(total)}) into {len(proportions)} groups: {shares}',
        result={"source_group": group["name"], "new_group_count": len(proportions)},
        proposals=[proposal],
    )


async def _regroup_by_function(args, context, proposals, registry) -> dict:
    group = resolve_group(args, context, "reorganize")
    members = group_members(context, [group["id"]])
    if not members:
        return _result(False, error=f'Group "{group["name"]}" has no areas to reorganize.')

    categories = categorize_by_function(members, args.get("suggested_categories"))
    if len(categories) <= 1:
        return _result(
            False,
            error=f'Could not identify distinct functional categories in "{group["name"]}". '
                  f"The areas may already be too specific or homogeneous.",
        )

    proposal = groups_proposal(categories)
    described = ", ".join(f'"{name}" ({len(nodes)} areas)' for name, nodes in categories.items())
    return _result(
        True,
        f'Will reorganize "{group["name"]}" into {len(categories)} functional groups: {described}. '
        f"Original group will be replaced.",
        result={
            "source_group": group["name"],
            "new_group_count": len(categories),
            "categories": [{"name": name, "area_count": len(nodes)} for name, nodes in categories.items()],
        },
        proposals=[proposal],
    )


async def _split_area_by_quantity(args, context, proposals, registry) -> dict:
    targets = resolve_target_nodes(args, context)
    if len(targets) != 1:
        return _result(False, error="Select or name exactly one area to split by quantity.")
    node = targets[0]
    intent = {
        "type": "split_by_quantity",
        "source_node_id": node["id"],
        "source_name": node["name"],
        "quantities": args["quantities"],
    }
    if args.get("names"):
        intent["names"] = args["names"]
    outcome = process_intent(intent, context["nodes"], context["groups"])
    return _result(True, outcome["message"], result={"quantities": args["quantities"]},
                   proposals=outcome["proposals"])


async def _merge_areas(args, context, proposals, registry) -> dict:
    area_ids = args.get("area_ids") or context["selected_node_ids"]
    intent = {"type": "merge_areas", "source_node_ids": list(area_ids)}
    if args.get("result_name"):
        intent["result_name"] = args["result_name"]
    outcome = process_intent(intent, context["nodes"], context["groups"])
    merged = outcome["proposals"][0]["result"]
    return _result(True, outcome["message"], result={"merged_area": merged["area_per_unit"]},
                   proposals=outcome["proposals"])


async def _assign_to_group(args, context, proposals, registry) -> dict:
    group = resolve_group(args, context, "assign to")
    area_ids = list(dict.fromkeys(args.get("area_ids") or context["selected_node_ids"]))
    if not area_ids:
        return _result(False, error="No areas to assign. Specify area_ids or select areas.")
    unknown = [i for i in area_ids if i not in context["nodes"]]
    if unknown:
        raise ToolExecutionError(f"Unknown area id(s): {', '.join(unknown)}")
    new_ids = [i for i in area_ids if i not in group.get("members", [])]
    if not new_ids:
        return _result(False, error=f'All selected areas are already in "{group["name"]}".')

    names = [context["nodes"][i]["name"] for i in new_ids]
    proposal = make_proposal(
        "assign_to_group",
        group_id=group["id"],
        group_name=group["name"],
        node_ids=new_ids,
        node_names=names,
    )
    return _result(True, f'Assign {", ".join(names)} to "{group["name"]}"', proposals=[proposal])


async def _add_notes(args, context, proposals, registry) -> dict:
    notes = []
    for note in args["notes"]:
        table = context["nodes"] if note["target_type"] == "area" else context["groups"]
        target = table.get(note["target_id"])
        if target is None:
            raise ToolExecutionError(f"{note['target_type'].capitalize()} '{note['target_id']}' does not exist.")
        entry = {
            "target_type": note["target_type"],
            "target_id": note["target_id"],
            "target_name": target["name"],
            "content": note["content"],
        }
        if note.get("reason"):
            entry["reason"] = note["reason"]
        notes.append(entry)
    if not notes:
        return _result(False, error="No notes given.")
    proposal = make_proposal("add_notes", notes=notes)
    targets = ", ".join(n["target_name"] for n in notes)
    return _result(True, f"Add {len(notes)} note{'s' if len(notes) != 1 else ''} to {targets}",
                   proposals=[proposal])


async def _merge_group_areas(args, context, proposals, registry) -> dict:
    group = resolve_group(args, context, "merge")
    members = group_members(context, [group["id"]])
    if len(members) < 2:
        return _result(False, error=f'Group "{group["name"]}" needs at least 2 areas to merge.')
    new_name = args.get("new_area_name") or group["name"]
    total = sum(area_total(n) for n in members)
    proposal = make_proposal(
        "merge_group_areas",
        group_id=group["id"],
        group_name=group["name"],
        new_area_name=new_name,
    )
    return _result(
        True,
        f'Will merge {len(members)} areas of "{group["name"]}" into "{new_name}" ({format_area(total)})',
        result={"merged_count": len(members), "total_area": total},
        proposals=[proposal],
    )


async def _get_project_summary(args, context, proposals, registry) -> dict:
    nodes = list(context["nodes"].values())
    groups = list(context["groups"].values())
    total = sum(area_total(n) for n in nodes)
    summary = {
        "total_area": format_area(total),
        "area_count": len(nodes),
        "group_count": len(groups),
        "top_level": [
            {"name": n["name"], "area": format_area(area_total(n)), "id": n["id"]}
            for n in nodes[:10]
        ],
        "groups": [
            {"name": g["name"], "id": g["id"], "member_count": len(g.get("members", []))}
            for g in groups
        ],
    }
    return _result(
        True,
        f"Project has {len(nodes)} areas ({format_area(total)} total) in {len(groups)} groups. "
        f"Top-level: {', '.join(n['name'] for n in nodes[:5])}",
        result=summary,
    )


async def _find_area(args, context, proposals, registry) -> dict:
    query = args["query"].lower()
    matches = [
        {"id": n["id"], "name": n["name"], "area": format_area(area_total(n))}
        for n in context["nodes"].values()
        if query in n["name"].lower()
    ][:5]
    if not matches:
        return _result(False, error=f'No areas found matching "{args["query"]}"')
    listed = ", ".join(f"{m['name']} ({m['area']})" for m in matches)
    return _result(True, f"Found {len(matches)} areas: {listed}", result={"matches": matches})


async def _respond_to_user(args, context, proposals, registry) -> dict:
    result = _result(True, args["message"], result={"done": True})
    result["final"] = True
    return result


TOOL_EXECUTORS = {
    "create_program": _create_program,
    "unfold_area": _unfold_area,
    "organize_areas": _organize_areas,
    "split_group": _split_group,
    "split_group_by_proportion": _split_group_by_proportion,
    "regroup_by_function": _regroup_by_function,
    "scale_areas": _scale_areas,
    "split_area_by_quantity": _split_area_by_quantity,
    "merge_areas": _merge_areas,
    "assign_to_group": _assign_to_group,
    "add_notes": _add_notes,
    "merge_group_areas": _merge_group_areas,
    "parse_brief": _parse_brief,
    "get_project_summary": _get_project_summary,
    "find_area": _find_area,
    "respond_to_user": _respond_to_user,
}

# Every advertised tool needs an executor and vice versa.
if set(TOOL_EXECUTORS) != set(SCHEMAS_BY_NAME):
    raise RuntimeError(f"Tool table out of sync: {sorted(set(TOOL_EXECUTORS) ^ set(SCHEMAS_BY_NAME))}")


# --- Dispatch ---


async def execute_tool(
    call: dict, context: ActionContext, proposals: list[dict], registry: Registry
) -> tuple[dict, dict]:
    """Run one tool call. Returns (parsed args, tool result).

    Malformed arguments, unknown tools, schema violations, executor exceptions
    and proposals failing the integrity check all become a failed result.
    OracleError and OracleCancelled propagate.
    """
    name = call.get("name") or ""
    executor = TOOL_EXECUTORS.get(name)
    if executor is None:
        return {}, _result(False, error=f"Unknown tool: {name or '<missing>'}")

    args: dict = {}
    try:
        args = parse_tool_arguments(name, call.get("arguments"))
        args = validate_arguments(name, args)
        result = await executor(args, context, proposals, registry)
        for proposal in result["proposals"]:
            issues = check_proposal(proposal, context["nodes"], context["groups"])
            if issues:
                raise ToolExecutionError(f"Proposal failed integrity check: {'; '.join(issues)}")
    except (OracleError, OracleCancelled):
        raise
    except Exception as exc:
        print(f"[AreaForge] Tool {name} failed: {exc}", file=sys.stderr)
        return args, _result(False, error=str(exc))
    return args, result


def summarize(result: dict) -> str:
    """One-line-ish summary for the tool call log."""
    return result.get("message") or ("Success" if result["success"] else result.get("error") or "Failed")


def tool_message(result: dict) -> str:
    """Tool result as sent back to the model."""
    return json.dumps(
        {
            "success": result["success"],
            "message": result.get("message"),
            "error": result.get("error"),
            "result": result.get("result"),
        },
        ensure_ascii=False,
        default=str,
    )


async def tools_node(state: AgentState, config: RunnableConfig) -> dict:
    """Run the latest tool calls strictly in order, accumulating proposals and history.

    Later calls see proposals from earlier calls in the same batch. Once the
    batch has finished, a set cancel event turns the run into a cancelled one
    with the partial proposals kept.
    """
    deps = config["configurable"]
    context = deps["context"]
    registry = deps["registry"]

    proposals = list(state["proposals"])
    messages = list(state["messages"])
    log = list(state["tool_call_log"])
    status = state["status"]
    final_message = state["final_message"]

    for call in state["pending_tool_calls"]:
        name = call.get("name") or ""
        args, result = await execute_tool(call, context, proposals, registry)
        proposals.extend(result["proposals"])
        summary = summarize(result)
        print(f"[AreaForge] Tool {name}: {summary.splitlines()[0] if summary else ''}", file=sys.stderr)
        log.append({"tool": name, "args": args, "result": summary})
        messages.append({"role": "tool", "tool_call_id": call.get("id", ""), "content": tool_message(result)})
        if result.get("final"):
            status = "done"
            final_message = result["message"]

    cancel_event = deps.get("cancel_event")
    if status != "done" and cancel_event is not None and cancel_event.is_set():
        print("[AreaForge] Cancelled after tool batch; keeping partial proposals", file=sys.stderr)
        status = "cancelled"

    return {
        "messages": messages,
        "proposals": proposals,
        "tool_call_log": log,
        "pending_tool_calls": [],
        "status": status,
        "final_message": final_message,
    }
