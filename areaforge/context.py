"""Builds the read-only ActionContext for a turn and resolves what the user has selected."""

import copy

from areaforge.state import ActionContext, AreaNode, DetailLevel
from areaforge.utils.validator import validate_selection


def build_context(
    prompt: str,
    snapshot: dict,
    selected_node_ids: list[str] | None = None,
    selected_group_ids: list[str] | None = None,
    detail_level: DetailLevel = "typical",
) -> ActionContext:
    """Deep-copy the snapshot so nothing in the context aliases the caller's store.

    Raises ValueError if a selected id is not in the snapshot.
    """
    nodes = copy.deepcopy(snapshot.get("nodes") or {})
    groups = copy.deepcopy(snapshot.get("groups") or {})
    node_ids, group_ids = validate_selection(selected_node_ids, selected_group_ids, nodes, groups)
    return {
        "nodes": nodes,
        "groups": groups,
        "detail_level": detail_level,
        "prompt": prompt,
        "project_notes": snapshot.get("project_notes", ""),
        "selected_node_ids": node_ids,
        "selected_group_ids": group_ids,
    }


def group_members(context: ActionContext, group_ids: list[str]) -> list[AreaNode]:
    """Nodes belonging to the given groups, in member order, without duplicates."""
    seen: set[str] = set()
    members = []
    for group_id in group_ids:
        group = context["groups"].get(group_id)
        if group is None:
            continue
        for member_id in group.get("members", []):
            node = context["nodes"].get(member_id)
            if node is not None and member_id not in seen:
                seen.add(member_id)
                members.append(node)
    return members


def selected_nodes(context: ActionContext) -> list[AreaNode]:
    """Directly selected nodes, else every node in the selected groups."""
    direct = [context["nodes"][i] for i in context["selected_node_ids"] if i in context["nodes"]]
    if direct:
        return direct
    return group_members(context, context["selected_group_ids"])
