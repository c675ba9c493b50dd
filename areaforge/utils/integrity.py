"""Integrity check: deterministic referential validation of a proposal against the snapshot.

Returns a list of issues. If empty, every id the proposal mentions exists in
the snapshot and its counts are consistent, so the project store can apply it
without guesswork.
"""


def _check_node(node_id, nodes: dict, label: str, issues: list[str]) -> None:
    if not node_id:
        issues.append(f"Missing {label}.")
    elif node_id not in nodes:
        issues.append(f"{label} '{node_id}' does not exist.")


def _check_group(group_id, groups: dict, issues: list[str]) -> None:
    if not group_id:
        issues.append("Missing group_id.")
    elif group_id not in groups:
        issues.append(f"Group '{group_id}' does not exist.")


def _check_area_specs(specs, label: str, issues: list[str]) -> None:
    if not specs:
        issues.append(f"Missing or empty {label}.")
        return
    for spec in specs:
        name = spec.get("name") or "?"
        if not spec.get("name"):
            issues.append(f"An entry in {label} has no name.")
        if not spec.get("area_per_unit") or spec["area_per_unit"] < 1:
            issues.append(f"'{name}' has area_per_unit below 1.")
        if not spec.get("count") or spec["count"] < 1:
            issues.append(f"'{name}' has count below 1.")


def check_proposal(proposal: dict, nodes: dict, groups: dict) -> list[str]:
    """Check one proposal (stamped or not) against the snapshot.

    Returns a list of issue strings. Empty list = safe to apply.
    """
    issues: list[str] = []
    kind = proposal.get("type")

    if kind == "create_areas":
        _check_area_specs(proposal.get("areas"), "areas", issues)

    elif kind == "split_area":
        _check_node(proposal.get("source_node_id"), nodes, "source_node_id", issues)
        _check_area_specs(proposal.get("splits"), "splits", issues)

    elif kind == "split_by_quantity":
        source_id = proposal.get("source_node_id")
        _check_node(source_id, nodes, "source_node_id", issues)
        quantities = proposal.get("quantities") or []
        if source_id in nodes and sum(quantities) != nodes[source_id].get("count", 1):
            issues.append(
                f"Quantities {quantities} do not add up to the count of "
                f"'{nodes[source_id]['name']}'."
            )

    elif kind == "merge_areas":
        source_ids = proposal.get("source_node_ids") or []
        if len(set(source_ids)) < 2:
            issues.append("Merge needs at least two source areas.")
        for node_id in source_ids:
            _check_node(node_id, nodes, "source_node_id", issues)

    elif kind == "update_areas":
        if not proposal.get("updates"):
            issues.append("Missing or empty updates.")
        for update in proposal.get("updates") or []:
            _check_node(update.get("node_id"), nodes, "node_id", issues)
            new_area = update.get("changes", {}).get("area_per_unit")
            if new_area is not None and new_area < 1:
                issues.append(f"Update for '{update.get('node_name', '?')}' drops below 1 m².")

    elif kind == "create_groups":
        if not proposal.get("groups"):
            issues.append("Missing or empty groups.")
        for group in proposal.get("groups") or []:
            if not group.get("name"):
                issues.append("A new group has no name.")
            for node_id in group.get("member_node_ids", []):
                _check_node(node_id, nodes, "member node", issues)

    elif kind == "assign_to_group":
        _check_group(proposal.get("group_id"), groups, issues)
        if not proposal.get("node_ids"):
            issues.append("No areas to assign.")
        for node_id in proposal.get("node_ids") or []:
            _check_node(node_id, nodes, "node_id", issues)

    elif kind == "add_notes":
        for note in proposal.get("notes") or []:
            if note.get("target_type") == "group":
                _check_group(note.get("target_id"), groups, issues)
            else:
                _check_node(note.get("target_id"), nodes, "note target", issues)
            if not note.get("content"):
                issues.append(f"Empty note for '{note.get('target_name', '?')}'.")

    elif kind in ("split_group_equal", "split_group_proportion", "merge_group_areas"):
        _check_group(proposal.get("group_id"), groups, issues)
        if kind == "split_group_equal" and (proposal.get("parts") or 0) < 2:
            issues.append("Group split needs at least 2 parts.")
        if kind == "split_group_proportion":
            percents = [p.get("percent", 0) for p in proposal.get("proportions") or []]
            if len(percents) < 2:
                issues.append("Group split needs at least 2 proportions.")
            elif abs(sum(percents) - 100) > 0.5:
                issues.append(f"Proportions sum to {sum(percents):g}%, not 100%.")

    else:
        issues.append(f"Unknown proposal type: {kind}.")

    return issues
