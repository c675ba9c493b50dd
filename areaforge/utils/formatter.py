"""Output Formatter: renders an AgentResponse as a Markdown turn report."""

from pathlib import Path

from areaforge.config import get_config
from areaforge.state import AgentResponse
from areaforge.typology import format_area

_STATUS_LABELS = {
    "done": "Completed",
    "max_iterations_reached": "Stopped at the iteration limit",
    "cancelled": "Cancelled",
    "running": "Incomplete",
}


def _area_rows(specs: list[dict]) -> list[str]:
    lines = ["| Name | m² per unit | Count | Total |", "|------|-------------|-------|-------|"]
    for spec in specs:
        count = spec.get("count", 1)
        per_unit = spec.get("area_per_unit", 0)
        lines.append(f"| {spec.get('name', '?')} | {per_unit:g} | {count} | {per_unit * count:g} |")
    return lines


def _render_proposal(proposal: dict) -> list[str]:
    kind = proposal.get("type", "unknown")
    lines = [f"### {kind}", ""]

    if kind == "create_areas":
        lines.extend(_area_rows(proposal.get("areas", [])))
        groups = proposal.get("detected_groups") or []
        if groups:
            lines.append("")
            lines.append(f"Detected groups: {', '.join(g['name'] for g in groups)}")
    elif kind == "split_area":
        lines.append(f"Split **{proposal.get('source_name', '?')}** into group \"{proposal.get('group_name', '')}\":")
        lines.append("")
        lines.extend(_area_rows(proposal.get("splits", [])))
    elif kind == "split_by_quantity":
        parts = " + ".join(f"{name} ×{q}" for name, q in zip(proposal.get("names", []), proposal.get("quantities", [])))
        lines.append(f"Split **{proposal.get('source_name', '?')}** by quantity: {parts}")
    elif kind == "merge_areas":
        result = proposal.get("result", {})
        lines.append(
            f"Merge {', '.join(proposal.get('source_names', []))} into **{result.get('name', '?')}** "
            f"({format_area(result.get('area_per_unit', 0))})"
        )
    elif kind == "update_areas":
        for update in proposal.get("updates", []):
            changes = ", ".join(f"{k} → {v:g}" if isinstance(v, (int, float)) else f"{k} → {v}"
                                for k, v in update.get("changes", {}).items())
            lines.append(f"- {update.get('node_name', update.get('node_id', '?'))}: {changes}")
    elif kind == "create_groups":
        for group in proposal.get("groups", []):
            lines.append(f"- **{group.get('name', '?')}** ({group.get('color', '')}): "
                         f"{', '.join(group.get('member_names', []))}")
    elif kind == "assign_to_group":
        lines.append(f"Assign {', '.join(proposal.get('node_names', []))} to **{proposal.get('group_name', '?')}**")
    elif kind == "add_notes":
        for note in proposal.get("notes", []):
            lines.append(f"- {note.get('target_type', '?')} **{note.get('target_name', '?')}**: {note.get('content', '')}")
    elif kind == "split_group_equal":
        lines.append(f"Split group **{proposal.get('group_name', '?')}** into {proposal.get('parts', '?')} equal parts")
    elif kind == "split_group_proportion":
        shares = ", ".join(f"{p['name']} {p['percent']:g}%" for p in proposal.get("proportions", []))
        lines.append(f"Split group **{proposal.get('group_name', '?')}**: {shares}")
    elif kind == "merge_group_areas":
        lines.append(f"Merge all areas of **{proposal.get('group_name', '?')}** into "
                     f"\"{proposal.get('new_area_name', '?')}\"")

    lines.append("")
    return lines


def _render_markdown(response: AgentResponse, request: str = "") -> str:
    """Convert an AgentResponse into a Markdown turn report."""
    lines = ["# AreaForge Turn Report", ""]

    if request:
        lines.append("## Request")
        lines.append("")
        lines.append(request)
        lines.append("")

    lines.append("## Response")
    lines.append("")
    lines.append(response["message"])
    lines.append("")
    lines.append(f"- **Status:** {_STATUS_LABELS.get(response['status'], response['status'])}")
    lines.append(f"- **Iterations:** {response['iteration_count']}")
    lines.append("")

    proposals = response["proposals"]
    if proposals:
        lines.append(f"## Proposals ({len(proposals)} pending)")
        lines.append("")
        for proposal in proposals:
            lines.extend(_render_proposal(proposal))

    log = response["tool_call_log"]
    if log:
        lines.append("## Tool Call Log")
        lines.append("")
        for i, entry in enumerate(log, 1):
            summary = entry["result"].splitlines()[0] if entry["result"] else ""
            lines.append(f"{i}. `{entry['tool']}`: {summary}")
        lines.append("")

    return "\n".join(lines)


def write_report(response: AgentResponse, request: str = "") -> Path:
    """Write the turn report as Markdown next to the configured output path.

    Never overwrites: an existing file gets a numbered sibling instead.
    Returns the Path to the written file.
    """
    config = get_config()
    base_path = Path(__file__).resolve().parent.parent.parent / config["output_path"]
    output_dir = base_path.parent
    output_dir.mkdir(parents=True, exist_ok=True)

    stem = base_path.stem
    output_path = output_dir / f"{stem}.md"
    counter = 1
    while output_path.exists():
        counter += 1
        output_path = output_dir / f"{stem} ({counter}).md"

    output_path.write_text(_render_markdown(response, request), encoding="utf-8")
    return output_path
