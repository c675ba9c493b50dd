"""Entry point: loads the snapshot, runs one turn, writes the report."""

import asyncio
import json
import sys
from pathlib import Path

from areaforge.agents.orchestrator import should_use_agent
from areaforge.config import get_config
from areaforge.graph import run_action, run_agent
from areaforge.utils.formatter import write_report

USAGE = (
    "Usage: areaforge [--snapshot FILE] [--select ID ...] [--select-group ID ...] "
    "[--no-hitl] [--direct | --agent] MESSAGE"
)


def _collect_clarification(question: str, options: list[dict]) -> dict | None:
    """Prompt the user in the terminal to pick one clarification option.

    Returns the chosen option value, or None if the user skips.
    """
    print("\n--- The request needs your input ---\n")
    print(question)
    for i, option in enumerate(options, 1):
        print(f"  {i}. {option['label']}")
    print(f"  {len(options) + 1}. Skip")

    while True:
        choice = input("Your choice (number): ").strip()
        try:
            choice_num = int(choice)
        except ValueError:
            print("Please enter a number.")
            continue

        if 1 <= choice_num <= len(options):
            print()
            return options[choice_num - 1]["value"]
        if choice_num == len(options) + 1:
            print()
            return None
        print(f"Please enter a number between 1 and {len(options) + 1}.")


def _keyed(items, label: str) -> dict:
    if isinstance(items, dict):
        return items
    keyed = {}
    for item in items or []:
        if not item.get("id"):
            raise ValueError(f"Every {label} in the snapshot needs an id.")
        keyed[item["id"]] = item
    return keyed


def load_snapshot(path: str | None) -> dict:
    """Read a project snapshot from JSON. Nodes and groups may be lists or id-keyed objects."""
    if path is None:
        return {"nodes": {}, "groups": {}, "project_notes": ""}
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    return {
        "nodes": _keyed(data.get("nodes"), "area"),
        "groups": _keyed(data.get("groups"), "group"),
        "project_notes": data.get("project_notes", ""),
    }


def run(
    message: str,
    snapshot: dict,
    selected_node_ids: list[str] | None = None,
    selected_group_ids: list[str] | None = None,
    hitl: bool | None = None,
    direct: bool | None = None,
) -> None:
    """Run one turn on a message and write the report.

    Args:
        message: The user's request.
        snapshot: Project nodes and groups.
        hitl: Override for HITL. None uses config default.
        direct: True for a single registry action, False for the agent loop,
            None to pick the agent only for multi-step requests.
    """
    config = get_config()
    hitl_enabled = hitl if hitl is not None else config.get("hitl_enabled", True)
    use_direct = direct if direct is not None else not should_use_agent(message)

    if use_direct:
        response = asyncio.run(run_action(
            message, snapshot, selected_node_ids, selected_group_ids,
            choose=_collect_clarification if hitl_enabled else None,
        ))
    else:
        response = asyncio.run(run_agent(message, snapshot, selected_node_ids, selected_group_ids))

    print(response["message"])
    output_path = write_report(response, request=message)
    print(f"[AreaForge] Status: {response['status']}")
    print(f"[AreaForge] Iterations: {response['iteration_count']}")
    print(f"[AreaForge] Proposals: {len(response['proposals'])}")
    print(f"[AreaForge] Output written to: {output_path}")


def main() -> None:
    """CLI entry point: accepts the message as arguments or from stdin."""
    args = sys.argv[1:]
    hitl = None
    direct = None
    snapshot_path = None
    selected_nodes: list[str] = []
    selected_groups: list[str] = []
    words: list[str] = []

    while args:
        arg = args.pop(0)
        if arg == "--no-hitl":
            hitl = False
        elif arg == "--direct":
            direct = True
        elif arg == "--agent":
            direct = False
        elif arg in ("--snapshot", "--select", "--select-group"):
            if not args:
                print(f"{arg} needs a value.\n{USAGE}", file=sys.stderr)
                sys.exit(2)
            value = args.pop(0)
            if arg == "--snapshot":
                snapshot_path = value
            elif arg == "--select":
                selected_nodes.append(value)
            else:
                selected_groups.append(value)
        else:
            words.append(arg)

    if words:
        message = " ".join(words)
    else:
        print("Enter your request (Ctrl+D / Ctrl+Z to submit):")
        message = sys.stdin.read()

    snapshot = load_snapshot(snapshot_path)
    run(message, snapshot, selected_nodes, selected_groups, hitl=hitl, direct=direct)


if __name__ == "__main__":
    main()
