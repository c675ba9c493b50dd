"""Shared data shapes: the project snapshot, action context and per-run agent state."""

from typing import Literal, TypedDict

DetailLevel = Literal["abstract", "typical", "detailed"]
AgentStatus = Literal["running", "done", "max_iterations_reached", "cancelled"]


class AreaNode(TypedDict, total=False):
    id: str
    name: str
    area_per_unit: float  # m² per instance, always > 0
    count: int  # Number of instances, >= 1
    locked_fields: list[str]
    notes: list[str]  # Provenance notes (brief excerpts, AI reasoning)


class Group(TypedDict, total=False):
    id: str
    name: str
    color: str
    members: list[str]  # AreaNode ids


class ActionContext(TypedDict):
    """Read-only snapshot handed to actions and tool executors.

    Built by deep-copying the caller's snapshot, so nothing here aliases
    the project store.
    """

    nodes: dict[str, AreaNode]
    groups: dict[str, Group]
    detail_level: DetailLevel
    prompt: str
    project_notes: str
    selected_node_ids: list[str]
    selected_group_ids: list[str]


class ToolCallLogEntry(TypedDict):
    tool: str
    args: dict
    result: str  # One-line summary of the tool result


class AgentState(TypedDict):
    messages: list[dict]  # Full history sent to the oracle, oldest first.
    proposals: list[dict]  # Proposals accumulated across all tool calls this turn.
    tool_call_log: list[ToolCallLogEntry]
    pending_tool_calls: list[dict]  # Tool calls from the latest oracle response.
    iteration: int  # Oracle round-trips so far. Starts at 0.
    status: AgentStatus
    final_message: str


class AgentResponse(TypedDict):
    message: str
    proposals: list[dict]
    tool_call_log: list[ToolCallLogEntry]
    iteration_count: int
    status: AgentStatus


def area_total(node: AreaNode) -> float:
    """Total area of a node across all of its instances."""
    return node["area_per_unit"] * node.get("count", 1)
