"""LangGraph StateGraph for the agent loop, plus the direct single-action path."""

import asyncio
import sys

from langgraph.graph import END, StateGraph

from areaforge.actions.registry import Registry, default_registry
from areaforge.agents.oracle import make_agent_oracle
from areaforge.agents.orchestrator import initial_messages, oracle_node
from areaforge.agents.tool_schemas import TOOL_SCHEMAS
from areaforge.agents.tools import tools_node
from areaforge.config import get_config
from areaforge.context import build_context, selected_nodes
from areaforge.errors import ValidationError
from areaforge.state import AgentResponse, AgentState
from areaforge.utils.validator import validate_input

FALLBACK_MESSAGE = "Agent completed without explicit response."


def _route_after_oracle(state: AgentState) -> str:
    """Conditional edge after the oracle: stop on a final reply or cancellation, else run tools."""
    if state["status"] in ("done", "cancelled"):
        return "end"
    return "tools"


def _route_after_tools(state: AgentState) -> str:
    """Conditional edge after the tools node.

    Priority order:
    1. respond_to_user ran or the run was cancelled → end
    2. iteration >= max_iterations → timeout
    3. otherwise → back to the oracle with the tool results
    """
    if state["status"] in ("done", "cancelled"):
        return "end"
    if state["iteration"] >= get_config()["max_iterations"]:
        return "timeout"
    return "oracle"


def _set_timeout(state: AgentState) -> dict:
    """Set status to max_iterations_reached when the loop ceiling is hit."""
    print(f"[AreaForge] Max iterations ({state['iteration']}) reached", file=sys.stderr)
    return {"status": "max_iterations_reached"}


# --- Build the graph ---

workflow = StateGraph(AgentState)

workflow.add_node("oracle", oracle_node)
workflow.add_node("tools", tools_node)
workflow.add_node("timeout", _set_timeout)

workflow.set_entry_point("oracle")

workflow.add_conditional_edges(
    "oracle",
    _route_after_oracle,
    {
        "end": END,
        "tools": "tools",
    },
)
workflow.add_conditional_edges(
    "tools",
    _route_after_tools,
    {
        "end": END,
        "timeout": "timeout",
        "oracle": "oracle",
    },
)

workflow.add_edge("timeout", END)

graph = workflow.compile()


def _count(proposals: list[dict]) -> str:
    return f"{len(proposals)} proposal{'s' if len(proposals) != 1 else ''}"


def build_response(state: AgentState) -> AgentResponse:
    """Turn the final loop state into the caller-facing response."""
    status = state["status"]
    proposals = state["proposals"]
    if status == "max_iterations_reached":
        message = (
            f"Did not complete the request within {state['iteration']} iterations. "
            f"{_count(proposals)} generated so far are kept for review."
        )
    elif status == "cancelled":
        message = f"Cancelled. {_count(proposals)} generated before cancelling are kept for review."
    else:
        message = state["final_message"] or FALLBACK_MESSAGE
    return {
        "message": message,
        "proposals": proposals,
        "tool_call_log": state["tool_call_log"],
        "iteration_count": state["iteration"],
        "status": status,
    }


async def run_agent(
    message: str,
    snapshot: dict,
    selected_node_ids: list[str] | None = None,
    selected_group_ids: list[str] | None = None,
    *,
    oracle=None,
    registry: Registry | None = None,
    cancel_event: asyncio.Event | None = None,
    detail_level: str | None = None,
) -> AgentResponse:
    """Run one user turn through the agent loop.

    Every turn starts a fresh AgentState. Raises ValueError on an empty message
    or an unknown selected id, and OracleError when the model cannot be reached.
    """
    config = get_config()
    validated = validate_input(message)
    context = build_context(
        validated, snapshot, selected_node_ids, selected_group_ids,
        detail_level or config["detail_level"],
    )
    oracle = oracle or make_agent_oracle(TOOL_SCHEMAS)
    registry = registry or default_registry()

    state: AgentState = {
        "messages": initial_messages(validated, context),
        "proposals": [],
        "tool_call_log": [],
        "pending_tool_calls": [],
        "iteration": 0,
        "status": "running",
        "final_message": "",
    }
    print(f'[AreaForge] Starting agent: "{validated[:100]}"', file=sys.stderr)

    final_state = await graph.ainvoke(
        state,
        config={
            "configurable": {
                "oracle": oracle,
                "registry": registry,
                "context": context,
                "cancel_event": cancel_event,
            },
            "recursion_limit": config["max_iterations"] * 3 + 5,
        },
    )
    return build_response(final_state)


async def run_action(
    message: str,
    snapshot: dict,
    selected_node_ids: list[str] | None = None,
    selected_group_ids: list[str] | None = None,
    *,
    registry: Registry | None = None,
    choose=None,
    detail_level: str | None = None,
) -> AgentResponse:
    """Handle a single-step request with one registry action, no agent loop.

    ``choose(question, options)`` is called when the action asks for a scale
    clarification; it returns the picked option value, or None to leave the
    question unanswered.
    """
    validated = validate_input(message)
    context = build_context(
        validated, snapshot, selected_node_ids, selected_group_ids,
        detail_level or get_config()["detail_level"],
    )
    registry = registry or default_registry()
    selection = selected_nodes(context)

    classified = registry.classify(validated, selection, context)
    if classified is None:
        blocked = registry.matched_but_blocked(validated, selection)
        error = registry.selection_error(blocked, len(selection)) if blocked else None
        return _direct_response(error or registry.help_text(), [], [])

    action, confidence = classified
    print(f"[AreaForge] Direct action: {action.id} (confidence {confidence:.2f})", file=sys.stderr)

    check = action.validate(validated, selection, context)
    if not check["valid"]:
        return _direct_response(check["error"], [], [])

    try:
        outcome = await action.execute(validated, selection, context)
        if outcome.get("needs_clarification") and choose is not None:
            option = choose(outcome["message"], outcome["clarification_options"])
            if option is not None:
                outcome = await action.execute_with_choice(validated, option, context)
    except ValidationError as exc:
        print(f"[AreaForge] {action.id} rejected: {exc}", file=sys.stderr)
        outcome = {"success": False, "message": "; ".join(exc.errors), "data": {"proposals": []}}

    proposals = action.to_proposals(outcome, selection, context)
    log = [{"tool": action.id, "args": {"prompt": validated}, "result": outcome["message"]}]
    return _direct_response(outcome["message"], proposals, log)


def _direct_response(message: str, proposals: list[dict], log: list[dict]) -> AgentResponse:
    return {
        "message": message,
        "proposals": proposals,
        "tool_call_log": log,
        "iteration_count": 0,
        "status": "done",
    }
