"""Orchestrator: the oracle step of the agent loop.

Sends the running history to the tool-calling model and records its reply.
A reply without tool calls ends the run with the reply text; otherwise the
tool calls are queued for the tools node.
"""

import re
import sys

from langchain_core.runnables import RunnableConfig

from areaforge.agents.oracle import call_oracle
from areaforge.context import group_members
from areaforge.errors import OracleCancelled
from areaforge.state import ActionContext, AgentState, area_total
from areaforge.typology import format_area
from areaforge.utils.guidance import load_guidance

AGENT_SYSTEM_PROMPT = """\
You are an architectural programming assistant that helps users create and manage building area programs.

CAPABILITIES:
- Create new building programs (hotels, offices, residences, etc.)
- Unfold/expand areas into more detailed sub-areas
- Organize areas into groups, split groups, regroup by function
- Scale/adjust area sizes, split areas by quantity, merge areas
- Parse briefs and documents into structured programs

WORKFLOW:
1. Use get_project_summary or find_area to understand current state
2. Execute requested actions using the appropriate tools
3. Use respond_to_user to give a final summary

VALIDATE ARCHITECTURAL RELEVANCE:
Before creating any program, check that the request is for a real building typology or space
(hotel, office, residence, retail, restaurant, spa, parking, warehouse, school, hospital, museum,
library, factory, gym, pool, marina, ...). Abstract concepts, random objects, jokes and nonsense
words are not. For those, DO NOT call create_program. Use respond_to_user to explain politely
that you only help with architectural programs and building spaces, and suggest something like
'create a hotel', 'add parking' or 'design a retail space'.

CREATE vs SCALE:
- create_program ADDS new areas. Use for "create X", "add Y program", "make a Z", "design a W".
- scale_areas MODIFIES existing areas. Use for "resize", "make bigger", "scale to X sqm",
  "increase by Y%", "decrease by Z%".
- NEVER use scale_areas when the user says "create", "add" or "design".

PROPOSALS:
- create_program, unfold_area, parse_brief and the other editing tools produce PROPOSALS for
  user approval. They are NOT applied to the project.
- After creating a proposal, do not try to operate on the proposed areas: they don't exist yet.
- If asked "create a hotel and unfold", call create_program ONCE. The user will unfold after
  accepting.

CONTEXT:
- Messages may start with [SELECTED GROUP: ...] or [SELECTED AREAS: ...] to show the selection.
- With a group selected, "split this group" or "divide into 8 groups" means split_group on it.
- With areas selected, unfold_area targets them. With groups selected, it targets their areas.
- Without a selection, tools operate on all areas or you should ask for clarification.

RULES:
- When the user pastes a BRIEF or TABLE with area data (sqm, m², quantities), call parse_brief
  with the COMPLETE TEXT. Never summarize or truncate it.
- To unfold a named area, use find_area first to get its id unless it is selected.
- Equal division of a group: split_group. Named percentage shares: split_group_by_proportion.
  "Split into functional groups" or "reorganize by function": regroup_by_function.
- DO NOT call create_program multiple times for the same request.
- Always end with respond_to_user to summarize what was done.
- If you are unsure what the user wants, ask via respond_to_user.

BRIEFS vs PROMPTS:
- BRIEF: tabular data, several areas with sqm/m² values, counts like "80 x 30 m²".
- PROMPT: short request like "create a hotel" or "make 10000 sqm office".
- When in doubt and the text is over 500 characters with area numbers, treat it as a BRIEF.

SCALE AWARENESS:
- Large areas (100K+ m²) unfold into districts/zones
- Medium areas (10K-100K m²) unfold into building plots
- Buildings (1K-10K m²) unfold into floors/departments
- Smaller areas unfold into rooms
"""

_MULTI_STEP_RES = [
    re.compile(r"\b(and|then|also|after that)\b.*\b(unfold|expand|create|organize|scale)", re.IGNORECASE),
    re.compile(r"\b(create|generate)\b.*\b(and|then)\b.*\b(unfold|expand|detail)", re.IGNORECASE),
    re.compile(r"\b(unfold|expand)\b.*\b(and|then)\b", re.IGNORECASE),
    re.compile(r"\b(all|every|each)\b.*\b(area|zone|room)", re.IGNORECASE),
]


def system_prompt() -> str:
    content = AGENT_SYSTEM_PROMPT
    guidance = load_guidance()
    if guidance:
        content += (
            "\n\n## Area Programming Guidelines\n"
            "Apply these guidelines WHERE APPLICABLE to the request. Not every rule fits every "
            "typology, so use your judgment.\n\n"
            f"{guidance}"
        )
    return content


def build_user_message(message: str, context: ActionContext) -> str:
    """Prefix the user's message with what they have selected."""
    parts = []

    groups = [context["groups"][i] for i in context["selected_group_ids"] if i in context["groups"]]
    if groups:
        described = []
        for group in groups:
            members = group_members(context, [group["id"]])
            total = sum(area_total(n) for n in members)
            described.append(f'"{group["name"]}" ({len(members)} areas, {format_area(total)})')
        parts.append(f"[SELECTED GROUP: {', '.join(described)}]")

    nodes = [context["nodes"][i] for i in context["selected_node_ids"] if i in context["nodes"]]
    if nodes:
        described = [f'"{n["name"]}" ({format_area(area_total(n))})' for n in nodes[:5]]
        suffix = f" and {len(nodes) - 5} more" if len(nodes) > 5 else ""
        parts.append(f"[SELECTED AREAS: {', '.join(described)}{suffix}]")

    parts.append(message)
    return "\n\n".join(parts)


def initial_messages(message: str, context: ActionContext) -> list[dict]:
    return [
        {"role": "system", "content": system_prompt()},
        {"role": "user", "content": build_user_message(message, context)},
    ]


def should_use_agent(message: str) -> bool:
    """True for multi-step requests that a single direct action cannot cover."""
    return any(pattern.search(message) for pattern in _MULTI_STEP_RES)


async def oracle_node(state: AgentState, config: RunnableConfig) -> dict:
    """Oracle node for the LangGraph StateGraph.

    Counts the round-trip, calls the tool-calling model with the full history
    and appends its reply. No tool calls means the model is done talking.
    """
    deps = config["configurable"]
    iteration = state["iteration"] + 1
    print(f"[AreaForge] Iteration {iteration}", file=sys.stderr)

    try:
        reply = await call_oracle(deps["oracle"], state["messages"], deps.get("cancel_event"))
    except OracleCancelled:
        print("[AreaForge] Cancelled while waiting for the model", file=sys.stderr)
        return {"iteration": iteration, "status": "cancelled", "pending_tool_calls": []}

    assistant = {"role": "assistant", "content": reply["content"], "tool_calls": reply["tool_calls"]}
    update = {
        "iteration": iteration,
        "messages": state["messages"] + [assistant],
        "pending_tool_calls": reply["tool_calls"],
    }
    if not reply["tool_calls"]:
        update["status"] = "done"
        update["final_message"] = reply["content"] or "Done."
    return update
