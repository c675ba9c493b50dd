"""Organize action: group a set of areas into new groups.

The functional strategy is deterministic: keywords in each area's name and
notes pick its category. Spatial, circulation and custom groupings are
delegated to the extraction model, whose answer is mapped back onto the
selected nodes by id or name.
"""

import re
import sys

from areaforge.actions.registry import Action
from areaforge.proposals import make_proposal, pick_color
from areaforge.state import ActionContext, AreaNode

FUNCTION_KEYWORDS = {
    "Toilets & Sanitary": ["toilet", "wc", "restroom", "bathroom", "sanitary", "lavatory", "washroom"],
    "Storage": ["storage", "store", "warehouse", "stockroom", "inventory", "archive"],
    "Circulation": ["corridor", "circulation", "hallway", "lobby", "foyer", "entrance", "passage",
                    "stairs", "lift", "elevator"],
    "Mechanical & Services": ["mechanical", "electrical", "plant", "hvac", "utility", "service",
                              "maintenance", "janitor", "boe", "mep"],
    "Administration": ["office", "admin", "management", "reception", "secretary", "hr", "accounting"],
    "Staff Facilities": ["staff", "employee", "locker", "changing", "break room", "canteen", "cafeteria"],
    "Meeting & Conference": ["meeting", "conference", "boardroom", "seminar", "training"],
    "Parking": ["parking", "garage", "car park", "vehicle"],
}

STRATEGY_HINTS = {
    "spatial": "Group by spatial zone: public vs private, floor level, or building wing.",
    "circulation": "Group by access and circulation: guest-facing, staff-only, and service routes.",
    "custom": "Group according to the user's description.",
}

ORGANIZE_SYSTEM_PROMPT = """\
You are an architectural programming assistant. You organize a list of areas
into a small number of meaningful groups.

## Output format (JSON only, no markdown fences)

{
  "message": "One-line summary of the grouping",
  "groups": [
    {"name": "Public Zones", "members": ["<area id>", "<area id>"]},
    {"name": "Back of House", "members": ["<area id>"]}
  ]
}

## Rules
- Use the exact area ids given in the list. Every area belongs to at most one group.
- 2 to 8 groups; no empty groups.
- Respond with ONLY the JSON object.
"""

_STRATEGY_RES = [
    ("circulation", re.compile(r"\b(circulation|access|flow)\b", re.IGNORECASE)),
    ("spatial", re.compile(r"\b(spatial|zone|zones|floor|level|wing|public|private)\b", re.IGNORECASE)),
    ("functional", re.compile(r"\b(function|functional|type|category|use)\b", re.IGNORECASE)),
]


def _node_text(node: AreaNode) -> str:
    return " ".join([node["name"], *node.get("notes", [])]).lower()


def _first_word_category(node: AreaNode) -> str:
    words = node["name"].split()
    first = words[0] if words else "Other"
    return first[:1].upper() + first[1:]


def categorize_by_function(nodes: list[AreaNode], suggested: list[str] | None = None) -> dict[str, list[AreaNode]]:
    """Bucket nodes by function using their name and notes.

    With suggested category names, nodes match a category that appears in their
    text (or whose name contains the node's first word) and the rest go to
    "Other". Without, the keyword table decides and unmatched nodes are keyed
    by the capitalized first word of their name. Empty buckets are dropped.
    """
    categories: dict[str, list[AreaNode]] = {}
    if suggested:
        for category in suggested:
            categories[category] = []
        categories["Other"] = []

    for node in nodes:
        text = _node_text(node)
        if suggested:
            first_word = node["name"].lower().split(" ")[0]
            category = next(
                (c for c in suggested if c.lower() in text or first_word in c.lower()),
                "Other",
            )
        else:
            category = next(
                (c for c, keywords in FUNCTION_KEYWORDS.items() if any(k in text for k in keywords)),
                None,
            ) or _first_word_category(node)
        categories.setdefault(category, []).append(node)

    return {name: members for name, members in categories.items() if members}


def groups_proposal(categories: dict[str, list[AreaNode]]) -> dict:
    """A create_groups proposal with one colored group per category."""
    return make_proposal(
        "create_groups",
        groups=[
            {
                "name": name,
                "color": pick_color(i),
                "member_node_ids": [n["id"] for n in members],
                "member_names": [n["name"] for n in members],
            }
            for i, (name, members) in enumerate(categories.items())
        ],
    )


def detect_strategy(prompt: str) -> str:
    if prompt.lower().startswith("organize:"):
        return "custom"
    for strategy, pattern in _STRATEGY_RES:
        if pattern.search(prompt):
            return strategy
    if re.search(r"\b(by|into)\b", prompt, re.IGNORECASE):
        return "custom"
    return "functional"


def _check_organize_response(data: dict) -> None:
    groups = data.get("groups")
    if not isinstance(groups, list) or not groups:
        raise ValueError("Response must contain a non-empty groups list")
    for group in groups:
        if not isinstance(group, dict) or not group.get("name") or not isinstance(group.get("members"), list):
            raise ValueError("Every group needs a name and a members list")


def _summary(categories: dict[str, list[AreaNode]]) -> str:
    return ", ".join(f'"{name}" ({len(members)})' for name, members in categories.items())


class OrganizeAction(Action):
    id = "organize"
    name = "Organize Areas"
    description = "Group selected areas into logical categories"
    examples = [
        "Group these areas by function",
        "Organize by public vs private",
        "Categorize by access level",
    ]
    patterns = [
        re.compile(r"\b(group|organize|cluster|categorize|sort|arrange)\b.*\b(areas?|spaces?|rooms?)\b", re.IGNORECASE),
        re.compile(
            r"\b(areas?|spaces?|rooms?)\b.*\b(by|into)\b.*\b(function|type|category|zone|public|private)\b",
            re.IGNORECASE,
        ),
        re.compile(r"\b(re-?organize|re-?group|re-?cluster)\b", re.IGNORECASE),
    ]
    selection_requirement = "multiple"
    priority = 15

    def validate(self, prompt: str, selection: list[AreaNode], context: ActionContext) -> dict:
        if len(selection) < 2:
            return {
                "valid": False,
                "error": "Organize requires selecting multiple areas. Please select 2+ areas to group.",
            }
        return {"valid": True}

    async def execute(self, prompt: str, selection: list[AreaNode], context: ActionContext) -> dict:
        if len(selection) < 2:
            return {
                "message": "Need at least 2 areas to organize.",
                "data": {"proposals": []},
                "warnings": ["insufficient_selection"],
            }

        strategy = detect_strategy(prompt)
        print(f"[AreaForge] Organize {len(selection)} areas, strategy={strategy}", file=sys.stderr)

        if strategy == "functional":
            categories = categorize_by_function(selection)
            message = None
        else:
            categories, message = await self._ask_oracle(prompt, strategy, selection)

        if len(categories) <= 1:
            return {
                "message": "Could not identify distinct categories in the selected areas. "
                           "They may already be too homogeneous.",
                "data": {"proposals": [], "strategy": strategy},
                "warnings": ["single_category"],
            }

        proposal = groups_proposal(categories)
        grouped = sum(len(members) for members in categories.values())
        summary = f"Organized {grouped} areas into {len(categories)} groups: {_summary(categories)}"
        return {
            "message": f"{message}\n{summary}" if message else summary,
            "data": {"proposals": [proposal], "strategy": strategy},
            "warnings": [],
        }

    async def _ask_oracle(
        self, prompt: str, strategy: str, selection: list[AreaNode]
    ) -> tuple[dict[str, list[AreaNode]], str | None]:
        listing = "\n".join(
            f"- id={n['id']} | {n['name']} | {n['area_per_unit']:g} m² × {n.get('count', 1)}"
            for n in selection
        )
        user_prompt = f"{STRATEGY_HINTS[strategy]}\n\nRequest: {prompt}\n\nAreas:\n{listing}"
        data = await self.oracle.generate_json(
            ORGANIZE_SYSTEM_PROMPT, user_prompt, validate=_check_organize_response
        )

        by_id = {n["id"]: n for n in selection}
        by_name = {n["name"].lower(): n for n in selection}
        assigned: set[str] = set()
        categories: dict[str, list[AreaNode]] = {}
        for group in data["groups"]:
            members = []
            for ref in group["members"]:
                node = by_id.get(ref) or by_name.get(str(ref).lower())
                if node is not None and node["id"] not in assigned:
                    assigned.add(node["id"])
                    members.append(node)
            if members:
                categories.setdefault(group["name"], []).extend(members)

        skipped = len(selection) - len(assigned)
        if skipped:
            print(f"[AreaForge] Organize: {skipped} areas left ungrouped by the model", file=sys.stderr)
        return categories, data.get("message")
