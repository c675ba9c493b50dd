"""Action registry: picks the action that should handle a free-text request.

Every action declares its trigger patterns, selection requirement and priority
as class data. The registry flattens those into one priority-ordered trigger
table, so a new trigger is a new row, not a new branch. When no trigger fires,
a separate fallback stage infers the action from the shape of the text.
"""

import re
import sys
from typing import Literal

from areaforge.state import ActionContext, AreaNode

SelectionRequirement = Literal["none", "single", "multiple", "any"]

PATTERN_CONFIDENCE = 0.9


class Action:
    """Base class for a self-contained chat action.

    Subclasses fill in the class attributes and override ``execute``.
    ``validate`` is cheap and local; ``execute`` may call the extraction
    oracle; ``to_proposals`` only reads what ``execute`` already computed.
    """

    id = ""
    name = ""
    description = ""
    examples: list[str] = []
    patterns: list[re.Pattern] = []
    selection_requirement: SelectionRequirement = "none"
    priority = 0

    def __init__(self, oracle=None):
        self._oracle = oracle

    @property
    def oracle(self):
        """Extraction oracle, built from config on first use."""
        if self._oracle is None:
            from areaforge.agents.oracle import make_json_oracle

            self._oracle = make_json_oracle()
        return self._oracle

    def validate(self, prompt: str, selection: list[AreaNode], context: ActionContext) -> dict:
        return {"valid": True}

    async def execute(self, prompt: str, selection: list[AreaNode], context: ActionContext) -> dict:
        raise NotImplementedError

    def to_proposals(self, result: dict, selection: list[AreaNode], context: ActionContext) -> list[dict]:
        if result.get("needs_clarification"):
            return []
        data = result.get("data") or {}
        return list(data.get("proposals", []))


def selection_satisfied(requirement: SelectionRequirement, count: int) -> bool:
    if requirement == "single":
        return count == 1
    if requirement == "multiple":
        return count >= 2
    if requirement == "any":
        return count > 0
    return True


_SELECTION_HINTS = {
    "single": " (select one area)",
    "multiple": " (select 2+ areas)",
    "any": " (select at least one area)",
}

_AREA_TOKEN_RE = re.compile(r"\d+\s*(?:m²|sqm|m2)", re.IGNORECASE)
_TYPOLOGY_KEYWORD_RE = re.compile(
    r"\b(hotel|office|apartment|residential|commercial|school|hospital|museum|library|retail"
    r"|restaurant|warehouse|factory|building|facility)\b",
    re.IGNORECASE,
)
_SCALE_VERB_RE = re.compile(r"\b(scale|adjust|increase|decrease|change)\b", re.IGNORECASE)


def _looks_like_brief(prompt: str, selection: list) -> bool:
    return len(prompt.split("\n")) > 3 and bool(_AREA_TOKEN_RE.search(prompt))


def _names_typology(prompt: str, selection: list) -> bool:
    return bool(_TYPOLOGY_KEYWORD_RE.search(prompt))


def _selection_with_scale_verb(prompt: str, selection: list) -> bool:
    return bool(selection) and bool(_SCALE_VERB_RE.search(prompt))


# Fallback inference, checked in order: (predicate, action id, confidence)
FALLBACK_RULES = [
    (_looks_like_brief, "parse_brief", 0.7),
    (_names_typology, "create", 0.6),
    (_selection_with_scale_verb, "scale", 0.6),
]


class Registry:
    def __init__(self, actions: list[Action] | None = None):
        self._actions: dict[str, Action] = {}
        self._triggers: list[tuple[int, re.Pattern, SelectionRequirement, str]] = []
        for action in actions or []:
            self.register(action)

    def register(self, action: Action) -> None:
        if action.id in self._actions:
            print(f"[AreaForge] Overwriting action: {action.id}", file=sys.stderr)
            self._triggers = [t for t in self._triggers if t[3] != action.id]
        self._actions[action.id] = action
        for pattern in action.patterns:
            self._triggers.append((action.priority, pattern, action.selection_requirement, action.id))
        # Stable sort keeps each action's own pattern order within a priority
        self._triggers.sort(key=lambda t: -t[0])

    def get(self, action_id: str) -> Action | None:
        return self._actions.get(action_id)

    def all(self) -> list[Action]:
        return list(self._actions.values())

    def classify(
        self, prompt: str, selection: list[AreaNode], context: ActionContext | None = None
    ) -> tuple[Action, float] | None:
        """Return (action, confidence) for the request, or None if nothing fits.

        Triggers are tried by descending priority; the first one whose pattern
        matches and whose selection requirement is met wins. A None result
        means the caller must ask the user to clarify.
        """
        for _, pattern, requirement, action_id in self._triggers:
            if pattern.search(prompt) and selection_satisfied(requirement, len(selection)):
                return self._actions[action_id], PATTERN_CONFIDENCE
        return self.infer(prompt, selection)

    def infer(self, prompt: str, selection: list[AreaNode]) -> tuple[Action, float] | None:
        for predicate, action_id, confidence in FALLBACK_RULES:
            action = self._actions.get(action_id)
            if action is not None and predicate(prompt, selection):
                return action, confidence
        return None

    def matched_but_blocked(self, prompt: str, selection: list[AreaNode]) -> Action | None:
        """First action whose pattern matches although its selection requirement is not met."""
        for _, pattern, requirement, action_id in self._triggers:
            if pattern.search(prompt) and not selection_satisfied(requirement, len(selection)):
                return self._actions[action_id]
        return None

    @staticmethod
    def selection_error(action: Action, selected_count: int) -> str | None:
        """Explain why a matched action cannot run with the current selection."""
        requirement = action.selection_requirement
        if requirement == "single":
            if selected_count == 0:
                return f"{action.name} requires selecting an area first."
            if selected_count > 1:
                return f"{action.name} works on one area at a time. Please select a single area."
        elif requirement == "multiple" and selected_count < 2:
            return f"{action.name} requires selecting multiple areas. Please select 2+ areas."
        elif requirement == "any" and selected_count == 0:
            return f"{action.name} requires selecting at least one area."
        return None

    def help_text(self) -> str:
        lines = ["I can help you with these actions:", ""]
        for action in sorted(self._actions.values(), key=lambda a: a.name):
            hint = _SELECTION_HINTS.get(action.selection_requirement, "")
            lines.append(f"**{action.name}**: {action.description}{hint}")
            if action.examples:
                lines.append(f'  -> "{action.examples[0]}"')
        return "\n".join(lines)


def default_registry(oracle=None) -> Registry:
    """Registry with the five built-in actions sharing one extraction oracle."""
    from areaforge.actions.create import CreateAction
    from areaforge.actions.organize import OrganizeAction
    from areaforge.actions.parse_brief import ParseBriefAction
    from areaforge.actions.scale import ScaleAction
    from areaforge.actions.unfold import UnfoldAction

    return Registry([
        CreateAction(oracle),
        UnfoldAction(oracle),
        OrganizeAction(oracle),
        ScaleAction(oracle),
        ParseBriefAction(oracle),
    ])
