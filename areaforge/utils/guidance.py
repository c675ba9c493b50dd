"""Distilled area-programming rules for injection into the agent system prompt."""

# Imperative rules for LLM consumption. Edit the list below when the planning
# conventions change.
_GUIDANCE_RULES = """\
- Keep the program total stable unless the user asks for a new total: splits, merges and \
regroupings move area around, they do not create or lose it.
- Repeated spaces (guest rooms, offices, parking bays) are one area with a count, not many \
separate areas.
- Circulation, services and back-of-house are real area: a typical building carries 15-30% \
non-net area.
- Unfold one scale level at a time: districts into plots, buildings into departments, \
departments into rooms.
- Group by function first (public, private, service), then by location when the user asks.
- Never invent numbers for areas the user already sized: scale or redistribute existing \
areas instead of recreating them.
- When the stated area does not fit the typology, ask which reading the user meant before \
generating anything.\
"""


def load_guidance() -> str:
    """Return the distilled programming rules.

    Returns an empty string if guidance is disabled in config
    (set guidance_enabled to false or remove it).
    """
    from areaforge.config import get_config

    config = get_config()
    if not config.get("guidance_enabled", False):
        return ""

    return _GUIDANCE_RULES
