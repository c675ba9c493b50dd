"""Tool definitions offered to the agent model, in OpenAI function format.

These describe the area tools so the model can decide when to use them.
Argument names are snake_case and are validated against these schemas before
any executor runs.
"""

_DETAIL_LEVEL = {
    "type": "string",
    "description": 'Level of detail: "abstract" for 4-6 major zones, "typical" for 6-10 areas '
                   'with counts, "detailed" for 12-20 specific spaces',
    "enum": ["abstract", "typical", "detailed"],
}

_GROUP_ID = {
    "type": "string",
    "description": "ID of the group. If not provided, uses the selected group.",
}

_GROUP_NAME = {
    "type": "string",
    "description": "Name of the group. Used if group_id is not provided.",
}


def _tool(name: str, description: str, properties: dict, required: list[str] | None = None) -> dict:
    return {
        "type": "function",
        "function": {
            "name": name,
            "description": description,
            "parameters": {
                "type": "object",
                "properties": properties,
                "required": required or [],
            },
        },
    }


TOOL_SCHEMAS = [
    _tool(
        "create_program",
        "Create and ADD a new architectural program to the project. This ADDS new areas - it does "
        'NOT modify or replace existing areas. Use this for requests like "create a hotel", "add '
        'office building", "make a school program", "design a spa".',
        {
            "description": {
                "type": "string",
                "description": 'Description of what to create (e.g., "200-room boutique hotel", '
                               '"50,000 sqm office tower", "elementary school for 500 students")',
            },
            "detail_level": _DETAIL_LEVEL,
        },
        ["description"],
    ),
    _tool(
        "unfold_area",
        "Expand area(s) into more detailed sub-areas. Works with: (1) a specific area by ID/name, "
        "(2) selected areas, or (3) all areas within selected groups. The depth of unfolding is "
        "automatic based on each area's scale.",
        {
            "area_id": {
                "type": "string",
                "description": "ID of a specific area to unfold. If not specified, unfolds selected "
                               "area(s) or all areas in selected groups.",
            },
            "area_name": {
                "type": "string",
                "description": "Name of area to unfold (searches by name if area_id not provided)",
            },
            "focus": {
                "type": "string",
                "description": 'Optional focus for unfolding (e.g., "focus on guest amenities")',
            },
            "detail_level": _DETAIL_LEVEL,
        },
    ),
    _tool(
        "organize_areas",
        'Organize areas into logical groups like "Public Zones", "Back of House", "Guest Areas". '
        "Works on selected areas or all areas if none selected.",
        {
            "strategy": {
                "type": "string",
                "description": "Grouping strategy",
                "enum": ["functional", "spatial", "circulation", "custom"],
            },
            "custom_grouping": {
                "type": "string",
                "description": 'Description of custom grouping logic (only if strategy is "custom")',
            },
        },
    ),
    _tool(
        "split_group",
        'Split a group into N equal sub-groups numerically (e.g., "split into 8 groups", "divide '
        'into 4 modules"). This splits by COUNT or AREA equally, NOT by function. For functional '
        "reorganization use regroup_by_function.",
        {
            "group_id": _GROUP_ID,
            "group_name": _GROUP_NAME,
            "number_of_groups": {
                "type": "integer",
                "description": 'Number of sub-groups to create (e.g., 8 for "split into 8 groups")',
            },
            "naming_pattern": {
                "type": "string",
                "description": 'Naming pattern for new groups (e.g., "Module" creates "Module 1", '
                               '"Module 2", etc.)',
            },
        },
        ["number_of_groups"],
    ),
    _tool(
        "split_group_by_proportion",
        "Split a group into named sub-groups by percentage (e.g., 60% Phase 1, 40% Phase 2). "
        "Percentages must add up to 100.",
        {
            "group_id": _GROUP_ID,
            "group_name": _GROUP_NAME,
            "proportions": {
                "type": "array",
                "description": "Named shares of the group, in percent",
                "items": {
                    "type": "object",
                    "properties": {
                        "name": {"type": "string"},
                        "percent": {"type": "number"},
                    },
                    "required": ["name", "percent"],
                },
            },
        },
        ["proportions"],
    ),
    _tool(
        "regroup_by_function",
        "Reorganize a group's areas into smaller functional subgroups based on their purpose "
        '(e.g., "Supporting facilities" -> "Toilets", "Storage", "Circulation"). Use for '
        '"split into functional groups", "reorganize by function". Does NOT split areas numerically.',
        {
            "group_id": _GROUP_ID,
            "group_name": _GROUP_NAME,
            "suggested_categories": {
                "type": "array",
                "description": "Optional list of category names to organize into.",
                "items": {"type": "string"},
            },
        },
    ),
    _tool(
        "scale_areas",
        'Adjust sizes of EXISTING areas only. Use for "make rooms bigger", "reduce by 20%", '
        '"resize lobby to 500 sqm". NEVER use when the user says "create", "add", or "design".',
        {
            "operation": {
                "type": "string",
                "description": "Type of scaling operation",
                "enum": ["increase", "decrease", "set", "redistribute"],
            },
            "value": {
                "type": "number",
                "description": "Percentage (for increase/decrease) or absolute sqm (for set/redistribute)",
            },
            "unit": {
                "type": "string",
                "description": "Unit of value",
                "enum": ["percent", "sqm"],
            },
            "target_area_ids": {
                "type": "array",
                "description": "IDs of areas to scale. Uses selected areas if not provided.",
                "items": {"type": "string"},
            },
        },
        ["operation", "value"],
    ),
    _tool(
        "split_area_by_quantity",
        "Split an area with several identical units into linked entries by unit count "
        "(e.g., 10 rooms into 3 + 7). Quantities must add up to the area's count.",
        {
            "area_id": {"type": "string", "description": "ID of the area to split"},
            "area_name": {"type": "string", "description": "Name of the area if area_id is not known"},
            "quantities": {
                "type": "array",
                "description": "Unit counts for each new entry",
                "items": {"type": "integer"},
            },
            "names": {
                "type": "array",
                "description": "Optional names for the new entries, one per quantity",
                "items": {"type": "string"},
            },
        },
        ["quantities"],
    ),
    _tool(
        "merge_areas",
        "Merge two or more existing areas into one area with their combined total.",
        {
            "area_ids": {
                "type": "array",
                "description": "IDs of the areas to merge. Uses selected areas if not provided.",
                "items": {"type": "string"},
            },
            "result_name": {"type": "string", "description": "Name for the merged area"},
        },
    ),
    _tool(
        "assign_to_group",
        "Add existing areas to an existing group.",
        {
            "group_id": _GROUP_ID,
            "group_name": _GROUP_NAME,
            "area_ids": {
                "type": "array",
                "description": "IDs of the areas to assign. Uses selected areas if not provided.",
                "items": {"type": "string"},
            },
        },
    ),
    _tool(
        "add_notes",
        "Attach notes (requirements, reasoning, adjacencies) to areas or groups.",
        {
            "notes": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {
                        "target_type": {"type": "string", "enum": ["area", "group"]},
                        "target_id": {"type": "string"},
                        "content": {"type": "string"},
                        "reason": {"type": "string"},
                    },
                    "required": ["target_type", "target_id", "content"],
                },
            },
        },
        ["notes"],
    ),
    _tool(
        "merge_group_areas",
        "Collapse all areas of a group into a single area with the group's total.",
        {
            "group_id": _GROUP_ID,
            "group_name": _GROUP_NAME,
            "new_area_name": {"type": "string", "description": "Name for the merged area"},
        },
    ),
    _tool(
        "parse_brief",
        "Parse a long-form architectural brief or table into a structured area program. Use this "
        "when the user pastes a document, spreadsheet data, or a detailed requirements list. Pass "
        "the COMPLETE text.",
        {
            "brief_text": {"type": "string", "description": "The brief text to parse"},
            "format": {
                "type": "string",
                "description": "Format hint for parsing",
                "enum": ["text", "table", "list", "mixed"],
            },
        },
        ["brief_text"],
    ),
    _tool(
        "get_project_summary",
        "Get a summary of the current project: total area, number of areas, groups, and top-level "
        "structure. Use this to understand what exists before making changes.",
        {},
    ),
    _tool(
        "find_area",
        "Find an area by name. Returns matching areas with their IDs. Use this before unfold_area "
        "or scale_areas when you need to target a specific area.",
        {"query": {"type": "string", "description": "Area name or part of it"}},
        ["query"],
    ),
    _tool(
        "respond_to_user",
        "Send a final response to the user. Use this when all requested actions are done, or to ask "
        "a clarifying question.",
        {
            "message": {"type": "string", "description": "Message to send to the user"},
            "ask_for_confirmation": {
                "type": "boolean",
                "description": "Whether to ask the user to confirm before applying proposals",
            },
        },
        ["message"],
    ),
]

SCHEMAS_BY_NAME = {tool["function"]["name"]: tool["function"]["parameters"] for tool in TOOL_SCHEMAS}
