"""Input validation: checks the user message and selection before any agent work starts."""


def validate_input(message: str) -> str:
    """Validate that the user message is a non-empty string.

    Returns the stripped input on success.
    Raises ValueError if input is empty or whitespace-only.
    """
    if not isinstance(message, str) or not message.strip():
        raise ValueError("Message must be a non-empty string.")
    return message.strip()


def validate_selection(
    selected_node_ids: list[str] | None,
    selected_group_ids: list[str] | None,
    nodes: dict,
    groups: dict,
) -> tuple[list[str], list[str]]:
    """Check that every selected id exists in the snapshot.

    Returns the de-duplicated (node ids, group ids).
    Raises ValueError naming the first unknown id.
    """
    node_ids = list(dict.fromkeys(selected_node_ids or []))
    group_ids = list(dict.fromkeys(selected_group_ids or []))
    for node_id in node_ids:
        if node_id not in nodes:
            raise ValueError(f"Selected area '{node_id}' is not in the project.")
    for group_id in group_ids:
        if group_id not in groups:
            raise ValueError(f"Selected group '{group_id}' is not in the project.")
    return node_ids, group_ids
