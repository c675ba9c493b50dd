"""Proposal variants: fully computed, ready-to-apply mutations awaiting human acceptance.

Proposals are plain dicts tagged by ``type``. The payload never changes after
creation; only ``status`` moves from pending to accepted/rejected/modified, and
that happens outside this package.
"""

import uuid
from typing import Literal, TypedDict, get_args

ProposalStatus = Literal["pending", "accepted", "rejected", "modified"]
ProposalType = Literal[
    "create_areas",
    "split_area",
    "split_by_quantity",
    "merge_areas",
    "update_areas",
    "create_groups",
    "assign_to_group",
    "add_notes",
    "split_group_equal",
    "split_group_proportion",
    "merge_group_areas",
]

PROPOSAL_TYPES = frozenset(get_args(ProposalType))

GROUP_COLORS = [
    "#3b82f6",  # blue
    "#ef4444",  # red
    "#22c55e",  # green
    "#f59e0b",  # amber
    "#8b5cf6",  # violet
    "#ec4899",  # pink
    "#06b6d4",  # cyan
    "#84cc16",  # lime
    "#f97316",  # orange
    "#6366f1",  # indigo
]


class AreaSpec(TypedDict, total=False):
    name: str
    area_per_unit: float
    count: int
    brief_note: str
    ai_note: str
    group_hint: str
    formula_reasoning: str


class CreateAreasProposal(TypedDict, total=False):
    id: str
    type: Literal["create_areas"]
    areas: list[AreaSpec]
    detected_groups: list[dict]
    status: ProposalStatus


class SplitAreaProposal(TypedDict, total=False):
    id: str
    type: Literal["split_area"]
    source_node_id: str
    source_name: str
    splits: list[AreaSpec]
    group_name: str
    group_color: str
    status: ProposalStatus


class SplitByQuantityProposal(TypedDict, total=False):
    id: str
    type: Literal["split_by_quantity"]
    source_node_id: str
    source_name: str
    quantities: list[int]
    names: list[str]
    status: ProposalStatus


class MergeAreasProposal(TypedDict, total=False):
    id: str
    type: Literal["merge_areas"]
    source_node_ids: list[str]
    source_names: list[str]
    result: AreaSpec
    status: ProposalStatus


class UpdateAreasProposal(TypedDict, total=False):
    id: str
    type: Literal["update_areas"]
    updates: list[dict]  # {node_id, node_name, changes: {area_per_unit?, count?, name?}}
    status: ProposalStatus


class CreateGroupsProposal(TypedDict, total=False):
    id: str
    type: Literal["create_groups"]
    groups: list[dict]  # {name, color, member_node_ids, member_names}
    status: ProposalStatus


class AssignToGroupProposal(TypedDict, total=False):
    id: str
    type: Literal["assign_to_group"]
    group_id: str
    group_name: str
    node_ids: list[str]
    node_names: list[str]
    status: ProposalStatus


class AddNotesProposal(TypedDict, total=False):
    id: str
    type: Literal["add_notes"]
    notes: list[dict]  # {target_type: area|group, target_id, target_name, content, reason?}
    status: ProposalStatus


class SplitGroupEqualProposal(TypedDict, total=False):
    id: str
    type: Literal["split_group_equal"]
    group_id: str
    group_name: str
    parts: int
    name_suffix: str
    status: ProposalStatus


class SplitGroupProportionProposal(TypedDict, total=False):
    id: str
    type: Literal["split_group_proportion"]
    group_id: str
    group_name: str
    proportions: list[dict]  # {name, percent}
    status: ProposalStatus


class MergeGroupAreasProposal(TypedDict, total=False):
    id: str
    type: Literal["merge_group_areas"]
    group_id: str
    group_name: str
    new_area_name: str
    status: ProposalStatus


def make_proposal(proposal_type: str, **payload) -> dict:
    """Stamp a computed payload with a fresh id and pending status."""
    if proposal_type not in PROPOSAL_TYPES:
        raise ValueError(f"Unknown proposal type: {proposal_type}")
    return {"id": str(uuid.uuid4()), "type": proposal_type, **payload, "status": "pending"}


def pick_color(index: int) -> str:
    """Cycle through the group palette."""
    return GROUP_COLORS[index % len(GROUP_COLORS)]
