"""Tests for the proposal integrity check and proposal stamping."""

import pytest

from areaforge.proposals import GROUP_COLORS, PROPOSAL_TYPES, make_proposal, pick_color
from areaforge.utils.integrity import check_proposal


class TestMakeProposal:
    def test_stamps_id_and_pending_status(self):
        proposal = make_proposal("merge_group_areas", group_id="g1", group_name="BOH", new_area_name="BOH")
        assert proposal["type"] == "merge_group_areas"
        assert proposal["status"] == "pending"
        assert proposal["id"]

    def test_ids_are_unique(self):
        assert make_proposal("add_notes", notes=[])["id"] != make_proposal("add_notes", notes=[])["id"]

    def test_payload_cannot_override_status(self):
        assert make_proposal("add_notes", notes=[], status="accepted")["status"] == "pending"

    def test_unknown_type(self):
        with pytest.raises(ValueError, match="Unknown proposal type"):
            make_proposal("teleport")

    def test_all_eleven_types(self):
        assert len(PROPOSAL_TYPES) == 11

    def test_palette_cycles(self):
        assert pick_color(0) == GROUP_COLORS[0]
        assert pick_color(len(GROUP_COLORS)) == GROUP_COLORS[0]


class TestCheckProposal:
    def test_valid_create(self, snapshot):
        proposal = {"type": "create_areas", "areas": [{"name": "Spa", "area_per_unit": 300, "count": 1}]}
        assert check_proposal(proposal, snapshot["nodes"], snapshot["groups"]) == []

    def test_create_with_zero_area(self, snapshot):
        proposal = {"type": "create_areas", "areas": [{"name": "Spa", "area_per_unit": 0, "count": 1}]}
        assert check_proposal(proposal, snapshot["nodes"], snapshot["groups"]) == [
            "'Spa' has area_per_unit below 1."
        ]

    def test_split_of_missing_node(self, snapshot):
        proposal = {"type": "split_area", "source_node_id": "zz",
                    "splits": [{"name": "A", "area_per_unit": 5, "count": 1}]}
        assert "source_node_id 'zz' does not exist." in check_proposal(proposal, snapshot["nodes"], {})

    def test_quantities_must_match_count(self, snapshot):
        proposal = {"type": "split_by_quantity", "source_node_id": "n1", "quantities": [4, 4]}
        issues = check_proposal(proposal, snapshot["nodes"], {})
        assert issues == ["Quantities [4, 4] do not add up to the count of 'Guest Rooms'."]

    def test_merge_needs_two_distinct_sources(self, snapshot):
        proposal = {"type": "merge_areas", "source_node_ids": ["n1", "n1"]}
        assert "Merge needs at least two source areas." in check_proposal(proposal, snapshot["nodes"], {})

    def test_update_below_one(self, snapshot):
        proposal = {"type": "update_areas", "updates": [
            {"node_id": "n2", "node_name": "Lobby", "changes": {"area_per_unit": 0}},
        ]}
        assert check_proposal(proposal, snapshot["nodes"], {}) == ["Update for 'Lobby' drops below 1 m²."]

    def test_group_references(self, snapshot):
        proposal = {"type": "assign_to_group", "group_id": "gx", "node_ids": ["n1"]}
        assert check_proposal(proposal, snapshot["nodes"], snapshot["groups"]) == ["Group 'gx' does not exist."]

    def test_note_targets(self, snapshot):
        proposal = {"type": "add_notes", "notes": [
            {"target_type": "group", "target_id": "g1", "target_name": "Back of House", "content": ""},
        ]}
        assert check_proposal(proposal, snapshot["nodes"], snapshot["groups"]) == [
            "Empty note for 'Back of House'."
        ]

    def test_group_split_parts(self, snapshot):
        proposal = {"type": "split_group_equal", "group_id": "g1", "parts": 1}
        assert check_proposal(proposal, {}, snapshot["groups"]) == ["Group split needs at least 2 parts."]

    def test_proportions_sum(self, snapshot):
        proposal = {"type": "split_group_proportion", "group_id": "g1",
                    "proportions": [{"name": "A", "percent": 50}, {"name": "B", "percent": 40}]}
        assert check_proposal(proposal, {}, snapshot["groups"]) == ["Proportions sum to 90%, not 100%."]

    def test_unknown_type(self):
        assert check_proposal({"type": "teleport"}, {}, {}) == ["Unknown proposal type: teleport."]
