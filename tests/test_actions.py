"""Tests for the five built-in actions, driven by scripted extraction oracles."""

import asyncio

import pytest

from areaforge.actions.create import CreateAction, extract_area
from areaforge.actions.organize import OrganizeAction, categorize_by_function, detect_strategy
from areaforge.actions.parse_brief import ParseBriefAction, has_explicit_trigger, strip_command_prefix
from areaforge.actions.scale import ScaleAction, detect_numeric_intent
from areaforge.actions.unfold import UnfoldAction
from areaforge.context import build_context
from areaforge.proposals import GROUP_COLORS


def _run(coro):
    return asyncio.run(coro)


class TestCreateAction:
    def test_extract_area(self):
        assert extract_area("create a 5,000 sqm hotel") == 5000
        assert extract_area("create a hotel") is None

    def test_generates_exact_program(self, context, json_oracle, hotel_intent_response, mock_config):
        oracle = json_oracle(hotel_intent_response)
        action = CreateAction(oracle)
        result = _run(action.execute("create a hotel", [], context))
        proposals = action.to_proposals(result, [], context)
        areas = proposals[0]["areas"]
        assert areas[0] == {"name": "Rooms", "area_per_unit": 70, "count": 100, "group_hint": "Accommodation"}
        assert areas[1]["area_per_unit"] == 3000
        assert result["message"] == "Hotel program"

    def test_stated_area_overrides_model_total(self, context, json_oracle, hotel_intent_response, mock_config):
        action = CreateAction(json_oracle(hotel_intent_response))
        result = _run(action.execute("create a 8000 sqm hotel", [], context))
        areas = result["data"]["proposals"][0]["areas"]
        assert sum(a["area_per_unit"] * a["count"] for a in areas) == 8000
        assert "Total area: 8.0K m²" in action.oracle.calls[0][1]

    def test_scale_mismatch_asks_before_calling_model(self, context, json_oracle):
        oracle = json_oracle()
        action = CreateAction(oracle)
        result = _run(action.execute("create a 5000000 sqm hotel", [], context))
        assert result["needs_clarification"]
        assert oracle.calls == []
        assert action.to_proposals(result, [], context) == []
        assert result["clarification_options"][-1]["label"].startswith("Keep 5.0M m²")

    def test_confirmed_choice_generates_with_corrected_area(
        self, context, json_oracle, hotel_intent_response, mock_config
    ):
        action = CreateAction(json_oracle(hotel_intent_response))
        option = {"label": "Did you mean 5.0K m²?", "area": 5000, "scale": "architecture"}
        result = _run(action.execute_with_choice("create a 5000000 sqm hotel", option, context))
        areas = result["data"]["proposals"][0]["areas"]
        assert sum(a["area_per_unit"] * a["count"] for a in areas) == 5000

    def test_accepts_legacy_proposals_output(self, context, json_oracle, mock_config):
        legacy = {
            "message": "Hotel program",
            "proposals": [{"type": "create_areas", "areas": [
                {"name": "Rooms", "area_per_unit": 30, "count": 10, "ratio": 0.6},
                {"name": "Lobby", "area_per_unit": 200, "count": 1, "ratio": 0.4},
            ]}],
        }
        action = CreateAction(json_oracle(legacy))
        result = _run(action.execute("create a hotel", [], context))
        areas = result["data"]["proposals"][0]["areas"]
        assert [(a["name"], a["area_per_unit"], a["count"]) for a in areas] == [
            ("Rooms", 30, 10), ("Lobby", 200, 1),
        ]
        assert result["message"] == "Hotel program"

    def test_validate_rejects_vague_prompt(self, context):
        check = CreateAction(object()).validate("hi", [], context)
        assert not check["valid"]


class TestUnfoldAction:
    def _split_response(self):
        return {
            "message": "Breaking down the lobby",
            "intent": {"type": "split_area", "splits": [
                {"name": "Reception", "ratio": 0.6},
                {"name": "Lounge", "ratio": 0.4},
            ]},
        }

    def test_unfolds_single_node(self, context, json_oracle, mock_config):
        lobby = context["nodes"]["n2"]
        action = UnfoldAction(json_oracle(self._split_response()))
        result = _run(action.execute("", [lobby], context))
        proposal = result["data"]["proposals"][0]
        assert proposal["type"] == "split_area"
        assert proposal["source_node_id"] == "n2"
        assert proposal["group_name"] == "Lobby"
        assert [s["area_per_unit"] for s in proposal["splits"]] == [300, 200]
        assert result["message"].startswith("[interior scale → rooms or specific spaces] ")

    def test_skips_tiny_nodes(self, json_oracle, mock_config):
        snapshot = {"nodes": {"t": {"id": "t", "name": "Closet", "area_per_unit": 5, "count": 1}}, "groups": {}}
        context = build_context("unfold", snapshot, ["t"])
        oracle = json_oracle()
        result = _run(UnfoldAction(oracle).execute("", [context["nodes"]["t"]], context))
        assert "too small to split meaningfully" in result["message"]
        assert result["warnings"] == ["area_too_small"]
        assert oracle.calls == []

    def test_one_failure_does_not_stop_the_batch(self, context, json_oracle, mock_config):
        oracle = json_oracle(ValueError("bad json"), self._split_response())
        nodes = [context["nodes"]["n1"], context["nodes"]["n2"]]
        result = _run(UnfoldAction(oracle).execute("", nodes, context))
        assert result["data"]["unfolded_count"] == 1
        assert "unfold_failed" in result["warnings"]
        assert result["message"].startswith("Unfolded 1/2 areas:")

    def test_accepts_legacy_split_proposal(self, context, json_oracle, mock_config):
        legacy = {
            "message": "Lobby split",
            "proposals": [{"type": "split_area", "source_node_id": "n2", "source_name": "Lobby", "splits": [
                {"name": "Reception", "area_per_unit": 300, "count": 1},
                {"name": "Lounge", "area_per_unit": 200, "count": 1},
            ]}],
        }
        lobby = context["nodes"]["n2"]
        result = _run(UnfoldAction(json_oracle(legacy)).execute("", [lobby], context))
        proposal = result["data"]["proposals"][0]
        assert proposal["type"] == "split_area"
        assert [s["area_per_unit"] for s in proposal["splits"]] == [300, 200]
        assert result["message"].endswith("Lobby split")

    def test_warns_when_split_is_too_fine_for_scale(self, context, json_oracle, mock_config):
        response = {"intent": {"type": "split_area", "splits": [
            {"name": "Booth", "ratio": 0.5, "count": 40},
            {"name": "Pod", "ratio": 0.5, "count": 20},
        ]}}
        oracle = json_oracle(response)
        lobby = context["nodes"]["n2"]
        result = _run(UnfoldAction(oracle).execute("", [lobby], context))
        assert "At interior scale, 500 m² can only be split into 50 parts (minimum 10 m² each)" in result["warnings"]
        assert "Detected scale: interior scale (50-500 m²" in oracle.calls[0][1]

    def test_validate_requires_single_selection(self, context):
        action = UnfoldAction(object())
        assert not action.validate("unfold", [], context)["valid"]
        assert not action.validate("unfold", list(context["nodes"].values()), context)["valid"]


class TestOrganizeAction:
    def test_categorize_by_function(self, context):
        categories = categorize_by_function(list(context["nodes"].values()))
        assert list(categories) == ["Guest", "Circulation", "Toilets & Sanitary", "Storage"]

    def test_categorize_with_suggestions(self, context):
        categories = categorize_by_function(list(context["nodes"].values()), ["Storage", "Toilets"])
        assert [n["id"] for n in categories["Storage"]] == ["n4"]
        assert [n["id"] for n in categories["Toilets"]] == ["n3"]
        assert [n["id"] for n in categories["Other"]] == ["n1", "n2"]

    def test_detect_strategy(self):
        assert detect_strategy("organize: by phase") == "custom"
        assert detect_strategy("organize by circulation") == "circulation"
        assert detect_strategy("group by public and private") == "spatial"
        assert detect_strategy("group by function") == "functional"
        assert detect_strategy("group these") == "functional"

    def test_functional_grouping_is_deterministic(self, context):
        oracle = object()
        nodes = list(context["nodes"].values())
        result = _run(OrganizeAction(oracle).execute("group by function", nodes, context))
        groups = result["data"]["proposals"][0]["groups"]
        assert len(groups) == 4
        assert [g["color"] for g in groups] == GROUP_COLORS[:4]
        assert result["message"].startswith("Organized 4 areas into 4 groups")

    def test_spatial_grouping_uses_model(self, context, json_oracle):
        oracle = json_oracle({"message": "Public vs private", "groups": [
            {"name": "Public", "members": ["n2", "Guest Rooms"]},
            {"name": "Private", "members": ["n3"]},
        ]})
        nodes = [context["nodes"][i] for i in ("n1", "n2", "n3")]
        result = _run(OrganizeAction(oracle).execute("organize by zone", nodes, context))
        groups = result["data"]["proposals"][0]["groups"]
        assert groups[0]["member_node_ids"] == ["n2", "n1"]
        assert groups[1]["member_node_ids"] == ["n3"]
        assert result["message"].startswith("Public vs private\n")

    def test_single_category_warns(self, context):
        nodes = [
            {"id": "x", "name": "Office A", "area_per_unit": 20, "count": 1},
            {"id": "y", "name": "Office B", "area_per_unit": 20, "count": 1},
        ]
        result = _run(OrganizeAction(object()).execute("group by function", nodes, context))
        assert result["warnings"] == ["single_category"]
        assert result["data"]["proposals"] == []

    def test_needs_two_areas(self, context):
        result = _run(OrganizeAction(object()).execute("group", [context["nodes"]["n1"]], context))
        assert result["warnings"] == ["insufficient_selection"]


class TestScaleAction:
    @pytest.mark.parametrize("prompt, expected", [
        ("scale to 5,000 sqm", {"type": "scale_to_target", "target_value": 5000, "confidence": 0.9}),
        ("reduce by 20%", {"type": "adjust_percent", "percent": -20, "confidence": 0.85}),
        ("increase by 10%", {"type": "adjust_percent", "percent": 10, "confidence": 0.85}),
        ("+15%", {"type": "adjust_percent", "percent": 15, "confidence": 0.85}),
        ("-10%", {"type": "adjust_percent", "percent": -10, "confidence": 0.85}),
        ("hello", {"type": "other", "confidence": 0.0}),
    ])
    def test_detect_numeric_intent(self, prompt, expected):
        assert detect_numeric_intent(prompt) == expected

    def _context(self):
        snapshot = {"nodes": {
            "a": {"id": "a", "name": "A", "area_per_unit": 100, "count": 1},
            "b": {"id": "b", "name": "B", "area_per_unit": 50, "count": 2},
        }, "groups": {}}
        return build_context("scale", snapshot)

    def test_scale_to_target(self):
        context = self._context()
        result = _run(ScaleAction().execute("scale to 300", [], context))
        updates = result["data"]["proposals"][0]["updates"]
        assert [u["changes"]["area_per_unit"] for u in updates] == [150, 75]
        assert result["message"] == "Scaled 2 areas from 200 m² to 300 m² (+50.0%)"

    def test_adjust_percent(self):
        context = self._context()
        result = _run(ScaleAction().execute("increase by 10%", [], context))
        assert result["message"] == "Adjusted 2 areas by +10%: 200 m² → 220 m²"

    def test_selection_limits_targets(self):
        context = self._context()
        result = _run(ScaleAction().execute("scale to 200", [context["nodes"]["a"]], context))
        updates = result["data"]["proposals"][0]["updates"]
        assert [u["node_id"] for u in updates] == ["a"]
        assert updates[0]["changes"]["area_per_unit"] == 200

    @pytest.mark.parametrize("prompt, error", [
        ("scale to 0", "targetTotal must be positive"),
        ("reduce by 100%", "percent must be greater than -100"),
    ])
    def test_invalid_target_is_reported(self, prompt, error):
        context = self._context()
        result = _run(ScaleAction().execute(prompt, [], context))
        assert result["success"] is False
        assert result["message"] == error
        assert result["data"]["proposals"] == []

    def test_unparseable_prompt(self):
        context = self._context()
        result = _run(ScaleAction().execute("make it nicer", [], context))
        assert result["warnings"] == ["parse_error"]
        assert not ScaleAction().validate("make it nicer", [], context)["valid"]


BRIEF = (
    "Lobby\t500 m²\n"
    "Guest Room\t80 x 30 m²\n"
    "Restaurant\t300 m²\n"
    "Kitchen\t150 m²\n"
    "Storage\t40 m²\n"
    "Total\t3000 m²"
)


class TestParseBriefAction:
    def _response(self):
        return {
            "areas": [
                {"name": "Lobby", "area_per_unit": 500, "count": 1, "group_hint": "Public"},
                {"name": "Guest Room", "area_per_unit": 30, "count": 80, "brief_note": "King bed"},
            ],
            "detected_groups": [{"name": "Public", "area_names": ["Lobby"]}],
            "brief_total": 3000,
            "ambiguities": [],
        }

    def test_prefix_handling(self):
        assert has_explicit_trigger("Parse this: lobby")
        assert has_explicit_trigger("create areas from this table: lobby")
        assert not has_explicit_trigger("lobby 100 m²")
        assert strip_command_prefix("parse brief: Lobby 100 m²") == "Lobby 100 m²"

    @pytest.mark.parametrize("prompt", [
        "create areas from this table: lobby",
        "import program from this spreadsheet",
        "load from document: lobby",
    ])
    def test_explicit_trigger_matches_prefix_forms(self, prompt):
        assert has_explicit_trigger(prompt)
        assert strip_command_prefix(prompt + " 100 m²").endswith("100 m²")

    def test_extracts_literal_areas(self, context, json_oracle):
        action = ParseBriefAction(json_oracle(self._response()))
        result = _run(action.execute("parse: " + BRIEF, [], context))
        proposal = result["data"]["proposals"][0]
        assert proposal["type"] == "create_areas"
        assert proposal["areas"][1]["formula_reasoning"] == "Extracted from brief: 80 × 30 m²"
        assert proposal["areas"][1]["brief_note"] == "King bed"
        assert proposal["detected_groups"] == [{"name": "Public", "area_names": ["Lobby"]}]
        assert result["data"]["parsed_total"] == 2900
        assert result["message"].startswith("Extracted 2 areas from brief (2,900 m² total)")

    def test_strict_parse_flags_total_mismatch(self, context, json_oracle):
        action = ParseBriefAction(json_oracle(self._response()))
        result = _run(action.execute("parse: " + BRIEF, [], context))
        assert result["data"]["ambiguities"] == [
            "Program total: parsed 2900m² vs stated 3000m² (diff: 100m²)"
        ]
        assert "Ambiguities:" in result["message"]

    def test_generation_prompt_is_redirected(self, context, json_oracle):
        oracle = json_oracle()
        result = _run(ParseBriefAction(oracle).execute("create a hotel with a spa", [], context))
        assert result["data"]["redirect"] is True
        assert result["warnings"] == ["Input redirected - use create action for prompts"]
        assert oracle.calls == []

    def test_no_areas(self, context, json_oracle):
        oracle = json_oracle({"areas": [], "brief_total": None})
        result = _run(ParseBriefAction(oracle).execute("parse: " + BRIEF, [], context))
        assert result["message"] == "No areas found in the brief."
        assert "no_areas" in result["warnings"]

    def test_validate_rejects_garbage(self, context):
        check = ParseBriefAction(object()).validate("banana purple sky", [], context)
        assert not check["valid"]
