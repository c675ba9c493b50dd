"""Tests for tool argument checking, the tool executors and the tools node."""

import asyncio
import json

import pytest

from conftest import ScriptedJsonOracle, tool_call
from areaforge.actions.registry import default_registry
from areaforge.agents.tools import (
    PENDING_CREATE_MESSAGE,
    execute_tool,
    summarize,
    tool_message,
    tools_node,
    validate_arguments,
)
from areaforge.context import build_context
from areaforge.errors import OracleError, ToolExecutionError


def _run_tool(name, args, context, proposals=None, oracle=None, raw=None):
    registry = default_registry(oracle or ScriptedJsonOracle())
    call = tool_call(name, args, raw=raw)
    return asyncio.run(execute_tool(call, context, proposals or [], registry))


def _pending_create():
    return {"id": "p1", "type": "create_areas", "status": "pending",
            "areas": [{"name": "Lobby", "area_per_unit": 100, "count": 1}]}


SPLIT_RESPONSE = {
    "message": "Breaking down the lobby",
    "intent": {"type": "split_area", "splits": [
        {"name": "Reception", "ratio": 0.6},
        {"name": "Lounge", "ratio": 0.4},
    ]},
}


class TestValidateArguments:
    def test_numeric_strings_are_coerced(self):
        args = validate_arguments("scale_areas", {"operation": "set", "value": "1,080"})
        assert args["value"] == 1080

    def test_integer_fields(self):
        assert validate_arguments("split_group", {"number_of_groups": "4"})["number_of_groups"] == 4
        with pytest.raises(ToolExecutionError, match="split_group.number_of_groups must be an integer"):
            validate_arguments("split_group", {"number_of_groups": 2.5})

    def test_missing_required(self):
        with pytest.raises(ToolExecutionError, match="missing required argument\\(s\\): operation"):
            validate_arguments("scale_areas", {"value": 5})

    def test_enum(self):
        with pytest.raises(ToolExecutionError, match="scale_areas.operation must be one of"):
            validate_arguments("scale_areas", {"operation": "double", "value": 2})

    def test_booleans_are_not_numbers(self):
        with pytest.raises(ToolExecutionError, match="must be a number"):
            validate_arguments("scale_areas", {"operation": "set", "value": True})

    def test_nested_objects(self):
        with pytest.raises(ToolExecutionError, match=r"add_notes.notes\[0\]: missing required argument\(s\): content"):
            validate_arguments("add_notes", {"notes": [{"target_type": "area", "target_id": "n1"}]})

    def test_wrong_container_type(self):
        with pytest.raises(ToolExecutionError, match="must be of type array"):
            validate_arguments("merge_areas", {"area_ids": "n1,n2"})


class TestDispatch:
    def test_unknown_tool(self, context):
        args, result = asyncio.run(execute_tool(
            {"id": "c1", "name": "teleport", "arguments": "{}"}, context, [], default_registry(object())
        ))
        assert args == {}
        assert not result["success"]
        assert result["error"] == "Unknown tool: teleport"

    def test_malformed_arguments(self, context):
        _, result = _run_tool("find_area", None, context, raw="{not json")
        assert not result["success"]
        assert result["error"].startswith("Malformed arguments for find_area")

    def test_schema_violation_is_a_failed_result(self, context):
        _, result = _run_tool("find_area", {}, context)
        assert result["error"] == "find_area: missing required argument(s): query"

    def test_oracle_error_propagates(self, context):
        oracle = ScriptedJsonOracle(OracleError("Transport failure: ConnectError()", transient=True))
        with pytest.raises(OracleError):
            _run_tool("create_program", {"description": "a hotel"}, context, oracle=oracle)

    def test_summarize_and_tool_message(self):
        ok = {"success": True, "message": None, "error": None, "result": {}, "proposals": []}
        failed = {"success": False, "message": None, "error": "boom", "result": {}, "proposals": []}
        assert summarize(ok) == "Success"
        assert summarize(failed) == "boom"
        assert json.loads(tool_message(failed)) == {
            "success": False, "message": None, "error": "boom", "result": {},
        }


class TestLookupTools:
    def test_find_area(self, context):
        _, result = _run_tool("find_area", {"query": "room"}, context)
        assert result["message"] == "Found 2 areas: Guest Rooms (300 m²), Storage Room (40 m²)"
        assert [m["id"] for m in result["result"]["matches"]] == ["n1", "n4"]

    def test_find_area_no_match(self, context):
        _, result = _run_tool("find_area", {"query": "helipad"}, context)
        assert result["error"] == 'No areas found matching "helipad"'

    def test_project_summary(self, context):
        _, result = _run_tool("get_project_summary", {}, context)
        assert result["result"]["area_count"] == 4
        assert result["result"]["group_count"] == 2
        assert result["message"].startswith("Project has 4 areas (880 m² total) in 2 groups.")

    def test_respond_to_user_is_final(self, context):
        _, result = _run_tool("respond_to_user", {"message": "All done"}, context)
        assert result["final"]
        assert result["message"] == "All done"


class TestCreateAndParse:
    def test_create_program(self, context, hotel_intent_response, mock_config):
        _, result = _run_tool(
            "create_program", {"description": "a hotel"}, context,
            oracle=ScriptedJsonOracle(hotel_intent_response),
        )
        assert result["success"]
        assert result["result"]["areas_created"] == 2
        assert result["proposals"][0]["type"] == "create_areas"

    def test_create_program_skips_when_create_pending(self, context):
        oracle = ScriptedJsonOracle()
        _, result = _run_tool("create_program", {"description": "a spa"}, context,
                              proposals=[_pending_create()], oracle=oracle)
        assert result["success"]
        assert result["message"] == PENDING_CREATE_MESSAGE
        assert result["result"] == {"already_pending": True}
        assert oracle.calls == []

    def test_create_program_scale_mismatch(self, context):
        _, result = _run_tool("create_program", {"description": "a 5000000 sqm hotel"}, context)
        assert not result["success"]
        assert result["result"]["needs_clarification"]
        assert any(label.startswith("Keep 5.0M m²") for label in result["result"]["options"])
        assert result["proposals"] == []

    def test_parse_brief_skips_when_create_pending(self, context):
        _, result = _run_tool("parse_brief", {"brief_text": "Lobby 100 m²"}, context,
                              proposals=[_pending_create()])
        assert result["result"] == {"already_pending": True}


class TestUnfoldTool:
    def test_waits_for_pending_create_on_empty_project(self, empty_snapshot):
        context = build_context("unfold", empty_snapshot)
        _, result = _run_tool("unfold_area", {"area_name": "Lobby"}, context, proposals=[_pending_create()])
        assert result["success"]
        assert result["result"] == {"waiting_for_accept": True}
        assert result["message"].startswith("Create proposal is pending.")

    def test_unknown_area_id(self, context):
        _, result = _run_tool("unfold_area", {"area_id": "missing"}, context)
        assert result["error"] == "Area 'missing' does not exist."

    def test_nothing_to_unfold(self, context):
        _, result = _run_tool("unfold_area", {}, context)
        assert not result["success"]
        assert result["error"].startswith("Could not find area(s) to unfold.")

    def test_unfold_by_name(self, context, mock_config):
        _, result = _run_tool("unfold_area", {"area_name": "lobby"}, context,
                              oracle=ScriptedJsonOracle(SPLIT_RESPONSE))
        assert result["success"]
        assert result["result"] == {"unfolded_count": 1, "total_areas": 1}
        assert result["proposals"][0]["source_node_id"] == "n2"

    def test_unfolds_members_of_selected_group(self, snapshot, mock_config):
        context = build_context("unfold", snapshot, selected_group_ids=["g1"])
        oracle = ScriptedJsonOracle(SPLIT_RESPONSE, SPLIT_RESPONSE)
        _, result = _run_tool("unfold_area", {}, context, oracle=oracle)
        assert result["result"] == {"unfolded_count": 2, "total_areas": 2}
        assert [p["source_node_id"] for p in result["proposals"]] == ["n3", "n4"]


class TestOrganizeAndScaleTools:
    def test_organize_all_areas_by_function(self, context):
        _, result = _run_tool("organize_areas", {"strategy": "functional"}, context)
        assert result["success"]
        groups = result["proposals"][0]["groups"]
        assert [g["name"] for g in groups] == ["Guest", "Circulation", "Toilets & Sanitary", "Storage"]

    def test_scale_targets_by_id(self, context):
        _, result = _run_tool(
            "scale_areas", {"operation": "set", "value": 1080, "target_area_ids": ["n2", "n4"]}, context
        )
        updates = result["proposals"][0]["updates"]
        assert {u["node_id"]: u["changes"]["area_per_unit"] for u in updates} == {"n2": 1000, "n4": 80}

    def test_scale_increase_by_sqm(self, context):
        _, result = _run_tool(
            "scale_areas", {"operation": "increase", "value": 100, "unit": "sqm", "target_area_ids": ["n2"]},
            context,
        )
        assert result["proposals"][0]["updates"][0]["changes"]["area_per_unit"] == 600

    def test_scale_decrease_below_zero(self, context):
        _, result = _run_tool(
            "scale_areas", {"operation": "decrease", "value": 1000, "unit": "sqm", "target_area_ids": ["n2"]},
            context,
        )
        assert result["error"] == "Cannot decrease by 1000 m²: selection totals 500 m²."

    def test_scale_rejected_percent_fails_the_call(self, context):
        _, result = _run_tool(
            "scale_areas", {"operation": "decrease", "value": 100, "unit": "percent", "target_area_ids": ["n2"]},
            context,
        )
        assert result["success"] is False
        assert result["error"] == "percent must be greater than -100"
        assert result["proposals"] == []

    def test_scale_percent_defaults(self, context):
        _, result = _run_tool("scale_areas", {"operation": "decrease", "value": 10}, context)
        assert result["result"]["unit"] == "percent"
        updates = result["proposals"][0]["updates"]
        assert [u["changes"]["area_per_unit"] for u in updates] == [27, 450, 18, 36]

    def test_scale_unknown_target(self, context):
        _, result = _run_tool("scale_areas", {"operation": "set", "value": 10, "target_area_ids": ["zz"]}, context)
        assert result["error"] == "Unknown area id(s): zz"


class TestGroupTools:
    def test_split_group_by_name(self, context):
        _, result = _run_tool("split_group", {"group_name": "guest", "number_of_groups": 4}, context)
        assert result["message"] == (
            'Will split "Guest Wing" (11 units) into 4 groups (~2 units each, ~200m² each)'
        )
        proposal = result["proposals"][0]
        assert proposal["type"] == "split_group_equal"
        assert proposal["group_id"] == "g2"
        assert proposal["parts"] == 4

    def test_split_group_uses_selected_group(self, snapshot):
        context = build_context("split", snapshot, selected_group_ids=["g1"])
        _, result = _run_tool("split_group", {"number_of_groups": 2, "naming_pattern": "Zone"}, context)
        assert result["proposals"][0]["group_id"] == "g1"
        assert result["proposals"][0]["name_suffix"] == "Zone"

    def test_split_group_needs_a_group(self, context):
        _, result = _run_tool("split_group", {"number_of_groups": 2}, context)
        assert result["error"] == (
            "Could not find group to split. Please specify group_id, group_name, or select a group."
        )

    def test_proportions_must_sum_to_100(self, context):
        _, result = _run_tool("split_group_by_proportion", {
            "group_id": "g1",
            "proportions": [{"name": "Phase 1", "percent": 60}, {"name": "Phase 2", "percent": 30}],
        }, context)
        assert result["error"] == "Proportions must add up to 100% (got 90%)."

    def test_split_by_proportion(self, context):
        _, result = _run_tool("split_group_by_proportion", {
            "group_id": "g1",
            "proportions": [{"name": "Phase 1", "percent": 60}, {"name": "Phase 2", "percent": "40"}],
        }, context)
        proposal = result["proposals"][0]
        assert proposal["type"] == "split_group_proportion"
        assert proposal["proportions"] == [{"name": "Phase 1", "percent": 60}, {"name": "Phase 2", "percent": 40}]

    def test_regroup_by_function(self, context):
        _, result = _run_tool("regroup_by_function", {"group_id": "g1"}, context)
        groups = result["proposals"][0]["groups"]
        assert [g["name"] for g in groups] == ["Toilets & Sanitary", "Storage"]
        assert result["message"].startswith('Will reorganize "Back of House" into 2 functional groups')

    def test_assign_to_group_skips_existing_members(self, context):
        _, result = _run_tool("assign_to_group", {"group_id": "g1", "area_ids": ["n1", "n3"]}, context)
        assert result["proposals"][0]["node_ids"] == ["n1"]
        assert result["message"] == 'Assign Guest Rooms to "Back of House"'

    def test_assign_already_members(self, context):
        _, result = _run_tool("assign_to_group", {"group_id": "g1", "area_ids": ["n3"]}, context)
        assert result["error"] == 'All selected areas are already in "Back of House".'

    def test_merge_group_areas(self, context):
        _, result = _run_tool("merge_group_areas", {"group_id": "g1", "new_area_name": "BOH"}, context)
        assert result["message"] == 'Will merge 2 areas of "Back of House" into "BOH" (80 m²)'
        assert result["result"] == {"merged_count": 2, "total_area": 80}


class TestAreaTools:
    def test_split_area_by_quantity(self, context):
        _, result = _run_tool("split_area_by_quantity", {"area_id": "n1", "quantities": [3, 7]}, context)
        assert result["proposals"][0]["quantities"] == [3, 7]

    def test_split_area_by_quantity_wrong_sum(self, context):
        _, result = _run_tool("split_area_by_quantity", {"area_id": "n1", "quantities": [3, 6]}, context)
        assert not result["success"]
        assert "quantities sum (9) must equal source count (10)" in result["error"]

    def test_merge_areas(self, context):
        _, result = _run_tool("merge_areas", {"area_ids": ["n2", "n4"], "result_name": "Hall"}, context)
        assert result["result"] == {"merged_area": 540}
        assert result["proposals"][0]["result"]["name"] == "Hall"

    def test_merge_needs_two(self, context):
        _, result = _run_tool("merge_areas", {"area_ids": ["n2"]}, context)
        assert "merge requires at least 2 sourceNodeIds" in result["error"]

    def test_add_notes(self, context):
        _, result = _run_tool("add_notes", {"notes": [
            {"target_type": "area", "target_id": "n2", "content": "Double height"},
        ]}, context)
        note = result["proposals"][0]["notes"][0]
        assert note["target_name"] == "Lobby"
        assert result["message"] == "Add 1 note to Lobby"

    def test_add_notes_unknown_group(self, context):
        _, result = _run_tool("add_notes", {"notes": [
            {"target_type": "group", "target_id": "gx", "content": "Quiet zone"},
        ]}, context)
        assert result["error"] == "Group 'gx' does not exist."


def _state(*calls, proposals=None):
    return {
        "messages": [{"role": "user", "content": "go"}],
        "proposals": list(proposals or []),
        "tool_call_log": [],
        "pending_tool_calls": list(calls),
        "iteration": 1,
        "status": "running",
        "final_message": "",
    }


def _config(context, cancel_event=None, oracle=None):
    return {"configurable": {
        "context": context,
        "registry": default_registry(oracle or ScriptedJsonOracle()),
        "cancel_event": cancel_event,
    }}


class TestToolsNode:
    def test_runs_calls_in_order_and_logs(self, context):
        state = _state(
            tool_call("find_area", {"query": "lobby"}, call_id="a"),
            tool_call("merge_areas", {"area_ids": ["n2", "n4"]}, call_id="b"),
        )
        update = asyncio.run(tools_node(state, _config(context)))
        assert [m["tool_call_id"] for m in update["messages"][1:]] == ["a", "b"]
        assert [entry["tool"] for entry in update["tool_call_log"]] == ["find_area", "merge_areas"]
        assert update["tool_call_log"][1]["args"] == {"area_ids": ["n2", "n4"]}
        assert len(update["proposals"]) == 1
        assert update["pending_tool_calls"] == []
        assert update["status"] == "running"

    def test_later_calls_see_earlier_proposals(self, context, hotel_intent_response, mock_config):
        state = _state(
            tool_call("create_program", {"description": "a hotel"}, call_id="a"),
            tool_call("create_program", {"description": "another hotel"}, call_id="b"),
        )
        oracle = ScriptedJsonOracle(hotel_intent_response)
        update = asyncio.run(tools_node(state, _config(context, oracle=oracle)))
        assert len(update["proposals"]) == 1
        assert json.loads(update["messages"][-1]["content"])["result"] == {"already_pending": True}

    def test_failed_tool_does_not_stop_the_batch(self, context):
        state = _state(
            tool_call("unfold_area", {"area_id": "missing"}, call_id="a"),
            tool_call("respond_to_user", {"message": "Could not find it"}, call_id="b"),
        )
        update = asyncio.run(tools_node(state, _config(context)))
        first = json.loads(update["messages"][1]["content"])
        assert not first["success"]
        assert update["status"] == "done"
        assert update["final_message"] == "Could not find it"

    def test_cancel_after_batch_keeps_proposals(self, context):
        event = asyncio.Event()
        event.set()
        state = _state(tool_call("merge_areas", {"area_ids": ["n2", "n4"]}))
        update = asyncio.run(tools_node(state, _config(context, cancel_event=event)))
        assert update["status"] == "cancelled"
        assert len(update["proposals"]) == 1

    def test_respond_wins_over_cancel(self, context):
        event = asyncio.Event()
        event.set()
        state = _state(tool_call("respond_to_user", {"message": "Done"}))
        update = asyncio.run(tools_node(state, _config(context, cancel_event=event)))
        assert update["status"] == "done"
