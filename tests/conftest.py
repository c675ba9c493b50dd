"""Shared fixtures for the AreaForge test suite."""

import json

import pytest
from unittest.mock import patch

from areaforge.context import build_context


class ScriptedJsonOracle:
    """Extraction oracle stand-in: returns scripted JSON objects in order.

    An Exception instance in the script is raised instead of returned.
    """

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    async def generate_json(self, system_prompt, user_prompt, validate=None):
        self.calls.append((system_prompt, user_prompt))
        data = self.responses.pop(0)
        if isinstance(data, Exception):
            raise data
        if validate is not None:
            validate(data)
        return data


class ScriptedAgentOracle:
    """Tool-calling oracle stand-in: returns scripted replies, then a plain "Done."."""

    def __init__(self, *replies):
        self.replies = list(replies)
        self.calls = []

    async def complete(self, messages):
        self.calls.append(list(messages))
        if not self.replies:
            return {"content": "Done.", "tool_calls": []}
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


def tool_call(name, args=None, call_id=None, raw=None):
    """A tool call as the oracle returns it; ``raw`` overrides the argument text."""
    return {
        "id": call_id or f"call_{name}",
        "name": name,
        "arguments": raw if raw is not None else json.dumps(args or {}),
    }


def reply(*calls, content=""):
    return {"content": content, "tool_calls": list(calls)}


@pytest.fixture
def json_oracle():
    """Factory for scripted extraction oracles."""
    return ScriptedJsonOracle


@pytest.fixture
def agent_oracle():
    """Factory for scripted tool-calling oracles."""
    return ScriptedAgentOracle


@pytest.fixture
def snapshot():
    """Small hotel project: four areas in two groups."""
    return {
        "nodes": {
            "n1": {"id": "n1", "name": "Guest Rooms", "area_per_unit": 30, "count": 10},
            "n2": {"id": "n2", "name": "Lobby", "area_per_unit": 500, "count": 1},
            "n3": {"id": "n3", "name": "Staff Toilets", "area_per_unit": 20, "count": 2},
            "n4": {"id": "n4", "name": "Storage Room", "area_per_unit": 40, "count": 1},
        },
        "groups": {
            "g1": {"id": "g1", "name": "Back of House", "color": "#ef4444", "members": ["n3", "n4"]},
            "g2": {"id": "g2", "name": "Guest Wing", "color": "#3b82f6", "members": ["n1", "n2"]},
        },
        "project_notes": "",
    }


@pytest.fixture
def empty_snapshot():
    return {"nodes": {}, "groups": {}, "project_notes": ""}


@pytest.fixture
def context(snapshot):
    """ActionContext over the snapshot with nothing selected."""
    return build_context("test", snapshot)


@pytest.fixture
def hotel_intent_response():
    """Extraction-oracle answer for "create a hotel"."""
    return {
        "message": "Hotel program",
        "intent": {
            "type": "create_program",
            "target_total": 10000,
            "areas": [
                {"name": "Rooms", "ratio": 0.7, "count": 100, "group_hint": "Accommodation"},
                {"name": "Lobby", "ratio": 0.3},
            ],
        },
    }


@pytest.fixture
def mock_config(tmp_path):
    """Patch the config singleton with test-friendly values."""
    test_config = {
        "agent_model": "claude-sonnet-4-5",
        "extraction_model": "gemini-2.0-flash",
        "max_iterations": 5,
        "detail_level": "typical",
        "min_unfold_area": 10,
        "rescale_tolerance": 0.01,
        "guidance_enabled": True,
        "hitl_enabled": False,
        "output_path": str(tmp_path / "output" / "turn.md"),
    }
    with patch("areaforge.config._config", test_config):
        yield test_config
