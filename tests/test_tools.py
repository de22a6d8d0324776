"""Tests for tools.py — tool registration and error boundaries.

These tests verify that:
1. Tools catch all exceptions and return 'Error: ...' strings
2. Tools render the feed view and drive the controller correctly
3. The output summary helpers format dates and question previews
"""

import datetime
import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from output_feed.client import SubmissionClient
from output_feed.config import Config
from output_feed.errors import NetworkError, SubmissionError
from output_feed.feed import FeedController
from output_feed.models import FeedFilter, Page, Record, Session
from output_feed.tools import _format_date, _summarize_output, register_tools

# We don't need a real FastMCP server — we just need to capture the
# registered tool functions so we can call them directly.


class FakeMCP:
    """Minimal stand-in that captures tool registrations."""

    def __init__(self):
        self.tools: dict[str, object] = {}

    def tool(self):
        def decorator(fn):
            self.tools[fn.__name__] = fn
            return fn

        return decorator


def rec(id, tool_name="quizmaster", questions=("Q1",), difficulty="easy"):
    return Record.from_row(
        {
            "id": id,
            "user_id": "user-1",
            "tool_name": tool_name,
            "output_content": {"questions": list(questions), "difficulty": difficulty},
            "created_at": "2026-10-05T09:30:00Z",
        }
    )


@pytest.fixture
def config():
    return Config(
        OUTPUT_API_BASE_URL="https://api.example.com/",
        OUTPUT_FEED_ACCESS_TOKEN="tok",
        OUTPUT_FEED_USER_ID="user-1",
        SUPABASE_URL="https://proj.supabase.co",
        SUPABASE_ANON_KEY="anon",
    )


@pytest.fixture
def store():
    store = MagicMock()
    store.fetch_page = AsyncMock(return_value=Page(items=[rec(1), rec(2)], total_pages=3))
    return store


@pytest.fixture
def channel():
    channel = MagicMock()
    channel.subscribe = AsyncMock(side_effect=lambda user_id, on_insert: SimpleNamespace(on_insert=on_insert))
    channel.unsubscribe = AsyncMock()
    return channel


@pytest.fixture
def controller(store, channel):
    return FeedController(store, channel, Session(access_token="tok", user_id="user-1"))


@pytest.fixture
def submitter(config):
    return SubmissionClient(config)


@pytest.fixture
def tools(controller, submitter):
    """Register tools on a fake MCP and return them as a dict."""
    fake_mcp = FakeMCP()
    register_tools(fake_mcp, controller, submitter)
    return fake_mcp.tools


# --- Helpers ---


class TestFormatDate:
    def test_morning(self):
        assert _format_date(datetime.datetime(2026, 10, 5, 9, 30)) == "Oct 5, 2026, 09:30 AM"

    def test_afternoon(self):
        assert _format_date(datetime.datetime(2026, 1, 15, 17, 5)) == "Jan 15, 2026, 05:05 PM"


class TestSummarizeOutput:
    def test_short_output(self):
        summary = _summarize_output(rec(1, questions=("A?", "B?"), difficulty="hard"))
        assert summary["difficulty"] == "hard"
        assert summary["question_count"] == 2
        assert summary["questions"] == ["A?", "B?"]
        assert "more" not in summary

    def test_long_output_is_truncated(self):
        summary = _summarize_output(rec(1, questions=("A", "B", "C", "D", "E")))
        assert summary["questions"] == ["A", "B", "C"]
        assert summary["question_count"] == 5
        assert summary["more"] == "+2 more questions"


# --- Registration ---


def test_all_tools_registered(tools):
    assert set(tools) == {
        "submit_output",
        "get_outputs",
        "apply_filter",
        "clear_filters",
        "go_to_page",
        "next_page",
        "previous_page",
        "refresh_outputs",
        "set_realtime",
        "list_notifications",
        "dismiss_notification",
        "view_new_outputs",
    }


# --- submit_output ---


@pytest.mark.asyncio
async def test_submit_output_success(tools, submitter):
    submitter.submit = AsyncMock(return_value=rec(9, tool_name="Quiz Tool"))

    result = await tools["submit_output"]("Quiz Tool", ["Q1"], "medium")

    assert result == "OK: stored output 9 (Quiz Tool)"
    submitter.submit.assert_awaited_once_with("Quiz Tool", ["Q1"], "medium")


@pytest.mark.asyncio
async def test_submit_output_validation_error(tools, submitter):
    submitter._client.post = AsyncMock()

    result = await tools["submit_output"]("   ", ["Q1"])

    assert result == "Error: tool_name: tool name required"
    submitter._client.post.assert_not_called()


@pytest.mark.asyncio
async def test_submit_output_all_blank_questions(tools):
    result = await tools["submit_output"]("tool", ["", "  "])
    assert result == "Error: questions: at least one question required"


@pytest.mark.asyncio
async def test_submit_output_failure_leaves_feed_untouched(tools, submitter, controller, store):
    await controller.start()
    store.fetch_page.reset_mock()
    submitter.submit = AsyncMock(side_effect=SubmissionError("Failed to submit output (HTTP 500)", 500))

    result = await tools["submit_output"]("tool", ["Q1"])

    assert result == "Error: Failed to submit output (HTTP 500)"
    assert [r.id for r in controller.state.items] == [1, 2]
    store.fetch_page.assert_not_awaited()


# --- Feed view ---


@pytest.mark.asyncio
async def test_get_outputs(tools, controller):
    await controller.start()

    view = json.loads(await tools["get_outputs"]())

    assert view["page"] == 1
    assert view["total_pages"] == 3
    assert view["pagination"] == "Page 1 of 3"
    assert view["filter"] == {"tool": "", "date": None}
    assert view["realtime_enabled"] is True
    assert [o["id"] for o in view["outputs"]] == [1, 2]
    assert view["outputs"][0]["created_at"] == "Oct 5, 2026, 09:30 AM"


@pytest.mark.asyncio
async def test_apply_filter(tools, store):
    store.fetch_page.return_value = Page(items=[rec(1)], total_pages=3)

    view = json.loads(await tools["apply_filter"](tool="quiz", date="2026-10-05"))

    store.fetch_page.assert_awaited_with(1, FeedFilter(tool="quiz", date=datetime.date(2026, 10, 5)))
    assert view["filter"] == {"tool": "quiz", "date": "2026-10-05"}
    assert [o["id"] for o in view["outputs"]] == [1]


@pytest.mark.asyncio
async def test_apply_filter_bad_date(tools, store):
    result = await tools["apply_filter"](date="05/10/2026")

    assert result.startswith("Error: date: date must be YYYY-MM-DD")
    store.fetch_page.assert_not_awaited()


@pytest.mark.asyncio
async def test_clear_filters(tools, controller, store):
    await tools["apply_filter"](tool="quiz")

    view = json.loads(await tools["clear_filters"]())

    assert view["filter"] == {"tool": "", "date": None}
    store.fetch_page.assert_awaited_with(1, FeedFilter())


@pytest.mark.asyncio
async def test_paging_tools(tools, controller):
    await controller.start()

    assert json.loads(await tools["go_to_page"](3))["page"] == 3
    assert json.loads(await tools["next_page"]())["page"] == 3
    assert json.loads(await tools["previous_page"]())["page"] == 2
    assert json.loads(await tools["refresh_outputs"]())["page"] == 2


@pytest.mark.asyncio
async def test_failed_fetch_surfaces_notification(tools, controller, store):
    await controller.start()
    store.fetch_page.side_effect = NetworkError("HTTP 503", status_code=503)

    view = json.loads(await tools["go_to_page"](2))
    notifications = json.loads(await tools["list_notifications"]())

    assert [o["id"] for o in view["outputs"]] == [1, 2]
    assert notifications[0]["level"] == "error"
    assert notifications[0]["message"] == "Failed to load outputs: HTTP 503"


@pytest.mark.asyncio
async def test_unexpected_error_becomes_error_string(tools, store):
    store.fetch_page.side_effect = RuntimeError("boom")

    assert await tools["refresh_outputs"]() == "Error: boom"


# --- Realtime and notifications ---


@pytest.mark.asyncio
async def test_set_realtime(tools, controller, channel):
    await controller.start()

    assert await tools["set_realtime"](False) == "OK"

    channel.unsubscribe.assert_awaited_once()
    assert controller.state.realtime_enabled is False


@pytest.mark.asyncio
async def test_view_new_outputs(tools, controller, channel, store):
    await controller.start()
    await controller.set_page(2)
    controller.on_pushed_record(rec(9))
    (offer,) = json.loads(await tools["list_notifications"]())

    view = json.loads(await tools["view_new_outputs"](offer["id"]))

    assert offer["action"] == "view_latest"
    assert view["page"] == 1
    assert json.loads(await tools["list_notifications"]()) == []


@pytest.mark.asyncio
async def test_view_new_outputs_unknown(tools):
    assert await tools["view_new_outputs"](99) == "Error: Notification 99 not found"


@pytest.mark.asyncio
async def test_dismiss_notification(tools, controller, store):
    store.fetch_page.side_effect = NetworkError("HTTP 500", status_code=500)
    await controller.refresh()
    (notification,) = controller.notifications

    assert await tools["dismiss_notification"](notification.id) == "OK"
    assert await tools["dismiss_notification"](notification.id) == (
        f"Error: Notification {notification.id} not found"
    )
