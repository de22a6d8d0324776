"""MCP tool definitions for the output feed.

Each tool does exactly one thing. All exceptions are caught at the
tool boundary and returned as "Error: ..." strings so the MCP protocol
never sees an uncaught exception.
"""

import datetime
import json
import logging

from fastmcp import FastMCP

from .client import SubmissionClient
from .errors import ValidationError
from .feed import FeedController
from .models import FeedFilter, Record

logger = logging.getLogger(__name__)

PREVIEW_QUESTIONS = 3


def _format_date(value: datetime.datetime) -> str:
    """Format like "Oct 5, 2026, 09:30 AM"."""
    return f"{value:%b} {value.day}, {value.year}, {value:%I:%M %p}"


def _summarize_output(record: Record) -> dict:
    """Compact view of an output: first few questions plus a count."""
    questions = list(record.content.questions)
    summary = {
        "id": record.id,
        "tool_name": record.tool_name,
        "difficulty": record.content.difficulty,
        "created_at": _format_date(record.created_at),
        "question_count": len(questions),
        "questions": questions[:PREVIEW_QUESTIONS],
    }
    hidden = len(questions) - PREVIEW_QUESTIONS
    if hidden > 0:
        summary["more"] = f"+{hidden} more questions"
    return summary


def _parse_date(value: str) -> datetime.date | None:
    if not value.strip():
        return None
    try:
        return datetime.date.fromisoformat(value.strip())
    except ValueError as e:
        raise ValidationError(f"date must be YYYY-MM-DD, got {value!r}", field="date") from e


def _validation_error(e: ValidationError) -> str:
    """Name the offending field so the message can be shown next to it."""
    if e.field:
        return f"Error: {e.field}: {e}"
    return f"Error: {e}"


def _render_view(controller: FeedController) -> str:
    state = controller.state
    return json.dumps(
        {
            "page": state.page,
            "total_pages": state.total_pages,
            "pagination": controller.pagination_label,
            "filter": state.filter.to_dict(),
            "realtime_enabled": state.realtime_enabled,
            "loading": state.loading,
            "outputs": [_summarize_output(r) for r in state.items],
        },
        default=str,
    )


def register_tools(mcp: FastMCP, controller: FeedController, submitter: SubmissionClient) -> None:
    """Register all output feed tools on the given MCP server instance."""

    @mcp.tool()
    async def submit_output(tool_name: str, questions: list[str], difficulty: str = "easy") -> str:
        """Submit a new output.

        Args:
            tool_name: Name of the tool that produced the output.
            questions: Questions in the output. Blank entries are dropped.
            difficulty: One of "easy", "medium" or "hard" (default "easy").

        Returns a confirmation with the stored output's id. The new output
        shows up in the feed through the realtime channel or a refresh.
        """
        try:
            record = await submitter.submit(tool_name, questions, difficulty)
            return f"OK: stored output {record.id} ({record.tool_name})"
        except ValidationError as e:
            return _validation_error(e)
        except Exception as e:
            logger.error("submit_output failed: %s", e, exc_info=True)
            return f"Error: {e}"

    @mcp.tool()
    async def get_outputs() -> str:
        """Show the current page of outputs.

        Returns a JSON object with page, total_pages, a "Page X of Y" label,
        the active filter, the realtime flag and the summarized outputs.
        """
        try:
            return _render_view(controller)
        except Exception as e:
            logger.error("get_outputs failed: %s", e, exc_info=True)
            return f"Error: {e}"

    @mcp.tool()
    async def apply_filter(tool: str = "", date: str = "") -> str:
        """Filter outputs by tool name substring and/or creation date.

        Args:
            tool: Substring of the tool name (empty for any).
            date: Creation date as YYYY-MM-DD (empty for any).

        Jumps back to page 1 and returns the new view.
        """
        try:
            feed_filter = FeedFilter(tool=tool, date=_parse_date(date))
            await controller.set_filter(feed_filter)
            return _render_view(controller)
        except ValidationError as e:
            return _validation_error(e)
        except Exception as e:
            logger.error("apply_filter failed: %s", e, exc_info=True)
            return f"Error: {e}"

    @mcp.tool()
    async def clear_filters() -> str:
        """Remove all filters and return to page 1."""
        try:
            await controller.clear_filters()
            return _render_view(controller)
        except Exception as e:
            logger.error("clear_filters failed: %s", e, exc_info=True)
            return f"Error: {e}"

    @mcp.tool()
    async def go_to_page(page: int) -> str:
        """Show a specific page. Out-of-range pages are clamped.

        Args:
            page: 1-based page number.
        """
        try:
            await controller.set_page(page)
            return _render_view(controller)
        except Exception as e:
            logger.error("go_to_page failed: %s", e, exc_info=True)
            return f"Error: {e}"

    @mcp.tool()
    async def next_page() -> str:
        """Show the next page."""
        try:
            await controller.next_page()
            return _render_view(controller)
        except Exception as e:
            logger.error("next_page failed: %s", e, exc_info=True)
            return f"Error: {e}"

    @mcp.tool()
    async def previous_page() -> str:
        """Show the previous page."""
        try:
            await controller.previous_page()
            return _render_view(controller)
        except Exception as e:
            logger.error("previous_page failed: %s", e, exc_info=True)
            return f"Error: {e}"

    @mcp.tool()
    async def refresh_outputs() -> str:
        """Reload the current page with the current filters."""
        try:
            await controller.refresh()
            return _render_view(controller)
        except Exception as e:
            logger.error("refresh_outputs failed: %s", e, exc_info=True)
            return f"Error: {e}"

    @mcp.tool()
    async def set_realtime(enabled: bool) -> str:
        """Turn realtime notifications for new outputs on or off.

        Args:
            enabled: True to listen for new outputs, False to stop.

        Returns "OK" on success or an error message.
        """
        try:
            await controller.set_realtime(enabled)
            return "OK"
        except Exception as e:
            logger.error("set_realtime failed: %s", e, exc_info=True)
            return f"Error: {e}"

    @mcp.tool()
    async def list_notifications() -> str:
        """List pending notifications.

        Returns a JSON list of objects with id, level, message, action and
        count. Notifications with action "view_latest" can be accepted with
        view_new_outputs.
        """
        try:
            return json.dumps([n.to_dict() for n in controller.notifications])
        except Exception as e:
            logger.error("list_notifications failed: %s", e, exc_info=True)
            return f"Error: {e}"

    @mcp.tool()
    async def dismiss_notification(notification_id: int) -> str:
        """Dismiss a notification.

        Args:
            notification_id: ID from list_notifications.
        """
        try:
            if not controller.dismiss_notification(notification_id):
                return f"Error: Notification {notification_id} not found"
            return "OK"
        except Exception as e:
            logger.error("dismiss_notification failed: %s", e, exc_info=True)
            return f"Error: {e}"

    @mcp.tool()
    async def view_new_outputs(notification_id: int) -> str:
        """Accept a new-output offer: clear filters, go to page 1 and refresh.

        Args:
            notification_id: ID of a "view_latest" notification.
        """
        try:
            if not any(n.id == notification_id for n in controller.notifications):
                return f"Error: Notification {notification_id} not found"
            await controller.accept_notification(notification_id)
            return _render_view(controller)
        except Exception as e:
            logger.error("view_new_outputs failed: %s", e, exc_info=True)
            return f"Error: {e}"
