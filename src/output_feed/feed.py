"""Feed controller: a paged, filtered view of the user's outputs kept live.

Two sources update the displayed list: fetches issued for the current
(page, filter) and insert events pushed by the realtime channel. Fetch
results replace the list wholesale and only the latest request is ever
applied. Pushed records are spliced in only when the user is looking at
the unfiltered first page; anywhere else they turn into an offer to jump
there, so a filtered or deeper page never shows a record that does not
belong to it.
"""

import itertools
import logging
from dataclasses import dataclass, field

from .client import RecordStoreClient
from .errors import DecodeError, NetworkError
from .models import FeedFilter, Record, Session
from .realtime import RealtimeChannel, Subscription

logger = logging.getLogger(__name__)

VIEW_LATEST = "view_latest"
MAX_NOTIFICATIONS = 20


@dataclass
class Notification:
    """A dismissible message for the user, optionally carrying an action."""

    id: int
    level: str
    message: str
    action: str | None = None
    count: int = 1

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "level": self.level,
            "message": self.message,
            "action": self.action,
            "count": self.count,
        }


@dataclass
class FeedState:
    """Paging, filter and display state owned by the controller."""

    page: int = 1
    filter: FeedFilter = field(default_factory=FeedFilter)
    total_pages: int = 1
    items: list[Record] = field(default_factory=list)
    realtime_enabled: bool = True
    loading: bool = False


class FeedController:
    """Keeps one page of outputs consistent with fetches and pushed inserts.

    All methods are meant to run on a single event loop. No locking is
    needed, but fetches may complete in any order, so each one carries a
    sequence number and only the most recent is applied.
    """

    def __init__(
        self,
        store: RecordStoreClient,
        channel: RealtimeChannel,
        session: Session,
        *,
        page_size: int | None = None,
        realtime_enabled: bool = True,
    ):
        self._store = store
        self._channel = channel
        self._session: Session | None = session
        self._page_size = page_size
        self.state = FeedState(realtime_enabled=realtime_enabled)
        self._fetch_seq = 0
        # (page, filter) that state.items was actually fetched for
        self._shown: tuple[int, FeedFilter] | None = None
        self._subscription: Subscription | None = None
        self._notifications: list[Notification] = []
        self._notification_ids = itertools.count(1)

    @property
    def notifications(self) -> list[Notification]:
        return list(self._notifications)

    @property
    def subscribed(self) -> bool:
        return self._subscription is not None

    @property
    def pagination_label(self) -> str:
        return f"Page {self.state.page} of {self.state.total_pages}"

    async def start(self) -> None:
        """Load the first page and, if enabled, start listening for inserts."""
        await self.refresh()
        if self.state.realtime_enabled:
            await self._subscribe()

    async def close(self) -> None:
        await self._teardown()

    # --- Paging and filtering ---

    async def set_filter(self, new_filter: FeedFilter) -> bool:
        self.state.page = 1
        self.state.filter = new_filter
        return await self._fetch()

    async def clear_filters(self) -> bool:
        return await self.set_filter(FeedFilter())

    async def set_page(self, page: int) -> bool:
        self.state.page = min(max(page, 1), self.state.total_pages)
        return await self._fetch()

    async def next_page(self) -> bool:
        return await self.set_page(self.state.page + 1)

    async def previous_page(self) -> bool:
        return await self.set_page(self.state.page - 1)

    async def refresh(self) -> bool:
        return await self._fetch()

    async def _fetch(self) -> bool:
        """Fetch the current (page, filter) and apply it if still current.

        Returns True when the result was applied. Failures leave the
        displayed page untouched and raise an error notification.
        """
        if self._session is None:
            logger.warning("Ignoring fetch while signed out")
            return False

        self._fetch_seq += 1
        seq = self._fetch_seq
        page, feed_filter = self.state.page, self.state.filter
        self.state.loading = True

        try:
            result = await self._store.fetch_page(page, feed_filter)
        except (NetworkError, DecodeError) as e:
            if seq != self._fetch_seq:
                logger.debug("Discarding stale failure for page %d", page)
                return False
            logger.warning("Loading page %d failed: %s", page, e)
            self._notify("error", f"Failed to load outputs: {e}")
            return False
        finally:
            if seq == self._fetch_seq:
                self.state.loading = False

        if seq != self._fetch_seq:
            logger.debug("Discarding stale result for page %d", page)
            return False

        self.state.items = list(result.items)
        self.state.total_pages = result.total_pages
        self._shown = (page, feed_filter)
        if page == 1 and feed_filter.is_empty:
            self._drop_offers()
        return True

    # --- Realtime ---

    async def set_realtime(self, enabled: bool) -> None:
        self.state.realtime_enabled = enabled
        if enabled:
            if self._subscription is None:
                await self._subscribe()
        else:
            await self._teardown()

    def on_pushed_record(self, record: Record) -> None:
        """Reconcile a pushed insert with the displayed page."""
        if self._subscription is None or not self.state.realtime_enabled:
            logger.debug("Ignoring pushed output %s after teardown", record.id)
            return
        if any(item.id == record.id for item in self.state.items):
            logger.debug("Pushed output %s is already displayed", record.id)
            return

        if self._showing_latest():
            self._merge(record)
            self._notify("info", f"New output created: {record.tool_name}")
        else:
            self._offer_latest()

    def _showing_latest(self) -> bool:
        """True when both the requested and the displayed page are the
        unfiltered first page."""
        if self.state.page != 1 or not self.state.filter.is_empty or self._shown is None:
            return False
        shown_page, shown_filter = self._shown
        return shown_page == 1 and shown_filter.is_empty

    def _merge(self, record: Record) -> None:
        items = [record, *self.state.items]
        if self._page_size is None:
            # Page size unknown: assume the page was full.
            if len(items) > 1:
                items.pop()
        else:
            del items[self._page_size :]
        self.state.items = items

    async def _subscribe(self) -> None:
        if self._session is None:
            return
        subscription: Subscription | None = None

        def deliver(record: Record) -> None:
            if subscription is not None and subscription is self._subscription:
                self.on_pushed_record(record)

        subscription = await self._channel.subscribe(self._session.user_id, deliver)
        self._subscription = subscription

    async def _teardown(self) -> None:
        subscription, self._subscription = self._subscription, None
        await self._channel.unsubscribe(subscription)

    # --- Session ---

    async def update_session(self, session: Session) -> None:
        """Apply a refreshed or new session from the identity provider."""
        previous, self._session = self._session, session
        self._store.set_token(session.access_token)

        if previous is not None and previous.user_id == session.user_id:
            await self._channel.set_access_token(session.access_token)
            return
        # Leave the old user's topic before the new token is used anywhere.
        await self._teardown()
        await self._channel.set_access_token(session.access_token)
        self._reset()
        await self.start()

    async def sign_out(self) -> None:
        await self._teardown()
        self._session = None
        self._reset()

    def _reset(self) -> None:
        # Invalidates any fetch still in flight.
        self._fetch_seq += 1
        self._shown = None
        self.state = FeedState(realtime_enabled=self.state.realtime_enabled)
        self._notifications.clear()

    # --- Notifications ---

    def _notify(self, level: str, message: str, action: str | None = None) -> Notification:
        notification = Notification(
            id=next(self._notification_ids), level=level, message=message, action=action
        )
        self._notifications.append(notification)
        del self._notifications[:-MAX_NOTIFICATIONS]
        return notification

    def _offer_latest(self) -> None:
        for notification in self._notifications:
            if notification.action == VIEW_LATEST:
                notification.count += 1
                notification.message = f"{notification.count} new outputs available!"
                return
        self._notify("info", "New output available!", action=VIEW_LATEST)

    def _drop_offers(self) -> None:
        self._notifications = [n for n in self._notifications if n.action != VIEW_LATEST]

    def dismiss_notification(self, notification_id: int) -> bool:
        before = len(self._notifications)
        self._notifications = [n for n in self._notifications if n.id != notification_id]
        return len(self._notifications) != before

    async def accept_notification(self, notification_id: int) -> bool:
        """Run a notification's action. For new-output offers this clears
        filters, jumps to page 1 and refreshes."""
        notification = next((n for n in self._notifications if n.id == notification_id), None)
        if notification is None:
            return False
        self.dismiss_notification(notification_id)
        if notification.action == VIEW_LATEST:
            self.state.filter = FeedFilter()
            self.state.page = 1
            return await self.refresh()
        return True
