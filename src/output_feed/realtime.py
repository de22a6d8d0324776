"""Push notifications for newly inserted outputs.

Speaks the Supabase Realtime (Phoenix channel) protocol over a websocket.
One subscription is live per channel; it is scoped server-side to rows
whose ``user_id`` matches the subscribed user. Events missed while the
connection is down are not replayed.
"""

import asyncio
import contextlib
import inspect
import itertools
import json
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urlencode

import websockets

from .config import Config
from .errors import DecodeError
from .models import Record

logger = logging.getLogger(__name__)

InsertCallback = Callable[[Record], Awaitable[None] | None]

PROTOCOL_VERSION = "1.0.0"


@dataclass(eq=False)
class Subscription:
    """Handle for one subscription, returned by RealtimeChannel.subscribe()."""

    user_id: str
    topic: str
    on_insert: InsertCallback = field(repr=False)
    closed: bool = False
    _task: asyncio.Task | None = field(default=None, repr=False)
    _socket: Any = field(default=None, repr=False)

    @property
    def connected(self) -> bool:
        return self._socket is not None


class RealtimeChannel:
    """Per-user stream of insert events on the outputs table.

    Designed for a single logical subscription: subscribing again tears
    down the previous subscription first so no event is delivered twice.
    """

    def __init__(
        self,
        url: str,
        api_key: str,
        access_token: str,
        *,
        table: str = "ai_outputs",
        schema: str = "public",
        heartbeat_interval: float = 30.0,
        reconnect_delay: float = 5.0,
        connect: Callable[..., Any] = websockets.connect,
    ):
        self._url = url
        self._api_key = api_key
        self._access_token = access_token
        self._table = table
        self._schema = schema
        self._heartbeat_interval = heartbeat_interval
        self._reconnect_delay = reconnect_delay
        self._connect = connect
        self._refs = itertools.count(1)
        self._current: Subscription | None = None

    @classmethod
    def from_config(cls, config: Config, access_token: str | None = None) -> "RealtimeChannel":
        return cls(
            config.realtime_url,
            config.supabase_anon_key.get_secret_value(),
            access_token if access_token is not None else config.access_token.get_secret_value(),
            table=config.realtime_table,
            schema=config.realtime_schema,
            heartbeat_interval=config.heartbeat_interval,
            reconnect_delay=config.reconnect_delay,
        )

    @property
    def current(self) -> Subscription | None:
        return self._current

    @property
    def socket_url(self) -> str:
        query = urlencode({"apikey": self._api_key, "vsn": PROTOCOL_VERSION})
        return f"{self._url}?{query}"

    async def subscribe(self, user_id: str, on_insert: InsertCallback) -> Subscription:
        """Start delivering this user's insert events to ``on_insert``.

        Must be called from a running event loop; the connection is kept in
        a background task until unsubscribe().
        """
        if self._current is not None:
            await self.unsubscribe(self._current)

        topic = f"realtime:{self._table}_{user_id}"
        subscription = Subscription(user_id=user_id, topic=topic, on_insert=on_insert)
        subscription._task = asyncio.create_task(self._run(subscription), name=f"realtime-{topic}")
        self._current = subscription
        logger.info("Subscribed to %s", topic)
        return subscription

    async def unsubscribe(self, subscription: Subscription | None) -> None:
        """Tear down a subscription. Safe to call repeatedly."""
        if subscription is None or subscription.closed:
            return
        subscription.closed = True
        if self._current is subscription:
            self._current = None

        task = subscription._task
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        logger.info("Unsubscribed from %s", subscription.topic)

    async def set_access_token(self, token: str) -> None:
        """Use a refreshed token for future joins and the live channel."""
        self._access_token = token
        subscription = self._current
        if subscription is None or subscription._socket is None:
            return
        try:
            await subscription._socket.send(
                self._frame(subscription.topic, "access_token", {"access_token": token})
            )
        except websockets.ConnectionClosed:
            logger.debug("Connection closed before token refresh on %s", subscription.topic)

    async def close(self) -> None:
        await self.unsubscribe(self._current)

    def _frame(self, topic: str, event: str, payload: dict, **extra: str) -> str:
        frame = {"topic": topic, "event": event, "payload": payload, "ref": str(next(self._refs))}
        frame.update(extra)
        return json.dumps(frame)

    def _join_frame(self, subscription: Subscription) -> str:
        ref = str(next(self._refs))
        payload = {
            "config": {
                "postgres_changes": [
                    {
                        "event": "INSERT",
                        "schema": self._schema,
                        "table": self._table,
                        "filter": f"user_id=eq.{subscription.user_id}",
                    }
                ],
            },
            "access_token": self._access_token,
        }
        return self._frame(subscription.topic, "phx_join", payload, ref=ref, join_ref=ref)

    async def _run(self, subscription: Subscription) -> None:
        """Connection loop: join, read frames, reconnect after drops."""
        while not subscription.closed:
            try:
                async with self._connect(self.socket_url, ping_interval=20, ping_timeout=10) as ws:
                    subscription._socket = ws
                    await ws.send(self._join_frame(subscription))
                    logger.info("Connected to realtime channel %s", subscription.topic)

                    heartbeat = asyncio.create_task(self._heartbeat(ws))
                    try:
                        async for message in ws:
                            await self._handle_message(subscription, message)
                            if subscription.closed:
                                return
                    finally:
                        heartbeat.cancel()
                        subscription._socket = None
                logger.warning(
                    "Realtime channel %s closed by server. Reconnecting in %.0fs...",
                    subscription.topic,
                    self._reconnect_delay,
                )
            except websockets.ConnectionClosed as e:
                logger.warning(
                    "Realtime channel %s dropped: %s. Reconnecting in %.0fs...",
                    subscription.topic,
                    e,
                    self._reconnect_delay,
                )
            except Exception as e:
                logger.error("Realtime channel %s error: %s", subscription.topic, e, exc_info=True)

            if subscription.closed:
                return
            await asyncio.sleep(self._reconnect_delay)

    async def _heartbeat(self, ws: Any) -> None:
        while True:
            await asyncio.sleep(self._heartbeat_interval)
            try:
                await ws.send(self._frame("phoenix", "heartbeat", {}))
            except websockets.ConnectionClosed:
                return

    async def _handle_message(self, subscription: Subscription, message: str | bytes) -> None:
        try:
            frame = json.loads(message)
        except ValueError:
            logger.warning("Ignoring non-JSON realtime frame")
            return
        if not isinstance(frame, dict):
            return

        event = frame.get("event")
        payload = frame.get("payload") or {}
        if not isinstance(payload, dict):
            return

        if event == "phx_reply":
            if payload.get("status") == "error":
                logger.warning(
                    "Realtime join for %s rejected: %s", subscription.topic, payload.get("response")
                )
            return
        if event in ("phx_error", "phx_close"):
            logger.warning("Realtime channel %s reported %s", subscription.topic, event)
            return
        if event != "postgres_changes" or frame.get("topic") != subscription.topic:
            return

        data = payload.get("data") or {}
        if data.get("type") != "INSERT":
            return
        try:
            record = Record.from_row(data.get("record"))
        except DecodeError as e:
            logger.warning("Skipping undecodable pushed output: %s", e)
            return

        if subscription.closed:
            return
        try:
            result = subscription.on_insert(record)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error("Insert handler failed for %s: %s", subscription.topic, e, exc_info=True)
