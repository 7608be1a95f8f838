from __future__ import annotations

import asyncio

import logging
from typing import Any, Dict, Optional, Set
from uuid import UUID

from starlette.websockets import WebSocket, WebSocketState

from control_center.schemas.realtime import ChangeEvent, WsEnvelope

logger = logging.getLogger(__name__)


class BroadcastManager:
    """
    Simple in-process pub-sub manager for WebSocket topics.

    Topics:
      - changes:{tenant_id}  row change feed ('<table>.<operation>' envelopes)
    """

    def __init__(self) -> None:
        self._topics: Dict[str, Set[WebSocket]] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._global_lock = asyncio.Lock()

    def _topic_lock(self, topic: str) -> asyncio.Lock:
        if topic not in self._locks:
            self._locks[topic] = asyncio.Lock()
        return self._locks[topic]

    # PUBLIC_INTERFACE
    def changes_topic(self, tenant_id: UUID | str) -> str:
        """Return the change-feed topic name for a tenant."""
        return f"changes:{tenant_id}"

    async def _ensure_topic(self, topic: str) -> None:
        async with self._global_lock:
            if topic not in self._topics:
                self._topics[topic] = set()

    # PUBLIC_INTERFACE
    async def connect(self, topic: str, websocket: WebSocket) -> None:
        """Add an accepted websocket to the topic subscribers."""
        await self._ensure_topic(topic)
        async with self._topic_lock(topic):
            self._topics[topic].add(websocket)
            logger.info("WebSocket connected to topic=%s; subscribers=%d", topic, len(self._topics[topic]))

    # PUBLIC_INTERFACE
    async def disconnect(self, topic: str, websocket: WebSocket) -> None:
        """Remove websocket from topic subscribers."""
        if topic not in self._topics:
            return
        async with self._topic_lock(topic):
            self._topics[topic].discard(websocket)
            logger.info("WebSocket disconnected from topic=%s; subscribers=%d", topic, len(self._topics[topic]))

    # PUBLIC_INTERFACE
    async def broadcast(self, topic: str, message: dict, exclude: Optional[WebSocket] = None) -> int:
        """
        Send a dict message to every subscriber of the topic.

        Sockets that are closed or fail to send are dropped. Returns the number of
        subscribers the message was delivered to.
        """
        await self._ensure_topic(topic)
        delivered = 0
        async with self._topic_lock(topic):
            to_drop: list[WebSocket] = []
            for ws in list(self._topics[topic]):
                if exclude is not None and ws is exclude:
                    continue
                try:
                    if ws.application_state == WebSocketState.DISCONNECTED or ws.client_state == WebSocketState.DISCONNECTED:
                        to_drop.append(ws)
                        continue
                    await ws.send_json(message)
                    delivered += 1
                except Exception:
                    logger.exception("Failed to send message to websocket; scheduling drop")
                    to_drop.append(ws)
            for ws in to_drop:
                self._topics[topic].discard(ws)
        return delivered

    # PUBLIC_INTERFACE
    async def publish_change(
        self,
        tenant_id: UUID | str,
        table: str,
        operation: str,
        record: Optional[Dict[str, Any]] = None,
        record_id: Any = None,
        user_id: Optional[UUID] = None,
    ) -> None:
        """
        Publish a '<table>.<operation>' change event to the tenant's change feed.

        Publishing never fails the caller; send errors are logged.
        """
        try:
            event = ChangeEvent(
                table=table,
                operation=operation,
                record_id=str(record_id) if record_id is not None else None,
                record=record or {},
            )
            env = WsEnvelope(type=event.event_type, payload=event.model_dump(mode="json"), user_id=user_id)
            await self.broadcast(self.changes_topic(tenant_id), env.model_dump(mode="json"))
        except Exception:
            logger.exception("Failed to publish %s.%s change for tenant %s", table, operation, tenant_id)

    # PUBLIC_INTERFACE
    async def publish_event(self, tenant_id: UUID | str, event_type: str, payload: Dict[str, Any]) -> None:
        """Publish a non-row event (e.g. 'health.alert') to the tenant's change feed."""
        try:
            env = WsEnvelope(type=event_type, payload=payload)
            await self.broadcast(self.changes_topic(tenant_id), env.model_dump(mode="json"))
        except Exception:
            logger.exception("Failed to publish %s event for tenant %s", event_type, tenant_id)


# Singleton instance
broadcast_manager = BroadcastManager()
