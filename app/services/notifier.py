# app/services/notifier.py
import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Set

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class ConnectionManager:
    def __init__(self, send_timeout: float = 5.0):
        self.active_connections: List[WebSocket] = []
        self.send_timeout = send_timeout

    async def connect(self, websocket: WebSocket):
        await websocket.accept()
        self.active_connections.append(websocket)
        logger.info(f"WebSocket connected. Total connections: {len(self.active_connections)}")

    def disconnect(self, websocket: WebSocket):
        if websocket in self.active_connections:
            self.active_connections.remove(websocket)
        logger.info(f"WebSocket disconnected. Total connections: {len(self.active_connections)}")

    async def broadcast(self, message: dict):
        """Broadcast message to all connected clients"""
        json_message = json.dumps(message, default=str)
        disconnected = []

        for connection in list(self.active_connections):
            try:
                await asyncio.wait_for(connection.send_text(json_message), timeout=self.send_timeout)
            except asyncio.TimeoutError:
                logger.error(f"WebSocket send timed out after {self.send_timeout}s")
                disconnected.append(connection)
            except Exception as e:
                logger.error(f"Error sending to WebSocket: {e}")
                disconnected.append(connection)

        for connection in disconnected:
            self.disconnect(connection)


class OrderEventNotifier:
    """
    Publishes order lifecycle events to connected clients.

    The event methods schedule the broadcast on the running loop and return
    at once, so a slow or stalled client never holds up the caller. A failed
    broadcast is logged and dropped.
    """

    ORDER_CREATED = "order_created"
    ORDER_STATUS_UPDATED = "order_status_updated"
    LOW_BALANCE = "low_balance"

    def __init__(self, manager: ConnectionManager):
        self.manager = manager
        self._pending: Set[asyncio.Task] = set()

    async def emit(self, event: str, data: Dict[str, Any]) -> None:
        message = {
            "type": event,
            "data": data,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        try:
            await self.manager.broadcast(message)
        except Exception as e:
            logger.error(f"Failed to emit '{event}' event: {e}")

    def publish(self, event: str, data: Dict[str, Any]) -> asyncio.Task:
        """Schedule an event for broadcast without waiting for delivery."""
        task = asyncio.get_running_loop().create_task(self.emit(event, data))
        # The loop holds tasks weakly
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def drain(self) -> None:
        """Wait for every scheduled broadcast to finish."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def order_created(self, business_id: int, order: Dict[str, Any]) -> asyncio.Task:
        return self.publish(self.ORDER_CREATED, {"business_id": business_id, **order})

    def order_status_updated(self, order_id: int, old_status: str, new_status: str) -> asyncio.Task:
        return self.publish(self.ORDER_STATUS_UPDATED, {
            "order_id": order_id,
            "old_status": old_status,
            "new_status": new_status,
        })

    def low_balance(self, business_id: int, balance: Any, threshold: Any) -> asyncio.Task:
        logger.warning(f"Business {business_id} wallet below threshold: {balance} < {threshold}")
        return self.publish(self.LOW_BALANCE, {
            "business_id": business_id,
            "balance": str(balance),
            "threshold": str(threshold),
        })
