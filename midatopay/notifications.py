"""
Realtime notification fan-out
Pushes payment confirmations to every connected WebSocket client
"""

from typing import Any, Dict, Set

from fastapi import WebSocket
import structlog

logger = structlog.get_logger()


class NotificationHub:
    """
    Registry of live WebSocket connections.

    Delivery is best effort: a socket that fails a send is dropped and the
    broadcast continues with the rest.
    """

    def __init__(self):
        self.active_connections: Set[WebSocket] = set()

    async def connect(self, websocket: WebSocket) -> None:
        await websocket.accept()
        self.active_connections.add(websocket)
        logger.info("websocket_connected", total_connections=len(self.active_connections))

    def disconnect(self, websocket: WebSocket) -> None:
        if websocket in self.active_connections:
            self.active_connections.discard(websocket)
            logger.info("websocket_disconnected", remaining_connections=len(self.active_connections))

    @property
    def connection_count(self) -> int:
        return len(self.active_connections)

    async def broadcast(self, message_type: str, data: Dict[str, Any]) -> int:
        """
        Send {type, data} to all connections

        Returns:
            Number of connections the message was delivered to
        """
        payload = {"type": message_type, "data": data}

        delivered = 0
        disconnected = set()
        for websocket in list(self.active_connections):
            try:
                await websocket.send_json(payload)
                delivered += 1
            except Exception as e:
                logger.warning("websocket_send_failed", error=str(e))
                disconnected.add(websocket)

        for ws in disconnected:
            self.disconnect(ws)

        return delivered

    async def notify_payment_confirmed(self, payment: Dict[str, Any]) -> int:
        delivered = await self.broadcast("payment_confirmed", payment)
        logger.info(
            "payment_notification_sent",
            payment_id=payment.get("paymentId"),
            delivered=delivered,
        )
        return delivered

    def close_all(self) -> None:
        self.active_connections.clear()
