# app/routes/websockets.py
from fastapi import APIRouter, WebSocket, WebSocketDisconnect
import logging

logger = logging.getLogger(__name__)

router = APIRouter()

@router.websocket("/ws/orders")
async def order_events(websocket: WebSocket):
    manager = websocket.app.state.services.connections
    await manager.connect(websocket)
    try:
        while True:
            # Clients only listen; inbound frames just keep the connection alive
            await websocket.receive_text()
    except WebSocketDisconnect:
        manager.disconnect(websocket)
        logger.info("WebSocket client disconnected")
