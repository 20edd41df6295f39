"""
Real-time channel: clients receive ``protocol_created`` and
``status_updated`` events as ``{"event": ..., "data": ...}``.
"""

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from tracker.app.services.events import hub

router = APIRouter(tags=["events"])


@router.websocket("/ws")
async def events_socket(ws: WebSocket):
    await hub.connect(ws)
    try:
        # Inbound messages are ignored; the loop only detects disconnects.
        while True:
            await ws.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        hub.disconnect(ws)
