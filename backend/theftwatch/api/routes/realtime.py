"""
Realtime change stream over WebSocket.

  /realtime/ws?table=notification_alerts            alerts addressed to the caller
  /realtime/ws?table=reports&filter=category=eq.stolen_vehicle

Identity: X-User-Id header, or user_id query param for browser clients.
Subscriptions to notification_alerts are always pinned to recipient_user_id=<caller>.
Client may send {"type": "ping"}; the server answers {"type": "pong"}.
"""
import asyncio
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from fastapi.encoders import jsonable_encoder

from theftwatch.core.policies import event_visible
from theftwatch.db.types import utcnow
from theftwatch.services.realtime import QueueListener, parse_filter, registry

router = APIRouter()
logger = logging.getLogger(__name__)

# Close codes
WS_UNAUTHORIZED = 4401
WS_BAD_SUBSCRIPTION = 4400


def _caller(websocket: WebSocket) -> str | None:
    user_id = websocket.headers.get("x-user-id") or websocket.query_params.get("user_id")
    return (user_id or "").strip() or None


async def _pump(websocket: WebSocket, listener: QueueListener) -> None:
    while True:
        change = await listener.get()
        await websocket.send_json(jsonable_encoder(change.as_message()))


async def _answer_pings(websocket: WebSocket) -> None:
    while True:
        data = await websocket.receive_json()
        if isinstance(data, dict) and data.get("type") == "ping":
            await websocket.send_json({"type": "pong"})


@router.websocket("/realtime/ws")
async def realtime_ws(websocket: WebSocket) -> None:
    caller = _caller(websocket)
    if not caller:
        await websocket.close(code=WS_UNAUTHORIZED)
        return
    table = websocket.query_params.get("table", "notification_alerts")
    try:
        filter_ = dict(parse_filter(websocket.query_params.get("filter")))
        if table == "notification_alerts":
            filter_["recipient_user_id"] = caller
        listener = QueueListener(
            table,
            tuple(sorted(filter_.items())),
            visible=lambda change: event_visible(change.table, change.record, utcnow()),
        )
        registry.add(listener)
    except ValueError as e:
        await websocket.close(code=WS_BAD_SUBSCRIPTION, reason=str(e))
        return

    tasks: set[asyncio.Task] = set()
    try:
        await websocket.accept()
        await websocket.send_json({"type": "subscribed", "table": table, "filter": dict(listener.filter)})
        tasks = {
            asyncio.create_task(_pump(websocket, listener)),
            asyncio.create_task(_answer_pings(websocket)),
        }
        # Whichever side stops first ends the connection
        done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        for task in done:
            e = task.exception()
            if isinstance(e, WebSocketDisconnect):
                logger.debug("Realtime client %s disconnected", caller)
            elif e is not None:
                logger.warning("Realtime stream for %s stopped: %s", caller, e, exc_info=e)
    except WebSocketDisconnect:
        logger.debug("Realtime client %s disconnected", caller)
    finally:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        registry.unregister(listener)
