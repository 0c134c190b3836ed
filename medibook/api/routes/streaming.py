"""WebSocket stream of appointment changes for the connected caller."""

import asyncio
import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from medibook.api.dependencies import get_feed
from medibook.core.auth import bearer_token
from medibook.core.database import get_session_factory
from medibook.core.errors import SchedulingError
from medibook.core.identity import Caller, IdentityResolver
from medibook.notifications import ChangeFeed

logger = logging.getLogger(__name__)

router = APIRouter()

# Application-defined close codes (4000-4999).
CLOSE_UNAUTHENTICATED = 4401
CLOSE_FORBIDDEN = 4403


def subscription_filters(caller: Caller) -> dict[str, Any]:
    """Row filters limiting a caller's stream to appointments they may read."""
    if caller.is_admin:
        return {}
    if caller.is_doctor:
        return {"doctor_id": str(caller.doctor_id)}
    return {"patient_id": str(caller.profile_id)}


async def _wait_for_disconnect(websocket: WebSocket) -> None:
    # Client frames of any kind are ignored; only the close matters.
    while True:
        message = await websocket.receive()
        if message["type"] == "websocket.disconnect":
            return


async def _stop_reader(reader: asyncio.Task, caller: Caller) -> None:
    """Cancel the disconnect watcher and surface anything it raised."""
    reader.cancel()
    try:
        await reader
    except asyncio.CancelledError:
        pass
    except Exception:
        logger.exception(f"WebSocket reader failed for {caller.profile_id}")


@router.websocket("/ws/appointments")
async def appointment_stream(
    websocket: WebSocket,
    token: Optional[str] = Query(None),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    feed: ChangeFeed = Depends(get_feed),
):
    """Stream committed appointment changes visible to the caller.

    Protocol:
    1. Connect with ``?token=<jwt>`` or an ``Authorization: Bearer`` header
    2. Server sends ``{type: "subscribed", filters: {...}}``
    3. Each change arrives as ``{type: "change", event: {...}}``

    Events are hints; clients re-read the appointment for authoritative state.
    """
    token = token or bearer_token(websocket.headers.get("authorization"))
    try:
        async with session_factory() as session:
            caller = await IdentityResolver(session).resolve(token)
    except SchedulingError as e:
        code = CLOSE_UNAUTHENTICATED if e.status_code == 401 else CLOSE_FORBIDDEN
        logger.info(f"WebSocket rejected: {e.kind}")
        await websocket.close(code=code, reason=e.detail)
        return

    await websocket.accept()
    filters = subscription_filters(caller)
    logger.info(f"WebSocket connected: {caller.profile_id} ({caller.role.value})")

    async with feed.subscribe("appointments", filters) as sub:
        disconnected = asyncio.create_task(_wait_for_disconnect(websocket))
        try:
            await websocket.send_json({"type": "subscribed", "filters": filters})
            while not disconnected.done():
                try:
                    event = await sub.get(timeout=1.0)
                except asyncio.TimeoutError:
                    continue
                await websocket.send_json({"type": "change", "event": event.model_dump(mode="json")})
        except WebSocketDisconnect:
            pass
        finally:
            await _stop_reader(disconnected, caller)
            logger.info(f"WebSocket disconnected: {caller.profile_id}")
