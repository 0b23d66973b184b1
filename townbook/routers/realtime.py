import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from townbook.models.profile import STAFF_ROLES
from townbook.services.user_service import get_ws_token_data
from townbook.websockets.change_feed import USER_SCOPED_TABLES, WATCHED_TABLES, change_feed

router = APIRouter(tags=["Realtime"])

logger = logging.getLogger(__name__)


async def _forward_changes(websocket: WebSocket, queue: asyncio.Queue):
    while True:
        change = await queue.get()
        await websocket.send_json(change)


async def _wait_disconnect(websocket: WebSocket):
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        return


@router.websocket("/ws/changes/{table}")
async def table_changes_ws(websocket: WebSocket, table: str, user_id: Optional[int] = None):
    """Підписка на зміни таблиці: події INSERT / UPDATE / DELETE після коміту."""
    token_data = get_ws_token_data(websocket)
    if token_data is None or table not in WATCHED_TABLES:
        logger.warning(f"❌ Відхилено підписку на '{table}'")
        await websocket.close(code=1008)
        return

    is_staff = token_data["role"] in {role.value for role in STAFF_ROLES}
    if not is_staff:
        if table == "profiles":
            await websocket.close(code=1008)
            return
        # учасник бачить лише власні записи
        if table in USER_SCOPED_TABLES:
            user_id = int(token_data["id"])

    await websocket.accept()
    queue = change_feed.subscribe(table, user_id)

    sender = asyncio.create_task(_forward_changes(websocket, queue))
    receiver = asyncio.create_task(_wait_disconnect(websocket))
    try:
        done, pending = await asyncio.wait(
            {sender, receiver},
            return_when=asyncio.FIRST_COMPLETED,
        )
        for task in pending:
            task.cancel()
        for task in done:
            if not task.cancelled() and task.exception() is not None:
                logger.error(f"Change feed on '{table}' stopped: {task.exception()}")
    finally:
        change_feed.unsubscribe(table, queue)
