"""FastAPI WebSocket server for the Lockpick card game."""

import asyncio
import json
import logging
import uuid
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, WebSocket, WebSocketDisconnect

from config import config
from connections import ConnectionHub
from handlers import HANDLERS, ConnectionContext, handle_disconnect, leave_if_still_disconnected
from logging_config import connection_id_var, setup_logging
from room import RoomManager
from routers.health import router as health_router
from routers.rooms import router as rooms_router
from stores.snapshot_store import SnapshotStore

# Configure logging based on environment
setup_logging(
    level=config.LOG_LEVEL,
    environment=config.ENVIRONMENT,
)
logger = logging.getLogger(__name__)

# Close codes sent by a client that is leaving on purpose
DELIBERATE_CLOSE_CODES = (1000, 1001)


def build_room_manager() -> RoomManager:
    """Create the RoomManager described by the server config."""
    store = SnapshotStore(config.SNAPSHOT_DIR) if config.PERSISTENCE_ENABLED else None
    return RoomManager(store)


async def _periodic_cleanup(room_manager: RoomManager, interval: float):
    """Periodic task that runs the room and participant cleanup sweeps."""
    while True:
        try:
            await asyncio.sleep(interval)
            pruned = room_manager.cleanup_disconnected_participants()
            deleted = room_manager.cleanup_inactive_rooms()
            if pruned or deleted:
                logger.info(f"Cleanup: pruned {pruned} participants, deleted {len(deleted)} rooms")
            if room_manager.snapshot_store:
                await asyncio.to_thread(room_manager.snapshot_store.cleanup_old, config.ROOM_MAX_AGE_HOURS)
        except asyncio.CancelledError:
            break
        except Exception as e:
            logger.error(f"Room cleanup failed: {e}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Restore rooms, start the cleanup task, and tear both down on exit."""
    if app.state.room_manager is None:
        app.state.room_manager = build_room_manager()
    room_manager: RoomManager = app.state.room_manager

    room_manager.load_snapshots()
    cleanup_task = asyncio.create_task(
        _periodic_cleanup(room_manager, config.CLEANUP_INTERVAL_SECONDS)
    )

    logger.info(f"Lockpick server started (environment={config.ENVIRONMENT})")

    yield

    logger.info("Shutdown initiated...")
    cleanup_task.cancel()
    try:
        await cleanup_task
    except asyncio.CancelledError:
        pass

    for task in list(app.state.pending_leaves):
        task.cancel()

    await app.state.hub.close_all()
    if room_manager.snapshot_store:
        await room_manager.snapshot_store.flush()
    logger.info("Shutdown complete")


def create_app(
    room_manager: Optional[RoomManager] = None,
    hub: Optional[ConnectionHub] = None,
    leave_delay: Optional[float] = None,
) -> FastAPI:
    """
    Build the application.

    Args:
        room_manager: Room store to serve; built from config at start-up if None.
        hub: Socket registry; a fresh one if None.
        leave_delay: Seconds between a network drop and the leave it triggers.
    """
    app = FastAPI(
        title="Lockpick Card Game",
        debug=config.DEBUG,
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.room_manager = room_manager
    app.state.hub = hub or ConnectionHub()
    app.state.leave_delay = config.DISCONNECT_LEAVE_DELAY_SECONDS if leave_delay is None else leave_delay
    app.state.pending_leaves = set()

    app.include_router(health_router)
    app.include_router(rooms_router)
    app.add_api_websocket_route("/ws", websocket_endpoint)
    return app


async def _delayed_leave(connection_id: str, delay: float, room_manager: RoomManager, hub: ConnectionHub):
    await asyncio.sleep(delay)
    await leave_if_still_disconnected(connection_id, room_manager=room_manager, hub=hub)


async def websocket_endpoint(websocket: WebSocket):
    await websocket.accept()

    app = websocket.app
    room_manager: RoomManager = app.state.room_manager
    hub: ConnectionHub = app.state.hub

    connection_id = str(uuid.uuid4())
    connection_id_var.set(connection_id)
    hub.register(connection_id, websocket)
    logger.debug(f"WebSocket connected as {connection_id}")

    ctx = ConnectionContext(websocket=websocket, connection_id=connection_id)

    # Shared dependencies passed to every handler
    handler_deps = dict(
        room_manager=room_manager,
        hub=hub,
    )

    close_code = 1006
    try:
        while True:
            raw = await websocket.receive_text()
            try:
                data = json.loads(raw)
            except ValueError:
                await websocket.send_json({"type": "error", "message": "Invalid JSON"})
                continue

            handler = HANDLERS.get(data.get("type")) if isinstance(data, dict) else None
            if not handler:
                await websocket.send_json({"type": "error", "message": "Unknown message type"})
                continue

            try:
                await handler(data, ctx, **handler_deps)
            except WebSocketDisconnect:
                raise
            except Exception:
                logger.exception(f"Error handling {data.get('type')}")
                await hub.send(connection_id, {"type": "error", "message": "Internal server error"})
    except WebSocketDisconnect as e:
        close_code = e.code
    finally:
        hub.unregister(connection_id)

    deliberate = close_code in DELIBERATE_CLOSE_CODES
    logger.debug(f"WebSocket {connection_id} closed with code {close_code}")
    awaiting_leave = await handle_disconnect(ctx, deliberate, room_manager=room_manager, hub=hub)
    if awaiting_leave:
        task = asyncio.create_task(_delayed_leave(connection_id, app.state.leave_delay, room_manager, hub))
        app.state.pending_leaves.add(task)
        task.add_done_callback(app.state.pending_leaves.discard)


app = create_app()


def run():
    """Run the server using uvicorn."""
    import uvicorn

    logger.info(f"Starting Lockpick server on {config.HOST}:{config.PORT}")
    logger.info(f"Debug mode: {config.DEBUG}")

    uvicorn.run(
        "main:app",
        host=config.HOST,
        port=config.PORT,
        reload=config.DEBUG,
        log_level=config.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    run()
