import logging
from fastapi import FastAPI, WebSocket, WebSocketDisconnect, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from backend.core.config import Settings, settings as default_settings
from backend.core.errors import (
    AppointmentValidationError,
    CheckInDomainError,
    DockUnavailableError,
    DuplicateCheckInError,
    ImportFileError,
    InvalidDockError,
    InvalidTransitionError,
    RecordNotFoundError,
    StorageError,
)
from backend.db.mongo import Database, connect_database
from backend.routes.appointments import appointment_router
from backend.routes.auth import auth_router, ensure_admin_profile
from backend.routes.check_ins import check_in_router
from backend.routes.docks import dock_router
from backend.routes.notifications import notification_router
from backend.routes.reports import report_router
from backend.services.change_feed import EVENT_TYPES, WILDCARD, ChangeFeed
from backend.services.dock_service import DockService
from backend.services.notification_service import NotificationDispatcher
from datetime import datetime
from typing import Optional
import asyncio
import uvicorn

# Set up logging configuration
logging.basicConfig(level=logging.INFO)

# Suppress uvicorn access logs
logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
logging.getLogger("uvicorn.access").disabled = True

logger = logging.getLogger(__name__)

VERSION = "1.0.0"

ERROR_STATUS_CODES = {
    RecordNotFoundError: 404,
    InvalidTransitionError: 409,
    DockUnavailableError: 409,
    DuplicateCheckInError: 400,
    InvalidDockError: 400,
    AppointmentValidationError: 400,
    ImportFileError: 400,
    StorageError: 503,
}


def create_app(
    settings: Optional[Settings] = None,
    database: Optional[Database] = None,
    notifier: Optional[NotificationDispatcher] = None,
) -> FastAPI:
    """Build the API. Tests pass their own database and notifier handles."""
    settings = settings or default_settings
    app = FastAPI(title="Dock Check-In API", version=VERSION)

    app.state.settings = settings
    app.state.database = database
    app.state.notifier = notifier or NotificationDispatcher(settings)
    app.state.change_feed = ChangeFeed()
    app.state.feed_task = None

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # In production, replace with your frontend domain
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(auth_router)
    app.include_router(check_in_router)
    app.include_router(dock_router)
    app.include_router(appointment_router)
    app.include_router(notification_router)
    app.include_router(report_router)

    @app.exception_handler(CheckInDomainError)
    async def domain_error_handler(request: Request, exc: CheckInDomainError):
        status_code = 400
        for error_type, code in ERROR_STATUS_CODES.items():
            if isinstance(exc, error_type):
                status_code = code
                break
        if status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {str(exc)}")
        else:
            logger.info(f"{request.method} {request.url.path} rejected: {str(exc)}")
        return JSONResponse(status_code=status_code, content={"success": False, "detail": str(exc)})

    @app.on_event("startup")
    async def startup_event():
        """Connect storage, seed the dock cycle records and start the change feed loop"""
        if app.state.database is None:
            app.state.database = connect_database(settings.MONGO_URL, settings.MONGO_DB_NAME)
        database = app.state.database
        try:
            database.ensure_indexes()
            dock_service = DockService(database, app.state.change_feed, app.state.notifier, settings)
            await dock_service.seed_dock_cycles()
            if ensure_admin_profile(database, settings.ADMIN_EMAIL, settings.ADMIN_PASSWORD):
                logger.info(f"Created admin profile {settings.ADMIN_EMAIL}")
        except CheckInDomainError as e:
            logger.error(f"Startup seeding failed: {str(e)}")
        app.state.feed_task = asyncio.create_task(app.state.change_feed.run())
        logger.info("Started change feed")

    @app.on_event("shutdown")
    async def shutdown_event():
        if app.state.feed_task is not None:
            app.state.feed_task.cancel()
        # Deliver whatever was published after the loop last ran
        await app.state.change_feed.drain()
        if app.state.database is not None and database is None:
            app.state.database.close()

    @app.get("/health")
    async def health_check():
        return {
            "status": "online",
            "timestamp": datetime.now().isoformat(),
            "services": {
                "api": "healthy",
                "database": "connected" if app.state.database is not None else "unavailable"
            },
            "system": {
                "version": VERSION,
                "subscribers": len(app.state.change_feed.subscriptions),
                "open_check_ins": len(app.state.change_feed.table("check_ins")),
            },
        }

    @app.websocket("/ws/changes")
    async def websocket_changes(websocket: WebSocket, table: str = WILDCARD, event: str = WILDCARD):
        """Push every insert/update/delete on the requested table to the client"""
        if event != WILDCARD and event not in EVENT_TYPES:
            await websocket.close(code=1003, reason=f"Unknown event type: {event}")
            return

        await websocket.accept()
        feed: ChangeFeed = app.state.change_feed
        feed.subscribe(websocket, table, event)
        try:
            await websocket.send_json({
                "type": "subscribed",
                "table": table,
                "event": event,
                "timestamp": datetime.now().isoformat()
            })
            # Keep connection alive and listen for pings
            while True:
                data = await websocket.receive_text()
                if data == "ping":
                    await websocket.send_json({"type": "pong", "timestamp": datetime.now().isoformat()})
        except WebSocketDisconnect:
            pass
        except Exception as e:
            logger.error(f"WebSocket connection error: {str(e)}")
        finally:
            feed.unsubscribe(websocket)

    return app


app = create_app()

if __name__ == "__main__":
    uvicorn.run(app, host=default_settings.SERVER_HOST, port=default_settings.SERVER_PORT)
