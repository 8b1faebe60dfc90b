# masapos/main.py
import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from masapos.api.catalog_router import router as catalog_router
from masapos.api.sessions_router import router as sessions_router
from masapos.api.stats_router import router as stats_router
from masapos.broadcast import ConnectionManager, WebSocketNotifier
from masapos.errors import PosError
from masapos.storage import SQLAlchemyStorage

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

DEFAULT_DATABASE_URL = "sqlite:///masa.db"


def _cors_origins():
    raw = os.getenv("CORS_ALLOW_ORIGINS", "*")
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Tests install their own storage before the app starts
    owned = None
    if getattr(app.state, "storage", None) is None:
        database_url = os.getenv("APP_DATABASE_URL", DEFAULT_DATABASE_URL)
        owned = SQLAlchemyStorage(database_url)
        app.state.storage = owned
        logger.info("[startup] Storage ready (%s)", owned.engine.url.render_as_string(hide_password=True))
    try:
        yield
    finally:
        if owned is not None:
            owned.close()
            app.state.storage = None


app = FastAPI(title="Masa POS Backend", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.state.storage = None
app.state.manager = ConnectionManager()
app.state.notifier = WebSocketNotifier(app.state.manager)


@app.exception_handler(PosError)
async def pos_error_handler(request: Request, exc: PosError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


app.include_router(catalog_router)
app.include_router(sessions_router)
app.include_router(stats_router)


@app.get("/health", summary="Liveness check")
async def health():
    return {"status": "ok"}


@app.websocket("/ws")
async def table_updates_ws(websocket: WebSocket):
    """
    Subscribe to table updates. Every committed session change is pushed as:
      {"event": "tableUpdated", "sessionId": ..., "status": ..., "total": ...}
    Incoming messages are ignored.
    """
    manager: ConnectionManager = websocket.app.state.manager
    await manager.connect(websocket)
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        manager.disconnect(websocket)
