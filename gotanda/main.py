from __future__ import annotations

import logging
import sqlite3
import time
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import __version__
from .auth import get_store
from .config import Settings, load_settings
from .identity.router import admin_identity_router, identity_router
from .onlookers.router import access_router, onlooker_router
from .store import KVStore

logger = logging.getLogger(__name__)


# ----------------------------
# Logging
# ----------------------------

def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


# ----------------------------
# Health
# ----------------------------

health_router = APIRouter(prefix="/health", tags=["health"])


@health_router.get("/ping")
def ping() -> Dict[str, Any]:
    return {"status": "ok", "message": "gotanda is alive", "version": __version__}


@health_router.get("/database")
def database_health(store: KVStore = Depends(get_store)) -> Dict[str, Any]:
    start = time.time()
    try:
        store.ping()
        keys = store.count()
    except sqlite3.Error as exc:
        return {
            "status": "error",
            "message": f"Error accessing DB: {exc}",
            "duration_seconds": time.time() - start,
        }

    return {
        "status": "ok",
        "message": "Database accessible",
        "keys": keys,
        "duration_seconds": time.time() - start,
    }


# ----------------------------
# App
# ----------------------------

async def _store_error_handler(request: Request, exc: sqlite3.Error) -> JSONResponse:
    logger.exception("Store failure on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(status_code=503, content={"ok": False, "error": "STORE_UNAVAILABLE"})


def create_app(settings: Optional[Settings] = None, store: Optional[KVStore] = None) -> FastAPI:
    settings = settings or load_settings()
    store = store or KVStore(settings.db_path)

    app = FastAPI(title="gotanda", version=__version__)
    app.state.settings = settings
    app.state.store = store

    app.add_middleware(
        CORSMiddleware,
        allow_origin_regex=".*",
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(sqlite3.Error, _store_error_handler)

    app.include_router(health_router)
    app.include_router(identity_router)
    app.include_router(admin_identity_router)
    app.include_router(onlooker_router)
    app.include_router(access_router)

    logger.info("gotanda %s using store %s", __version__, store.path)
    return app


def serve() -> None:
    import uvicorn

    settings = load_settings()
    configure_logging(settings.log_level)
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port)


if __name__ == "__main__":
    serve()
