# sangh_api/main.py
import logging
import os

import socketio
from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from sangh_api.db.mongo import init_db_indexes
from sangh_api.services.cache_service import get_cache
from sangh_api.services.notify import get_notifier
from sangh_api.services.socket_manager import sio, SOCKETIO_PATH
from sangh_api.utils.errors import AppError

# Routers
from sangh_api.routes.sangh_post import router as sangh_post_router
from sangh_api.routes.notification import router as notification_router

load_dotenv()

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("sangh_api")

# ---------------------------
# Build FastAPI app
# ---------------------------
fastapi_app = FastAPI(title="Sangh Posts Backend", version="1.0.0")

fastapi_app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@fastapi_app.get("/health")
async def health_check():
    cache_ok = await get_cache().ping()
    return {"status": "✅ OK", "cache": "up" if cache_ok else "down"}


@fastapi_app.get("/")
async def root():
    return {"message": "👋 Welcome to the Sangh Posts Backend!"}


# ---------------------------
# Error responses: {"detail", "code"}
# ---------------------------
@fastapi_app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "code": exc.code},
        headers=getattr(exc, "headers", None),
    )


@fastapi_app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    where = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    message = first.get("msg", "Invalid request")
    return JSONResponse(
        status_code=400,
        content={"detail": f"{where}: {message}" if where else message, "code": "validation_error"},
    )


@fastapi_app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "Internal server error", "code": "internal_error"})


# ---------------------------
# Routers
# ---------------------------
fastapi_app.include_router(sangh_post_router)
fastapi_app.include_router(notification_router)


# ---------------------------
# Startup / shutdown
# ---------------------------
@fastapi_app.on_event("startup")
async def on_startup():
    try:
        await init_db_indexes()
    except Exception:
        # indexes are an optimisation; serve anyway
        logger.exception("Index init error")

    if not await get_cache().ping():
        logger.warning("Redis unreachable at startup; reads will go to MongoDB")


@fastapi_app.on_event("shutdown")
async def on_shutdown():
    await get_notifier().drain()
    await get_cache().close()


# ---------------------------
# Final ASGI app export (Socket.IO wraps FastAPI)
# ---------------------------
app = socketio.ASGIApp(sio, other_asgi_app=fastapi_app, socketio_path=SOCKETIO_PATH.lstrip("/"))
