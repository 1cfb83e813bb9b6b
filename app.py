import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from backend import create_redis_client
from constants import CORS_ORIGINS, REDIS_HOST, REDIS_PORT
from dependencies import build_services
from errors import RoomError
from logging_config import get_logger, setup_logging
from routers.auth import auth_router
from routers.messages import messages_router
from routers.pages import pages_router
from routers.realtime import realtime_router
from routers.rooms import rooms_router

# Setup logging
log_level = os.getenv("LOG_LEVEL", "INFO")
log_file = os.getenv("LOG_FILE", None)
setup_logging(log_level=log_level, log_file=log_file)
logger = get_logger(__name__)


def create_app(redis_client=None) -> FastAPI:
    """Build the application around `redis_client`.

    When no client is given one is created from the environment at startup
    and closed at shutdown.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned_client = None
        if redis_client is None:
            owned_client = create_redis_client()
            app.state.services = build_services(owned_client)
            try:
                await app.state.services.backend.ping()
                logger.info(f"Redis client connected successfully to {REDIS_HOST}:{REDIS_PORT}")
            except Exception as e:
                logger.error(f"Failed to connect to Redis at {REDIS_HOST}:{REDIS_PORT}: {e}", exc_info=True)
                raise
        yield
        if owned_client is not None:
            await owned_client.aclose()
            logger.info("Redis client closed")

    app = FastAPI(title="vanishing-rooms", lifespan=lifespan)
    if redis_client is not None:
        app.state.services = build_services(redis_client)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(RoomError)
    async def room_error_handler(request: Request, exc: RoomError):
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=422,
            content={"error": "Validation Error", "kind": "validation", "details": jsonable_encoder(exc.errors())},
        )

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=True)
        return JSONResponse(status_code=500, content={"error": "Internal Server Error"})

    app.include_router(rooms_router)
    app.include_router(messages_router)
    app.include_router(realtime_router)
    app.include_router(auth_router)
    app.include_router(pages_router)

    logger.info("FastAPI application initialized")
    return app


app = create_app()
