from contextlib import asynccontextmanager

import socketio
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse

from chat_events import ChatSocketHandler
from constants import CORS_ORIGINS, LOG_FILE, LOG_LEVEL, REDIS_URL, USE_REDIS_MANAGER
from context import build_context
from logging_config import get_logger, setup_logging
from redis_keys import REDIS_SOCKETIO_CHANNEL
from routers.ai import ai_router

# Setup logging
setup_logging(log_level=LOG_LEVEL, log_file=LOG_FILE)
logger = get_logger(__name__)

cors_origins = "*" if CORS_ORIGINS == "*" else [o.strip() for o in CORS_ORIGINS.split(",") if o.strip()]


def create_client_manager():
    """Redis-backed manager when several instances share rooms, otherwise in-process."""
    if not USE_REDIS_MANAGER:
        return None
    try:
        manager = socketio.AsyncRedisManager(REDIS_URL, channel=REDIS_SOCKETIO_CHANNEL)
        logger.info(f"Socket.IO fan-out through Redis channel {REDIS_SOCKETIO_CHANNEL}")
        return manager
    except Exception as e:
        logger.warning(f"Could not set up Redis client manager, using in-process rooms: {e}")
        return None


sio = socketio.AsyncServer(
    async_mode="asgi",
    cors_allowed_origins=cors_origins,
    client_manager=create_client_manager(),
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Context must exist before the first socket connects; tests may pre-set one
    owns_context = getattr(app.state, "context", None) is None
    if owns_context:
        app.state.context = await build_context()
    app.state.chat_handler = ChatSocketHandler(sio, app.state.context).register()
    logger.info("Chat backend ready")
    try:
        yield
    finally:
        await app.state.chat_handler.orchestrator.drain()
        if owns_context:
            await app.state.context.close()
            app.state.context = None
        logger.info("Chat backend stopped")


app = FastAPI(lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if cors_origins == "*" else cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(ai_router)


@app.get("/", response_class=PlainTextResponse)
async def root():
    return "API Running..."


# Socket.IO lives under /socket.io/, everything else (including lifespan) goes to FastAPI
asgi_app = socketio.ASGIApp(sio, other_asgi_app=app)

logger.info("FastAPI application initialized")
