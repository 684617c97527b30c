"""Lingo Chat Backend Application.

This is the main entry point for the Lingo Chat realtime service, the chat
layer of a language-exchange app: partners who have accepted a connection
talk over a WebSocket, see each other's typing and read state, and correct
each other's messages.

Modules:
    - chat: WebSocket gateway, presence, rooms, message relay, diff engine
    - messages: message history and read-state REST endpoints
    - corrections: peer corrections with word-level diffs
    - store: DuckDB-backed persistence
    - auth: bearer credential verification
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from lingochat.auth.verifier import CredentialVerifier
from lingochat.chat.gateway import ChatGateway
from lingochat.chat.router import router as chat_router
from lingochat.config import get_config
from lingochat.corrections.router import router as corrections_router
from lingochat.messages.router import router as messages_router
from lingochat.store import DuckDBChatStore

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

# Silence per-connection noise from the server and websocket stack.
for _noisy in (
    "uvicorn.access",
    "websockets",
    "httpx",
    "httpcore",
):
    logging.getLogger(_noisy).setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup/shutdown events."""
    # Startup
    config = get_config()

    # Apply configured log level to root logger so that
    # `logging.level: "debug"` in lingochat.settings.yaml activates DEBUG output.
    configured_level = getattr(logging, config.logging.level.upper(), None)
    if configured_level is not None:
        logging.getLogger().setLevel(configured_level)
        logger.info("Root logger level set to %s", config.logging.level.upper())

    store = DuckDBChatStore(db_path=config.database.path)
    verifier = CredentialVerifier.from_config()
    app.state.verifier = verifier
    app.state.gateway = ChatGateway(
        store,
        verifier,
        max_message_length=config.chat.max_message_length,
        presence_mirror_enabled=config.chat.presence_mirror_enabled,
    )
    logger.info(
        "Chat gateway ready (db=%s, presence_mirror=%s)",
        config.database.path,
        config.chat.presence_mirror_enabled,
    )

    yield  # Application runs here

    # Shutdown
    store.close()
    logger.info("Application shutdown complete")


# Create FastAPI application with metadata
app = FastAPI(
    title="Lingo Chat API",
    description="Realtime chat backend for language-exchange partners",
    version="0.1.0",
    lifespan=lifespan,
)

# Register all routers
app.include_router(chat_router)
app.include_router(messages_router)
app.include_router(corrections_router)


@app.get("/health")
async def health() -> dict:
    """Health check endpoint.

    Returns:
        dict: Status object indicating the server is running.
    """
    return {"status": "ok"}
