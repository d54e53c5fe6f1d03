"""Main Starlette application proxying the PumpPortal new token stream"""

import os
import asyncio
import logging
import time
from contextlib import asynccontextmanager
from starlette.applications import Starlette
from starlette.responses import JSONResponse
from starlette.routing import Route
from starlette.middleware import Middleware
from starlette.middleware.cors import CORSMiddleware
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

from . import __version__
from .models import TokenQuery
from .query import build_tokens_response
from .token_store import get_token_store, now_ms
from .pumpportal_client import PumpPortalWebSocketClient

# Configure logging
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

logger = logging.getLogger(__name__)

# Global variables for background services
pumpportal_client = None
background_tasks = set()
process_started_at = time.monotonic()


def is_feed_connected() -> bool:
    """Whether the upstream feed is currently open and subscribed"""
    return pumpportal_client is not None and pumpportal_client.is_connected


async def root(request):
    """Describe the service and its endpoints"""
    return JSONResponse({
        "message": "PumpFun Proxy Backend",
        "version": __version__,
        "endpoints": {
            "/api/tokens": "Get stored tokens (supports ?limit=X&minMarketCap=X&minAge=X)",
            "/health": "Health check",
        },
        "tokensStored": len(get_token_store()),
        "wsConnected": is_feed_connected(),
    })

async def get_tokens(request):
    """Get stored tokens filtered by market cap and age"""
    logger.info("API request received")

    query = TokenQuery.from_params(request.query_params)
    snapshot = get_token_store().snapshot()
    body = build_tokens_response(snapshot, query, now_ms())

    logger.info(f"Returning {body['count']} tokens")
    return JSONResponse(body)

async def health_check(request):
    """Health check endpoint reporting store size and feed connection"""
    snapshot = get_token_store().snapshot()
    body = {
        "status": "ok",
        "tokensStored": snapshot.total_count,
        "wsConnected": is_feed_connected(),
        "lastUpdate": snapshot.last_update,
        "uptime": time.monotonic() - process_started_at,
    }
    if pumpportal_client is not None:
        body["connection"] = pumpportal_client.get_status().model_dump(mode="json")
        body["ingestor"] = pumpportal_client.get_stats()
    return JSONResponse(body)

# Define routes
routes = [
    Route("/", root, methods=["GET"]),
    Route("/api/tokens", get_tokens, methods=["GET"]),
    Route("/health", health_check, methods=["GET"]),
]


def log_unhandled_exception(loop, context):
    """Log faults nothing else caught; the service keeps running"""
    exception = context.get("exception")
    message = context.get("message", "Unhandled exception")
    if exception is not None:
        logger.error(f"Uncaught exception: {message}: {exception!r}", exc_info=exception)
    else:
        logger.error(f"Uncaught exception: {message}")


def _on_background_task_done(task: asyncio.Task) -> None:
    background_tasks.discard(task)
    if task.cancelled():
        return
    exception = task.exception()
    if exception is not None:
        logger.error(f"Background task {task.get_name()} failed: {exception!r}")


async def startup_event():
    """Start the upstream feed ingestor"""
    global pumpportal_client

    logger.info("Starting Pumpflow backend services...")

    asyncio.get_running_loop().set_exception_handler(log_unhandled_exception)

    store = get_token_store()
    pumpportal_client = PumpPortalWebSocketClient.from_env(store=store)

    # Start PumpPortal client as background task
    feed_task = asyncio.create_task(pumpportal_client.start(), name="pumpportal-feed")
    background_tasks.add(feed_task)
    feed_task.add_done_callback(_on_background_task_done)

    logger.info("Listening for PumpFun tokens...")

async def shutdown_event():
    """Close the upstream connection and stop background tasks"""
    logger.info("Shutting down Pumpflow backend services...")

    try:
        if pumpportal_client:
            await pumpportal_client.stop()

        # Reconnect timers are abandoned with their tasks
        for task in list(background_tasks):
            task.cancel()

        if background_tasks:
            await asyncio.gather(*background_tasks, return_exceptions=True)

        logger.info("All services shut down successfully")

    except Exception as e:
        logger.error(f"Error during shutdown: {e}")


@asynccontextmanager
async def lifespan(app):
    await startup_event()
    try:
        yield
    finally:
        await shutdown_event()


# Create the Starlette application
app = Starlette(
    routes=routes,
    lifespan=lifespan,
    middleware=[
        # Downstream web clients call from other origins
        Middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_methods=["*"],
            allow_headers=["*"],
        ),
    ],
)
