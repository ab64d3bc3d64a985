"""
voterelay.api.main — FastAPI application entry point
=====================================================

Run with::

    uvicorn voterelay.api.main:app --port 8080

or ``python -m voterelay``, which also configures logging and creates the
tables first.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI

load_dotenv()

from voterelay import __version__  # noqa: E402
from voterelay.api.deps import get_tasks  # noqa: E402
from voterelay.api.routes.webhooks import router as webhooks_router  # noqa: E402

logger = logging.getLogger(__name__)

# Grace period for detached side effects (DMs, forwarding) at shutdown
SHUTDOWN_DRAIN_SECONDS = 10.0


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle — let detached tasks finish on the way out."""
    logger.info("Vote relay API started (v%s)", __version__)
    yield
    tasks = get_tasks()
    if tasks.pending:
        logger.info("Waiting for %d detached task(s)", tasks.pending)
        await tasks.drain(timeout=SHUTDOWN_DRAIN_SECONDS)
        tasks.cancel_all()
    logger.info("Vote relay API shutting down")


app = FastAPI(
    title="Vote Relay",
    version=__version__,
    lifespan=lifespan,
)

app.include_router(webhooks_router)


@app.get("/health")
def health():
    return {"status": "ok"}
