"""
voterelay.__main__ — Entry point for ``python -m voterelay``
============================================================

Wiring:
1. Load .env (secrets).
2. Load config.yaml (infrastructure settings).
3. Create the SQLAlchemy engine and ensure tables exist.
4. Serve the FastAPI app with uvicorn (blocking).

Run with::

    uv run python -m voterelay
"""

from __future__ import annotations

import logging
import os

import uvicorn
from dotenv import load_dotenv

from voterelay.api.deps import get_config, get_engine
from voterelay.database.engine import init_db

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("voterelay")


def main() -> None:
    """Bootstrap and serve the vote relay."""

    # 1. Environment variables (secrets).
    load_dotenv()

    if not os.getenv("DISCORD_TOKEN"):
        logger.warning("DISCORD_TOKEN is not set; test-vote DMs will be skipped.")

    # 2. Infrastructure configuration.
    cfg = get_config()
    logger.info("Starting %s on %s:%d", cfg.service_name, cfg.host, cfg.port)

    # 3. Database.
    engine = get_engine()
    init_db(engine)

    # 4. HTTP.
    from voterelay.api.main import app

    uvicorn.run(app, host=cfg.host, port=cfg.port, log_config=None)


if __name__ == "__main__":
    main()
