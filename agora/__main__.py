"""
agora.__main__ — Entry point for ``python -m agora``
======================================================

Wiring:
1. Load .env (secrets, DATABASE_URL).
2. Load config.yaml (port, token lifetime, bootstrap admins).
3. Create the SQLAlchemy engine, ensure tables exist and seed defaults.
4. Serve the FastAPI app with uvicorn (blocking).
"""

from __future__ import annotations

import logging
import sys

import uvicorn
from dotenv import load_dotenv

from agora.config import load_config
from agora.database.engine import create_db_engine, init_db

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("agora")


def main() -> None:
    """Bootstrap the database and run the API server."""
    load_dotenv()

    try:
        cfg = load_config()
    except FileNotFoundError as exc:
        logger.critical("%s", exc)
        sys.exit(1)
    logger.info("Loaded config for community %r", cfg.community_name)

    try:
        engine = create_db_engine()
    except RuntimeError as exc:
        logger.critical("%s", exc)
        sys.exit(1)
    init_db(engine)
    engine.dispose()

    uvicorn.run("agora.api.main:app", host="0.0.0.0", port=cfg.api_port, log_level="info")


if __name__ == "__main__":
    main()
