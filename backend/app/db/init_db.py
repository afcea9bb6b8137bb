"""
Create the ledger tables (trips, participants, expenses, shares, fx rates, settlements).

Run with ``python -m app.db.init_db`` from the backend directory.
"""
import logging
from app.core.config import settings
from app.core.logging import init_logging
from app.db.session import init_db

logger = logging.getLogger(__name__)

if __name__ == "__main__":
    init_logging(level=settings.LOG_LEVEL, debug=settings.DEBUG)
    logger.info("Creating ledger tables...")
    init_db()
    logger.info("Ledger tables ready")
