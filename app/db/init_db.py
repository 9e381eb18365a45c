"""
Create tables for local runs (DB_AUTO_CREATE=true) and tests.
Production schema changes go through migrations.
"""
import logging

from app.db.base import Base
from app.db.session import engine

logger = logging.getLogger(__name__)


def import_models() -> None:
    """Register every model on Base.metadata."""
    from app.models import (  # noqa: F401
        audit_log,
        category,
        daily_task,
        job_account,
        order,
        profile,
        purchase,
        support_ticket,
        task_progress,
        user,
        user_role,
    )


def init_db() -> None:
    import_models()
    Base.metadata.create_all(bind=engine)
    logger.info("db_tables_created")
