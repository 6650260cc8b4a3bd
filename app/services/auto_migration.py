"""
Database Auto-Migration: Creates tables automatically on app startup.
Alembic (see alembic/versions) carries the same schema for managed deployments.
"""
from app.models.db_models import Base
from app.services.db_service import engine
import logging

logger = logging.getLogger(__name__)


async def run_auto_migration(bind=None):
    """Create every missing table. Existing tables are left untouched."""
    target = bind or engine
    async with target.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info(f"Tables verified: {', '.join(sorted(Base.metadata.tables))}")
