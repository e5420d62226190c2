"""
Schema bootstrap for local runs.

``run.py`` calls ``initialize_database`` on startup. Deployed databases are
managed with ``flask db upgrade``; every step here can be repeated safely.
"""

import logging

from sqlalchemy import text

from axori_api import db

logger = logging.getLogger(__name__)

POSTGRES_EXTENSIONS = ('uuid-ossp',)


def ensure_extensions():
    """Install the PostgreSQL extensions the schema relies on"""
    dialect = db.engine.dialect.name
    if dialect != 'postgresql':
        logger.info(f"{dialect} database, no extensions to install")
        return
    for name in POSTGRES_EXTENSIONS:
        try:
            db.session.execute(text(f'CREATE EXTENSION IF NOT EXISTS "{name}"'))
            db.session.commit()
        except Exception as e:
            db.session.rollback()
            logger.warning(f"Extension {name} unavailable: {e}")


def ensure_schema():
    import axori_api.models  # noqa: F401

    db.create_all()
    logger.info(f"Schema ready ({len(db.metadata.tables)} tables)")


def ensure_forge_budget():
    """Open today's token budget row so the admin dashboard has something to show"""
    from axori_api.utils.token_budget import get_or_create_budget

    budget = get_or_create_budget()
    db.session.commit()
    logger.info(f"Forge budget for {budget.date}: {budget.daily_limit_tokens} tokens")
    return budget


def initialize_database():
    """Returns False instead of raising so the server can still boot"""
    try:
        ensure_extensions()
        ensure_schema()
        ensure_forge_budget()
        return True
    except Exception as e:
        db.session.rollback()
        logger.error(f"Could not initialize database: {e}")
        return False
