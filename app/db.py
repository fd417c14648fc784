import logging
from contextlib import contextmanager

import psycopg
from psycopg.rows import dict_row

from .settings import DATABASE_CONNECT_TIMEOUT_SECONDS, DATABASE_URL

logger = logging.getLogger(__name__)


@contextmanager
def get_conn():
    """Yield a dict-row connection; commit on success, roll back on any error."""
    conn = psycopg.connect(
        DATABASE_URL,
        row_factory=dict_row,
        connect_timeout=DATABASE_CONNECT_TIMEOUT_SECONDS,
    )
    try:
        yield conn
        conn.commit()
    except Exception:
        logger.warning("Rolling back database transaction", exc_info=True)
        conn.rollback()
        raise
    finally:
        conn.close()
