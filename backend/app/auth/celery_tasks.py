import logging
from functools import lru_cache

from sqlalchemy import Engine, create_engine, delete
from sqlalchemy.orm import Session as OrmSession
from sqlalchemy.orm import sessionmaker

from app.auth.models import Session
from app.celery_app import celery
from app.common.base_models import utcnow
from app.config import settings

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def _sync_engine() -> Engine:
    """One pooled engine per worker process, shared by every task run."""
    url = settings.database_url
    if url.startswith("postgresql+asyncpg"):
        url = url.replace("postgresql+asyncpg", "postgresql+psycopg2", 1)
    elif url.startswith("sqlite+aiosqlite"):
        url = url.replace("sqlite+aiosqlite", "sqlite", 1)
    return create_engine(url, pool_pre_ping=True)


def _get_sync_session() -> OrmSession:
    return sessionmaker(bind=_sync_engine())()


@celery.task(name="purge_expired_sessions", bind=True, max_retries=3)
def purge_expired_sessions(self) -> int:
    session = _get_sync_session()
    try:
        result = session.execute(delete(Session).where(Session.expires_at <= utcnow()))
        session.commit()
        logger.info("Purged %d expired session(s)", result.rowcount)
        return result.rowcount
    except Exception as exc:
        session.rollback()
        logger.error("Error purging expired sessions: %s", exc)
        raise self.retry(exc=exc, countdown=2 ** self.request.retries)
    finally:
        session.close()
