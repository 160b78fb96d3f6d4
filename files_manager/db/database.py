import logging
from typing import Optional

from fastapi import Request
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker, Session

from ..core.exceptions import InfrastructureError

logger = logging.getLogger(__name__)

Base = declarative_base()


class Database:
    """Persistent store adapter with an explicit connect/close lifecycle."""

    def __init__(self, url: str):
        self.url = url
        self.engine: Optional[Engine] = None
        self._session_factory = None

    def connect(self) -> None:
        if self.engine is not None:
            return
        if self.url.startswith("sqlite"):
            # Request handlers and worker threads share the engine
            engine = create_engine(
                self.url,
                connect_args={"check_same_thread": False},
                echo=False,
            )
        else:
            # Create engine with connection pooling and resilience settings
            engine = create_engine(
                self.url,
                pool_size=10,
                max_overflow=20,
                pool_pre_ping=True,  # Verify connections before use
                pool_recycle=3600,   # Recycle connections every hour
                echo=False,
            )
        from . import models  # noqa: F401  registers tables on Base

        Base.metadata.create_all(bind=engine)
        self.engine = engine
        self._session_factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
        logger.info("Connected to database %s", engine.url.render_as_string(hide_password=True))

    def is_alive(self) -> bool:
        if self.engine is None:
            return False
        try:
            with self.engine.connect() as connection:
                connection.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.warning("Database health check failed: %s", e)
            return False

    def session(self) -> Session:
        if self._session_factory is None:
            raise InfrastructureError("Database is not connected")
        return self._session_factory()

    def close(self) -> None:
        if self.engine is not None:
            self.engine.dispose()
            self.engine = None
            self._session_factory = None
            logger.info("Database connection closed")


# Dependency to get a DB session for each request
def get_db(request: Request):
    db = request.app.state.database.session()
    try:
        yield db
    except Exception as e:
        logger.error(f"Error occurred while accessing the database: {str(e)}")
        db.rollback()  # Ensure rollback on error
        raise
    finally:
        db.close()
