"""Database engine and session factory used across the application."""

from collections.abc import Iterator
from contextlib import contextmanager

from loguru import logger
from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlmodel import Session, create_engine

from src.catalog.runtime.config.config_data import ConfigData
from src.catalog.runtime.context import get_config


class DbSessionService:
    def __init__(self, config: ConfigData | None = None, engine: Engine | None = None):
        """Initialize the shared database engine and session factory.

        Args:
            config: Configuration to build the engine from; defaults to the
                current application context
            engine: Pre-built engine (tests pass an in-memory SQLite engine)
        """
        main_config = config or get_config()
        if engine is not None:
            self._engine = engine
            return

        db_config = main_config.database
        logger.info(
            "Configuring database engine for environment: {}",
            main_config.app.environment,
        )

        engine_kwargs = {
            "pool_pre_ping": True,
            "echo": False,
            "connect_args": self._get_connect_args(main_config),
        }

        # SQLite's default pool does not accept sizing arguments
        if "sqlite" not in db_config.url:
            engine_kwargs.update(
                {
                    "pool_size": db_config.pool_size,
                    "max_overflow": db_config.max_overflow,
                    "pool_timeout": db_config.pool_timeout,
                    "pool_recycle": db_config.pool_recycle,
                }
            )

        self._engine = create_engine(db_config.url, **engine_kwargs)

        if main_config.app.environment == "production":
            logger.info(
                "Database engine initialized",
                extra={
                    "pool_size": db_config.pool_size,
                    "max_overflow": db_config.max_overflow,
                    "pool_timeout": db_config.pool_timeout,
                    "pool_recycle": db_config.pool_recycle,
                },
            )

    @property
    def engine(self) -> Engine:
        return self._engine

    def _get_connect_args(self, config: ConfigData) -> dict:
        """Get database-specific connection arguments."""
        connect_args = {}

        if "postgresql" in config.database.url:
            connect_args.update(
                {
                    "application_name": f"{config.app.environment}_catalog",
                    "connect_timeout": 30,
                }
            )

        elif "sqlite" in config.database.url:
            connect_args.update(
                {
                    "check_same_thread": False,
                    "timeout": 20,  # Lock timeout
                }
            )

            if config.app.environment == "production":
                logger.warning(
                    "SQLite is not recommended for production use. "
                    "Consider PostgreSQL for better performance and reliability."
                )

        return connect_args

    def get_session(self) -> Session:
        """Return a new SQLModel session bound to the shared engine."""
        return Session(self._engine, expire_on_commit=False, autoflush=True)

    @contextmanager
    def session_scope(self) -> Iterator[Session]:
        """Context manager style helper for repositories and tests."""
        db = self.get_session()
        try:
            yield db
            db.commit()
        except Exception as e:
            db.rollback()
            logger.error(
                "Database transaction failed",
                extra={
                    "error_type": type(e).__name__,
                    "error_message": str(e),
                },
            )
            raise
        finally:
            db.close()

    def health_check(self) -> bool:
        """Perform a health check on the database connection."""
        try:
            with self._engine.connect() as connection:
                connection.execute(text("SELECT 1"))
                return True
        except Exception as e:
            logger.error(
                "Database health check failed",
                extra={
                    "error_type": type(e).__name__,
                    "error_message": str(e),
                },
            )
            return False

    def dispose(self) -> None:
        self._engine.dispose()
