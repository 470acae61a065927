"""
Database connection management.

Uses the Cloud SQL Python Connector with IAM authentication when a Cloud SQL
instance is configured, and a plain SQLAlchemy URL otherwise.
"""

import os

from google.cloud.sql.connector import Connector
from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from mailpack.db.tables import metadata

DEFAULT_DATABASE_URL = "sqlite:///mailpack.db"


class DatabaseConnection:
    """
    Manages the process-wide engine and session factory.

    Usage:
        # Initialize at app startup
        DatabaseConnection.initialize(
            instance_connection_name="project:region:instance",
            db_name="mailpack",
            db_user="service-account@project.iam"
        )
        # or, without Cloud SQL
        DatabaseConnection.initialize(database_url="sqlite:///mailpack.db")

        # Sessions come from UnitOfWork, which calls get_session()

        # Close at app shutdown
        DatabaseConnection.close()
    """

    _engine: Engine | None = None
    _connector: Connector | None = None
    _session_factory: sessionmaker | None = None
    _initialized: bool = False

    @classmethod
    def initialize(
        cls,
        instance_connection_name: str | None = None,
        db_name: str | None = None,
        db_user: str | None = None,
        database_url: str | None = None,
        pool_size: int = 5,
        max_overflow: int = 10,
        pool_timeout: int = 30,
        pool_recycle: int = 1800,
    ):
        """
        Initialize the database connection pool.

        Args:
            instance_connection_name: Cloud SQL instance (project:region:instance)
            db_name: Database name
            db_user: Database user (service account email for IAM auth)
            database_url: SQLAlchemy URL used when no Cloud SQL instance is set
            pool_size: Base connection pool size
            max_overflow: Additional connections allowed beyond pool_size
            pool_timeout: Seconds to wait for a connection
            pool_recycle: Recycle connections after this many seconds
        """
        if cls._initialized:
            return

        # Get config from environment if not provided
        instance_connection_name = instance_connection_name or os.getenv(
            "INSTANCE_CONNECTION_NAME"
        )

        if instance_connection_name and not database_url:
            db_name = db_name or os.getenv("DB_NAME", "mailpack")
            db_user = db_user or os.getenv("DB_USER")
            if not db_user:
                raise ValueError(
                    "DB_USER environment variable is required. "
                    "Should be service account email for IAM auth."
                )

            cls._connector = Connector()

            def getconn():
                assert cls._connector is not None
                return cls._connector.connect(
                    instance_connection_name,
                    "pg8000",
                    user=db_user,
                    db=db_name,
                    enable_iam_auth=True,
                )

            cls._engine = create_engine(
                "postgresql+pg8000://",
                creator=getconn,
                pool_size=pool_size,
                max_overflow=max_overflow,
                pool_timeout=pool_timeout,
                pool_recycle=pool_recycle,
                pool_pre_ping=True,  # Verify connections before use
            )
        else:
            url = database_url or os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL)
            cls._engine = _create_url_engine(url)

        cls._session_factory = sessionmaker(bind=cls._engine)
        cls._initialized = True

    @classmethod
    def create_schema(cls):
        """Create all tables that do not exist yet."""
        metadata.create_all(cls.get_engine())

    @classmethod
    def get_engine(cls) -> Engine:
        """Get the SQLAlchemy engine."""
        if not cls._initialized or cls._engine is None:
            raise RuntimeError(
                "Database not initialized. Call DatabaseConnection.initialize() first."
            )
        return cls._engine

    @classmethod
    def close(cls):
        """Close the connection pool and connector."""
        if cls._engine:
            cls._engine.dispose()
            cls._engine = None

        if cls._connector:
            cls._connector.close()
            cls._connector = None

        cls._session_factory = None
        cls._initialized = False

    @classmethod
    def is_initialized(cls) -> bool:
        """Check if the database connection is initialized."""
        return cls._initialized

    @classmethod
    def get_session(cls) -> Session:
        """
        Get a new database session.

        The caller is responsible for committing/rolling back and closing the session.
        UnitOfWork wraps this with commit, rollback and close.
        """
        if not cls._initialized or cls._session_factory is None:
            raise RuntimeError(
                "Database not initialized. Call DatabaseConnection.initialize() first."
            )

        return cls._session_factory()


def _create_url_engine(url: str) -> Engine:
    """Create an engine for a plain SQLAlchemy URL."""
    if url.startswith("sqlite"):
        kwargs: dict = {"connect_args": {"check_same_thread": False}}
        if url in ("sqlite://", "sqlite:///:memory:"):
            # Share the single in-memory database across sessions
            kwargs["poolclass"] = StaticPool
        return create_engine(url, **kwargs)

    return create_engine(url, pool_pre_ping=True)
