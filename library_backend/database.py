import uuid
from sqlalchemy import create_engine, DateTime
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool
from sqlalchemy.types import TypeDecorator
from urllib.parse import quote_plus
from library_backend.config import settings
from library_backend.utils.timezone import ensure_aware


def _postgres_url() -> str:
    db_user = quote_plus(settings.db_user)
    db_password = quote_plus(settings.db_password)
    return f"postgresql://{db_user}:{db_password}@{settings.db_host}:{settings.db_port}/{settings.db_name}"


DATABASE_URL = settings.database_url or _postgres_url()

if DATABASE_URL.startswith("sqlite"):
    # Single shared connection so in-memory databases survive across sessions
    engine = create_engine(
        DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )
else:
    # SSL connection arguments
    connect_args = {}
    if settings.db_ssl_mode != "disable":
        connect_args["sslmode"] = settings.db_ssl_mode
        if settings.db_ssl_cert:
            connect_args["sslcert"] = settings.db_ssl_cert
        if settings.db_ssl_key:
            connect_args["sslkey"] = settings.db_ssl_key
        if settings.db_ssl_root_cert:
            connect_args["sslrootcert"] = settings.db_ssl_root_cert

    engine = create_engine(
        DATABASE_URL,
        pool_pre_ping=True,
        pool_recycle=300,
        pool_size=10,
        max_overflow=20,
        echo=False,
        connect_args=connect_args
    )

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


class UTCDateTime(TypeDecorator):
    """Timezone-aware timestamp that always round-trips as UTC.

    Backends without native timezone support (SQLite) hand back naive
    values; those are stored and read as UTC wall time.
    """
    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return ensure_aware(value)

    def process_result_value(self, value, dialect):
        return ensure_aware(value)


def new_id() -> str:
    return str(uuid.uuid4())


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
