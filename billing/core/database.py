from sqlalchemy import create_engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from billing.core.config import get_settings

settings = get_settings()


def normalize_database_url(url: str) -> str:
    # Render/Heroku hand out 'postgres://', SQLAlchemy only accepts 'postgresql://'
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql://", 1)
    return url


db_url = normalize_database_url(settings.database_url)
is_sqlite = db_url.startswith("sqlite")

engine = create_engine(
    db_url,
    # "check_same_thread" is ONLY for SQLite
    connect_args={"check_same_thread": False} if is_sqlite else {},
    pool_pre_ping=not is_sqlite,
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def init_db() -> None:
    """Register every model on ``Base`` and create missing tables."""
    from billing.models import customer, marketplace_config, marketplace_order, product, sale, user  # noqa: F401

    Base.metadata.create_all(bind=engine)


def get_db():
    db: Session = SessionLocal()
    try:
        yield db
    finally:
        db.close()
