from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base

from .config import DATABASE_URL
from .logging_config import get_logger

log = get_logger(__name__)

engine = create_engine(
    DATABASE_URL,
    connect_args={"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {},
)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def create_db_and_tables(bind=None):
    # Models register themselves on Base when imported.
    from . import models, finance_models  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)
    log.info("database_ready", dialect=(bind or engine).dialect.name)
