import secrets
from collections.abc import Generator
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Integer, String, create_engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from . import config

connect_args = {"check_same_thread": False} if config.IS_SQLITE else {}
engine = create_engine(config.DB_URL, future=True, pool_pre_ping=True, connect_args=connect_args)
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
Base = declarative_base()


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def new_api_key() -> str:
    return secrets.token_hex(32)


class User(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    name = Column(String(255), default="")
    api_key = Column(String(128), unique=True, index=True, default=new_api_key)
    created_at = Column(DateTime(timezone=True), default=now_utc)


def init_db():
    Base.metadata.create_all(engine)


def get_db() -> Generator[Session, None, None]:
    s = SessionLocal()
    try:
        yield s
    finally:
        s.close()
