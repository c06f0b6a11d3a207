# backend/icm/core/config.py
from typing import List, Literal

from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker


class Settings(BaseSettings):
    # --- Database ---
    DATABASE_URL: str = "sqlite:///./icm.db"

    # sql    -> durable store only (startup fails if the database is unreachable)
    # memory -> process-scoped store, keeps version history for the process lifetime
    # auto   -> durable store, degrading to an in-memory fallback when unreachable
    STORAGE_BACKEND: Literal["sql", "memory", "auto"] = "auto"

    # --- Scheme rules ---
    VALIDATE_KPI_FIELDS: bool = False
    VERSION_RETRY_LIMIT: int = 3

    # --- Logging ---
    LOG_LEVEL: str = "INFO"

    # --- CORS ---
    CORS_ALLOW_ORIGINS: List[str] = ["*"]

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True)


settings = Settings()


def make_engine(url: str) -> Engine:
    # SQLite needs check_same_thread off for the threadpool FastAPI runs sync routes on
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, connect_args=connect_args, future=True)


def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False, future=True)


# alembic/env.py binds to this engine
engine = make_engine(settings.DATABASE_URL)
