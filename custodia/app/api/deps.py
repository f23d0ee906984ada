from __future__ import annotations

from typing import Generator

from fastapi import Header

from custodia.app.core.config import Settings, get_settings
from custodia.app.db.session import SessionLocal


def get_db() -> Generator:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_app_settings() -> Settings:
    return get_settings()


def get_actor_id(actor_id: int | None = Header(default=None, alias="X-Actor-Id")) -> int | None:
    # sem autenticação: o chamador informa quem está agindo
    return actor_id
