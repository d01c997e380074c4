from __future__ import annotations

from typing import Generator

from fastapi import Header, HTTPException

from backoffice.app.db.session import SessionLocal


def get_db() -> Generator:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_actor_id(x_actor_id: str | None = Header(default=None, alias="X-Actor-Id")) -> str:
    """Actor id forwarded by the authenticating gateway, stored in audit columns."""
    if not x_actor_id or not x_actor_id.strip():
        raise HTTPException(status_code=401, detail="Missing X-Actor-Id header")
    return x_actor_id.strip()
