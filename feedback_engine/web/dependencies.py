from __future__ import annotations

from collections.abc import Generator
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.orm import Session, sessionmaker

from feedback_engine.infrastructure.config import DatabaseConfig, get_settings
from feedback_engine.infrastructure.db import create_database_engine, create_session_factory
from feedback_engine.infrastructure.exceptions import PermissionError
from feedback_engine.infrastructure.logging import set_context
from feedback_engine.infrastructure.notifications import LoggingNotifier, Notifier
from feedback_engine.infrastructure.storage import BlobStore, LocalBlobStore
from feedback_engine.web.schemas import ErrorDetail


def get_db_config(request: Request) -> DatabaseConfig:
    config = getattr(request.app.state, "db_config", None)
    if config is None:
        config = get_settings().database
        request.app.state.db_config = config
    return config


def get_session_factory(request: Request) -> sessionmaker[Session]:
    cached_factory = getattr(request.app.state, "session_factory", None)
    if cached_factory is not None:
        return cached_factory

    engine = create_database_engine(get_db_config(request))
    session_factory = create_session_factory(engine)

    request.app.state.db_engine = engine
    request.app.state.session_factory = session_factory
    return session_factory


def get_db_session(request: Request) -> Generator[Session, None, None]:
    session_factory = get_session_factory(request)
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


def get_blob_store(request: Request) -> BlobStore:
    store = getattr(request.app.state, "blob_store", None)
    if store is None:
        store = LocalBlobStore()
        request.app.state.blob_store = store
    return store


def get_notifier(request: Request) -> Notifier:
    notifier = getattr(request.app.state, "notifier", None)
    if notifier is None:
        notifier = LoggingNotifier()
        request.app.state.notifier = notifier
    return notifier


@dataclass(frozen=True)
class Actor:
    id: Optional[str]
    role: Optional[str]


def get_actor(
    x_actor_id: Optional[str] = Header(default=None),
    x_actor_role: Optional[str] = Header(default=None),
) -> Actor:
    """Identity supplied by the portal's session layer in front of this service."""
    actor = Actor(id=x_actor_id, role=x_actor_role.lower() if x_actor_role else None)
    if actor.id:
        set_context(actor_id=actor.id)
    return actor


def require_editor(actor: Actor = Depends(get_actor)) -> Actor:
    if actor.role not in get_settings().security.editor_roles:
        exc = PermissionError(
            f"Role {actor.role!r} may not edit templates or issue grants", operation="editor"
        )
        detail = ErrorDetail(code="forbidden", message=exc.user_message)
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=detail.model_dump())
    return actor
