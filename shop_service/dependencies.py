from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable

from fastapi import Request

from .config import Settings
from .notifications import Notifier
from .worker import TaskWorker


def utc_now() -> datetime:
    """Current UTC time, naive, the way timestamps are stored."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


@dataclass
class Dependencies:
    """Everything the services need, handed to them explicitly."""

    settings: Settings
    session_factory: Callable
    gateway: object
    notifier: Notifier
    engine: object = None
    clock: Callable[[], datetime] = utc_now
    worker: TaskWorker = field(default_factory=TaskWorker)


def get_deps(request: Request) -> Dependencies:
    return request.app.state.deps


def get_db(request: Request):
    """FastAPI dependency to get a DB session for a single request."""
    db = request.app.state.deps.session_factory()
    try:
        yield db
    finally:
        # Ensure the session is always closed after the request is finished.
        db.close()


def build_dependencies(settings: Settings) -> Dependencies:
    """Builds the production collaborators from settings."""
    from .database import build_engine, build_session_factory
    from .gateway import AlfaBankGateway
    from .notifications import build_notifier

    engine = build_engine(settings.database_url)
    return Dependencies(
        settings=settings,
        session_factory=build_session_factory(engine),
        gateway=AlfaBankGateway.from_settings(settings),
        notifier=build_notifier(settings),
        engine=engine,
    )
