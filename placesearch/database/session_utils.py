"""
Dialect checks for sessions handed to the search repositories.

Searches run against PostgreSQL in production, but unit tests pass mocks and
other engines; statement-level settings are only sent where they exist.
"""

from __future__ import annotations

from sqlalchemy.exc import InvalidRequestError
from sqlalchemy.orm import Session

POSTGRESQL = "postgresql"


def session_dialect(session: Session, default: str = POSTGRESQL) -> str:
    """Name of the dialect the session is bound to, or ``default`` if unbound."""
    try:
        bind = session.get_bind()
    except InvalidRequestError:
        # UnboundExecutionError subclasses InvalidRequestError
        return default
    name = getattr(getattr(bind, "dialect", None), "name", None)
    return name if isinstance(name, str) and name else default


def supports_local_statement_timeout(session: Session) -> bool:
    """True when ``set_config('statement_timeout', ..., true)`` is available."""
    return session_dialect(session) == POSTGRESQL
