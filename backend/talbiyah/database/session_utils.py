"""
Dialect probes for repositories that pick SQL per backend.

Production runs on PostgreSQL; the test-suite runs on SQLite. Repositories
ask these helpers which statement flavour to emit instead of reaching into
``Session.bind`` themselves.
"""

from __future__ import annotations

from typing import Any, Optional

from sqlalchemy.orm import Session


def _session_dialect(session: Session) -> Optional[Any]:
    try:
        bind = session.get_bind()
    except Exception:
        return None
    return getattr(bind, "dialect", None)


def get_dialect_name(session: Session, default: str = "sqlite") -> str:
    """Dialect name of the session's bind, or ``default`` when it cannot be resolved."""
    dialect = _session_dialect(session)
    name = getattr(dialect, "name", None)
    return name or default


def supports_update_returning(session: Session) -> bool:
    """True when ``UPDATE ... RETURNING`` is available (PostgreSQL, SQLite >= 3.35)."""
    dialect = _session_dialect(session)
    return bool(getattr(dialect, "update_returning", False))
