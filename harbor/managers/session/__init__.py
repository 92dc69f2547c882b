"""Session management."""

from harbor.managers.session.reaper import IdleSessionReaper
from harbor.managers.session.session import SessionManager

__all__ = ["IdleSessionReaper", "SessionManager"]
