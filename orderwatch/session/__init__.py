"""Authentication session lifecycle."""

from orderwatch.session.manager import SessionManager

__all__ = ["SessionManager"]
