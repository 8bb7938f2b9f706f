"""
Klara Backend — ORM Models
============================

Importing this package registers every table on `Base.metadata`
(Alembic's env.py and the test fixtures rely on that).
"""

from app.models.chat import ChatMessage, ChatSession
from app.models.note import Note
from app.models.user import User

__all__ = ["ChatMessage", "ChatSession", "Note", "User"]
