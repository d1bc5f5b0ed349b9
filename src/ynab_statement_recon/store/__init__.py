"""Local statement transaction store."""

from .base import StatementStore
from .database import SqlStatementStore

__all__ = ["StatementStore", "SqlStatementStore"]
