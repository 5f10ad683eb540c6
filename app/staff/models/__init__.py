from app.core.database import Base
from .sessions import ClassSession, ClassSessionRoster

__all__ = [
    "Base",
    "ClassSession",
    "ClassSessionRoster",
]
