"""Student Routers Package"""
from .attendance import router as attendance_router

__all__ = [
    "attendance_router",
]
