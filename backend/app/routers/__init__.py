"""Docket Deadline Engine - API Routers"""
from .automated_deadlines import router as automated_deadlines_router
from .deadline_calculator import router as deadline_calculator_router
from .reference import router as reference_router
from .scheduler import router as scheduler_router

__all__ = [
    "automated_deadlines_router",
    "deadline_calculator_router",
    "reference_router",
    "scheduler_router",
]
