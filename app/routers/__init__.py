# app/routers/__init__.py
"""
API routers for v1 endpoints.
"""

from app.routers.jobs import router as jobs_router

__all__ = [
    "jobs_router",
]
