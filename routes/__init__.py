"""
API route modules.

Each module defines routes for one domain area.
"""

from routes.wizard import router as wizard_router

__all__ = [
    "wizard_router",
]
