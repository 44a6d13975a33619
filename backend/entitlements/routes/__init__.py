"""Entitlements Routes"""

from .usage import router as usage_router
from .fees import router as fees_router

__all__ = [
    "usage_router",
    "fees_router",
]
