"""
API Routers package.
"""

from . import stories

__all__ = ["stories"]
