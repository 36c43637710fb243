"""
API Dependencies package.

Cross-cutting concerns: authentication and service access.
"""

from .auth import verify_api_key, is_api_auth_enabled
from .service import get_service

__all__ = ["verify_api_key", "is_api_auth_enabled", "get_service"]
