"""HTTP surface of the assistant."""

from .auth import AuthenticationError, AuthSettings, configure_auth, get_user_context_jwt
from .router import create_assistant_dependencies, get_pool, router

__all__ = [
    "AuthSettings",
    "AuthenticationError",
    "configure_auth",
    "create_assistant_dependencies",
    "get_pool",
    "get_user_context_jwt",
    "router",
]
