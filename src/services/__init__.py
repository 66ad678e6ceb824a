"""Services package exports."""

from src.services.auth_service import AuthService, build_auth_service
from src.services.logging_service import configure_logging, get_logger

__all__ = [
    "AuthService",
    "build_auth_service",
    "configure_logging",
    "get_logger",
]
