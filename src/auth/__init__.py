"""
AUTOLOC Access Core - Authentication & Authorization

Session unique (anonyme, client ou staff), suivi staff local et
garde de navigation.
"""

from .interfaces import (
    Anonymous,
    CustomerSession,
    StaffSession,
    SessionState,
    ANONYMOUS,
    Phase,
    SessionSnapshot,
    RouteRequirement,
    Allow,
    RedirectTo,
    Decision,
    ALLOW,
    ISessionManager,
    IRouteGuard,
)
from .session_manager import SessionManager
from .route_table import RouteTable, UnknownRouteError
from .route_guard import RouteGuard
from .factory import AccessCore, build_access_core

__all__ = [
    # Interfaces
    "ISessionManager",
    "IRouteGuard",
    # Data classes
    "Anonymous",
    "CustomerSession",
    "StaffSession",
    "SessionState",
    "ANONYMOUS",
    "Phase",
    "SessionSnapshot",
    "RouteRequirement",
    "Allow",
    "RedirectTo",
    "Decision",
    "ALLOW",
    # Implementations
    "SessionManager",
    "RouteTable",
    "RouteGuard",
    "AccessCore",
    "build_access_core",
    # Exceptions
    "UnknownRouteError",
]
