from .client import AuthClient, AuthTokens, AuthUser
from .errors import AuthError
from .service import AuthService, SignUpResult
from .session import SessionCache, UserSession

__all__ = [
    "AuthClient",
    "AuthError",
    "AuthService",
    "AuthTokens",
    "AuthUser",
    "SessionCache",
    "SignUpResult",
    "UserSession",
]
