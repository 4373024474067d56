"""Bearer-token verifier interface."""

from abc import ABC, abstractmethod

from app.schemas.auth import AuthPrincipal


class AuthVerificationError(Exception):
    """Raised when a token cannot be verified or carries unusable claims."""


class TokenVerifier(ABC):
    """Provider-neutral token verification.

    Implementations resolve the caller's role and, for tenant members, the
    organization the principal belongs to.
    """

    @abstractmethod
    def verify_token(self, token: str) -> AuthPrincipal:
        """Verify ``token`` and return the normalized principal."""


__all__ = ["AuthVerificationError", "TokenVerifier"]
