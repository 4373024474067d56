"""Mock auth verifier for local development and tests."""

from pydantic import ValidationError as PydanticValidationError

from app.adapters.auth.base import AuthVerificationError, TokenVerifier
from app.schemas.auth import AuthPrincipal, UserRole


class MockTokenVerifier(TokenVerifier):
    """Accepts deterministic test tokens only.

    Expected token format:
    - ``test:<user_id>``
    - ``test:<user_id>:<role>``
    - ``test:<user_id>:<role>:<organization_id>``
    """

    def verify_token(self, token: str) -> AuthPrincipal:
        parts = token.split(":")
        if len(parts) not in (2, 3, 4) or parts[0] != "test":
            raise AuthVerificationError("Invalid bearer token")

        user_id = parts[1].strip()
        role = parts[2].strip().upper() if len(parts) >= 3 else UserRole.AGENT.value
        organization_id = parts[3].strip() if len(parts) == 4 else ""

        if not user_id:
            raise AuthVerificationError("Bearer token missing user identity")
        if not role:
            raise AuthVerificationError("Bearer token missing role")

        try:
            return AuthPrincipal(user_id=user_id, role=role, organization_id=organization_id or None)
        except PydanticValidationError as exc:
            raise AuthVerificationError("Bearer token carries an unknown role") from exc


__all__ = ["MockTokenVerifier"]
