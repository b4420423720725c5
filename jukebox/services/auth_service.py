"""
🔐 Auth Service - Music Service session management
==================================================

Wraps the Token Lifecycle Manager for the UI: sign-in URL, redirect
handling, authentication status and sign-out.
"""

from typing import Optional

from . import BaseService, ServiceResult
from ..core.tokens import TokenLifecycleManager, TokenState
from ..errors import JukeboxError, TokenError


class AuthService(BaseService):
    """Service for signing in and out of the Music Service."""

    def __init__(self, tokens: TokenLifecycleManager):
        super().__init__("auth")
        self.tokens = tokens

    async def get_authentication_status(self) -> ServiceResult:
        """Check whether a usable token can be produced right now."""
        try:
            token = await self.tokens.get_valid_token()
            if not token:
                return self._error_result(
                    "Music Service sign-in required",
                    error_code="AUTH_REQUIRED"
                )

            return self._success_result(
                data={
                    "authenticated": True,
                    "user_id": await self.tokens.get_user_id(),
                    "token_cache": await self.tokens.get_info(),
                },
                message="Music Service authentication successful"
            )
        except Exception as e:
            return self._handle_error(e, "get_authentication_status")

    def get_sign_in_url(self, state: Optional[str] = None) -> ServiceResult:
        try:
            return self._success_result(data={"url": self.tokens.build_authorize_url(state)})
        except TokenError as e:
            return self._error_result(e.message, error_code="SIGN_IN_UNAVAILABLE")

    async def complete_sign_in(self, redirect_url: str) -> ServiceResult:
        """Finish the OAuth flow from the redirect the UI intercepted."""
        try:
            record = await self.tokens.handle_auth_redirect(redirect_url)
        except TokenError as e:
            return self._error_result(e.message, error_code="AUTH_DENIED")
        except JukeboxError as e:
            self.logger.warning(f"⚠️ Sign-in failed: {e.message}")
            return self._error_result(e.message, error_code="SIGN_IN_FAILED")

        self.logger.info("✅ Signed in to the Music Service")
        return self._success_result(
            data={"user_id": await self.tokens.get_user_id(), "expires_at_ms": record.expires_at_ms},
            message="Signed in"
        )

    async def sign_out(self) -> ServiceResult:
        revoked = await self.tokens.sign_out()
        return self._success_result(data={"remote_revoked": revoked}, message="Signed out")

    async def health_check(self) -> ServiceResult:
        state = await self.tokens.evaluate()
        status = {
            TokenState.VALID: "healthy",
            TokenState.NEAR_EXPIRY: "expiring",
            TokenState.INVALID: "degraded",
            TokenState.NO_SESSION: "signed_out",
        }[state]
        return ServiceResult(
            success=True,
            data={"status": status, "service": self.name, "token_state": state.value}
        )
