# brushquote/auth/portal_tokens.py
from __future__ import annotations

from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer


class PortalTokenService:
    """Signed customer session: which client of which tenant is on the portal."""

    def __init__(self, secret: str, salt: str = "brushquote-portal-v1"):
        if not secret or len(secret) < 16:
            raise ValueError("PORTAL_TOKEN_SECRET must be set (min length 16).")
        self._s = URLSafeTimedSerializer(secret_key=secret, salt=salt)

    def make(self, *, client_id: str, tenant_id: str) -> str:
        return self._s.dumps({"client_id": str(client_id), "tenant_id": str(tenant_id)})

    def verify(self, token: str, *, max_age_seconds: int) -> dict:
        try:
            return self._s.loads(token, max_age=max_age_seconds)
        except SignatureExpired as e:
            raise ValueError("TOKEN_EXPIRED") from e
        except BadSignature as e:
            raise ValueError("TOKEN_INVALID") from e
