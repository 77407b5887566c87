from __future__ import annotations

import base64
import hashlib
import hmac
import json
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Optional, Protocol

from taskhub.config import Settings
from taskhub.logging import get_logger
from taskhub.storage.models import User

logger = get_logger(__name__)


class AuthStore(Protocol):
    def get_user(self, user_id: int) -> Optional[User]: ...


@dataclass(frozen=True)
class CallerCredential:
    """Identity of the authenticated caller, resolved once per request."""

    account_id: int
    user_id: int
    role: str
    session_id: Optional[str] = None

    def as_params(self) -> dict[str, int]:
        """Keys injected into every data-access call."""
        return {"id_account": self.account_id, "id_user": self.user_id}


class AuthService:
    """Resolves bearer tokens into caller credentials and issues access tokens."""

    def __init__(self, store: AuthStore, settings: Settings) -> None:
        self.store: AuthStore = store
        self.settings = settings
        self.logger = logger
        # Allowance for small clock skew across nodes
        self._clock_skew_leeway = timedelta(seconds=120)

    def _now(self) -> datetime:
        return datetime.now(timezone.utc)

    def issue_access_token(
        self, user: User, *, ttl_minutes: Optional[int] = None
    ) -> dict[str, str]:
        ttl = ttl_minutes if ttl_minutes is not None else self.settings.access_token_ttl_minutes
        expires = int((self._now() + timedelta(minutes=ttl)).timestamp())
        session_id = str(uuid.uuid4())
        payload = {
            "iss": self.settings.jwt_issuer,
            "aud": self.settings.jwt_audience,
            "sub": user.id,
            "account_id": user.account_id,
            "role": user.role,
            "sid": session_id,
            "token_type": "access",
            "jti": str(uuid.uuid4()),
            "exp": expires,
        }
        return {
            "access_token": self._encode_jwt(payload),
            "token_type": "bearer",
            "expires_at": datetime.fromtimestamp(expires, tz=timezone.utc).isoformat(),
        }

    async def authenticate(self, authorization: Optional[str]) -> Optional[CallerCredential]:
        """Return the caller's credential, or None when the request is anonymous."""

        token = self._extract_bearer(authorization)
        if not token:
            return None
        payload = self._decode_jwt(token)
        if not payload or payload.get("token_type") != "access":
            return None
        user = self.store.get_user(payload.get("sub"))
        if not user or not user.is_active:
            self.logger.info("auth_user_inactive_or_missing", user_id=payload.get("sub"))
            return None
        if payload.get("account_id") != user.account_id or payload.get("role") != user.role:
            # Role or account changed since issuance
            return None
        return CallerCredential(
            account_id=user.account_id,
            user_id=user.id,
            role=user.role,
            session_id=payload.get("sid"),
        )

    def _extract_bearer(self, header: Optional[str]) -> Optional[str]:
        if not header:
            return None
        lower = header.lower()
        if not lower.startswith("bearer "):
            return None
        return header.split(" ", 1)[1].strip() or None

    def _encode_segment(self, data: bytes) -> str:
        return base64.urlsafe_b64encode(data).decode("utf-8").rstrip("=")

    def _decode_segment(self, segment: str) -> bytes:
        padding = "=" * ((4 - len(segment) % 4) % 4)
        return base64.urlsafe_b64decode(segment + padding)

    def _sign(self, signing_input: str) -> str:
        return self._encode_segment(
            hmac.new(
                self.settings.jwt_secret.encode(),
                signing_input.encode(),
                hashlib.sha256,
            ).digest()
        )

    def _encode_jwt(self, payload: dict[str, Any]) -> str:
        header = {"alg": "HS256", "typ": "JWT"}
        header_enc = self._encode_segment(
            json.dumps(header, separators=(",", ":")).encode()
        )
        payload_enc = self._encode_segment(
            json.dumps(payload, separators=(",", ":")).encode()
        )
        signing_input = f"{header_enc}.{payload_enc}"
        return f"{signing_input}.{self._sign(signing_input)}"

    def _decode_jwt(self, token: str) -> Optional[dict[str, Any]]:
        try:
            header_b64, payload_b64, sig_b64 = token.split(".")
        except ValueError:
            return None

        # Reject anything but HS256 to avoid algorithm confusion
        try:
            header = json.loads(self._decode_segment(header_b64))
        except (ValueError, TypeError):
            logger.warning("jwt_header_decode_failed")
            return None
        if not isinstance(header, dict) or header.get("alg") != "HS256":
            logger.warning("jwt_invalid_algorithm")
            return None

        if not hmac.compare_digest(self._sign(f"{header_b64}.{payload_b64}"), sig_b64):
            return None
        try:
            payload = json.loads(self._decode_segment(payload_b64))
        except (ValueError, TypeError) as exc:
            logger.warning("jwt_payload_decode_failed", error=str(exc))
            return None
        if not isinstance(payload, dict):
            return None
        if payload.get("iss") != self.settings.jwt_issuer:
            return None
        aud = payload.get("aud")
        if isinstance(aud, str):
            valid_aud = aud == self.settings.jwt_audience
        elif isinstance(aud, list):
            valid_aud = self.settings.jwt_audience in aud
        else:
            valid_aud = False
        if not valid_aud:
            return None
        try:
            exp_ts = float(payload.get("exp"))
        except (TypeError, ValueError):
            return None
        if exp_ts <= time.time() - self._clock_skew_leeway.total_seconds():
            return None
        return payload
