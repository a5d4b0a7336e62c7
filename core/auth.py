"""
Identity and Access.

Authentication itself happens at an external identity provider; this API only
needs to know *who* is acting. The provider issues signed JWTs whose `sub`
claim is the user's id, and it notifies the API about account lifecycle
events through signed webhooks.

Key Components:
- `JWTManager`: Verifies bearer tokens (and can mint them for tooling and
  tests). The actor id is treated as an opaque string.
- `WebhookVerifier`: Verifies the Svix signature and freshness of
  identity-provider webhook deliveries.
- FastAPI dependencies: `get_current_user_id` (mutations, 401 when absent),
  `get_optional_user_id` (reads that personalize results) and
  `verify_api_key` (maintenance endpoints).
"""

import hmac
import json
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Mapping, Optional

import jwt
from fastapi import Depends, Header
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from svix.webhooks import Webhook, WebhookVerificationError

from core.config import get_settings
from core.exceptions import AuthenticationError, ValidationError
from core.logging_config import get_logger

logger = get_logger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


class JWTManager:
    """JWT token management"""

    def __init__(self, secret_key: str = None, algorithm: str = "HS256"):
        self.secret_key = secret_key or self._generate_secret_key()
        self.algorithm = algorithm
        self.access_token_expire = timedelta(hours=1)

    def _generate_secret_key(self) -> str:
        """Generate a secure secret key"""
        key = secrets.token_urlsafe(32)
        logger.warning(
            "Generated new JWT secret key. This should be set via JWT_SECRET_KEY environment variable."
        )
        return key

    def create_access_token(
        self, user_id: str, expires_delta: timedelta = None, **claims: Any
    ) -> str:
        """Create JWT access token for a user id"""
        if expires_delta is None:
            expires_delta = self.access_token_expire

        now = datetime.now(timezone.utc)
        payload = {
            "sub": user_id,
            "iat": now,
            "exp": now + expires_delta,
            "jti": secrets.token_urlsafe(16),
            **claims,
        }
        return jwt.encode(payload, self.secret_key, algorithm=self.algorithm)

    def verify_token(self, token: str) -> Dict[str, Any]:
        """Verify a token and return its claims"""
        try:
            payload = jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
        except jwt.ExpiredSignatureError:
            raise AuthenticationError("Token has expired")
        except jwt.InvalidTokenError as e:
            raise AuthenticationError(f"Invalid token: {e}")

        if not payload.get("sub"):
            raise AuthenticationError("Token has no subject")
        return payload


class WebhookVerifier:
    """
    Verifies identity-provider webhook deliveries.

    Deliveries are signed with Svix. Both the ``svix-*`` and the ``webhook-*``
    header families are accepted; the secret is the provider's ``whsec_`` key.
    """

    def __init__(self, secret: str):
        self.webhook = Webhook(secret)

    def verify(self, body: bytes, headers: Mapping[str, str]) -> Dict[str, Any]:
        """Return the decoded event, or raise if the delivery is not authentic"""
        try:
            return self.webhook.verify(body, dict(headers))
        except WebhookVerificationError as e:
            logger.warning(f"Rejected webhook delivery: {e}")
            raise AuthenticationError(f"Invalid webhook: {e}")
        except json.JSONDecodeError:
            raise ValidationError("body", "Webhook payload is not valid JSON")


_jwt_manager: Optional[JWTManager] = None


def get_jwt_manager() -> JWTManager:
    global _jwt_manager
    if _jwt_manager is None:
        settings = get_settings()
        _jwt_manager = JWTManager(settings.jwt_secret_key, settings.jwt_algorithm)
    return _jwt_manager


def get_webhook_verifier() -> WebhookVerifier:
    secret = get_settings().auth_webhook_secret
    if not secret:
        raise AuthenticationError("Webhook secret is not configured")
    return WebhookVerifier(secret)


async def get_optional_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Optional[str]:
    """Actor id if a valid bearer token was sent, otherwise None"""
    if credentials is None:
        return None
    try:
        return get_jwt_manager().verify_token(credentials.credentials)["sub"]
    except AuthenticationError as e:
        logger.debug(f"Ignoring invalid bearer token on public endpoint: {e}")
        return None


async def get_current_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> str:
    """Actor id of the authenticated caller; 401 when there is none"""
    if credentials is None:
        raise AuthenticationError("Unauthorized")
    return get_jwt_manager().verify_token(credentials.credentials)["sub"]


async def verify_api_key(x_api_key: Optional[str] = Header(None, alias="X-API-Key")):
    expected_key = get_settings().admin_api_key
    if not expected_key:
        raise AuthenticationError("Admin API key is not configured")
    if not x_api_key or not hmac.compare_digest(x_api_key, expected_key):
        raise AuthenticationError("Invalid API key")
    return x_api_key
