"""
Push notification fan-out through Firebase Cloud Messaging.

One FCM message is posted per device token, all concurrently. A failure
for one token (HTTP error status or transport error) is reported in the
result and never aborts the others.
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

import httpx

from .exceptions import AuthenticationError, ValidationFailure

logger = logging.getLogger(__name__)

FCM_ENDPOINT = "https://fcm.googleapis.com/fcm/send"
DEFAULT_TIMEOUT = 10.0

# Async check of the caller's bearer token
Authorizer = Callable[[str], Awaitable[bool]]


@dataclass
class NotificationRequest:
    tokens: list[str]
    title: str
    body: str
    data: dict[str, str] | None = None
    image_url: str | None = None

    def __post_init__(self) -> None:
        if not self.tokens:
            raise ValidationFailure("tokens", "No tokens provided")
        if not self.title:
            raise ValidationFailure("title", "must not be empty")
        if not self.body:
            raise ValidationFailure("body", "must not be empty")

    def message_for(self, token: str) -> dict[str, Any]:
        """FCM legacy message body for one device."""
        notification: dict[str, Any] = {"title": self.title, "body": self.body}
        if self.image_url:
            notification["image"] = self.image_url
        return {"to": token, "notification": notification, "data": dict(self.data or {})}


@dataclass
class TokenResult:
    token: str
    success: bool
    status: int


@dataclass
class NotificationResult:
    results: list[TokenResult] = field(default_factory=list)

    @property
    def sent(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failed(self) -> int:
        return len(self.results) - self.sent

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": True,
            "sent": self.sent,
            "failed": self.failed,
            "results": [
                {"token": r.token, "success": r.success, "status": r.status}
                for r in self.results
            ],
        }


class PushNotifier:
    """Sends notifications to FCM device tokens.

    Usage:
        async with PushNotifier.from_env() as notifier:
            result = await notifier.send(request, authorization="Bearer ...")
    """

    def __init__(
        self,
        server_key: str | None,
        endpoint: str = FCM_ENDPOINT,
        client: httpx.AsyncClient | None = None,
        authorizer: Authorizer | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        """
        Args:
            server_key: FCM server key
            endpoint: FCM send URL
            client: HTTP client to reuse (one is created and owned otherwise)
            authorizer: Verifies the caller's bearer token; any non-empty token
                is accepted when omitted
            timeout: Per-request timeout in seconds
        """
        if not server_key:
            raise AuthenticationError("fcm", "FCM_SERVER_KEY not configured")
        self.server_key = server_key
        self.endpoint = endpoint
        self.authorizer = authorizer
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    @classmethod
    def from_env(cls, **kwargs: Any) -> PushNotifier:
        return cls(os.environ.get("FCM_SERVER_KEY"), **kwargs)

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> PushNotifier:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def _authorize(self, authorization: str | None) -> None:
        if not authorization:
            raise AuthenticationError("send-notification", "Missing authorization header")
        scheme, _, token = authorization.partition(" ")
        if scheme.lower() != "bearer" or not token.strip():
            raise AuthenticationError("send-notification", "Expected a bearer token")
        if self.authorizer is not None and not await self.authorizer(token.strip()):
            raise AuthenticationError("send-notification", "Unauthorized")

    async def _send_one(self, request: NotificationRequest, token: str) -> TokenResult:
        try:
            response = await self._client.post(
                self.endpoint,
                json=request.message_for(token),
                headers={"Authorization": f"key={self.server_key}"},
            )
        except httpx.HTTPError as exc:
            logger.warning(f"Push to {token[:12]}... failed: {exc}")
            return TokenResult(token=token, success=False, status=0)
        return TokenResult(token=token, success=response.is_success, status=response.status_code)

    async def send(
        self,
        request: NotificationRequest,
        authorization: str | None,
    ) -> NotificationResult:
        """Send a notification to every token in the request.

        Raises:
            AuthenticationError: If the caller is not authorized
        """
        await self._authorize(authorization)
        results = await asyncio.gather(*(self._send_one(request, t) for t in request.tokens))
        result = NotificationResult(results=list(results))
        logger.info(f"Push notification sent: {result.sent} ok, {result.failed} failed")
        return result
