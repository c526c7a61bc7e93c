"""Push sender contract and the HTTP implementation used in deployments."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Iterable, Mapping, Protocol

import httpx

logger = logging.getLogger(__name__)

INVALID_TOKEN = "invalid-registration-token"
TOKEN_NOT_REGISTERED = "registration-token-not-registered"
UNAVAILABLE = "unavailable"
INTERNAL = "internal"

# tokens failing with these kinds will never succeed again
PERMANENT_ERROR_KINDS = frozenset({INVALID_TOKEN, TOKEN_NOT_REGISTERED})


@dataclass(frozen=True)
class SendResult:
    success: bool
    error_kind: str | None = None

    @property
    def is_permanent_failure(self) -> bool:
        return not self.success and self.error_kind in PERMANENT_ERROR_KINDS


class PushSender(Protocol):
    """Delivers one notification to a set of device tokens."""

    async def send(
        self,
        tokens: Iterable[str],
        title: str,
        body: str,
        data: Mapping[str, str],
    ) -> dict[str, SendResult]:
        ...


class NoopPushSender(PushSender):
    """Used when no push endpoint is configured; delivers nothing."""

    async def send(
        self,
        tokens: Iterable[str],
        title: str,
        body: str,
        data: Mapping[str, str],
    ) -> dict[str, SendResult]:
        logger.debug("push delivery disabled", extra={"tokens": len(set(tokens))})
        return {}


def _error_kind(response: httpx.Response) -> str:
    status = ""
    try:
        payload = response.json()
    except ValueError:
        payload = {}
    if isinstance(payload, dict):
        error = payload.get("error")
        if isinstance(error, dict):
            status = str(error.get("status") or "")
    if status == "UNREGISTERED" or response.status_code == 404:
        return TOKEN_NOT_REGISTERED
    if status == "INVALID_ARGUMENT" or response.status_code == 400:
        return INVALID_TOKEN
    if response.status_code in (429, 503) or status == "UNAVAILABLE":
        return UNAVAILABLE
    return INTERNAL


@dataclass
class HttpPushSender(PushSender):
    """Posts one message per token to an FCM-style HTTP endpoint."""

    http: httpx.AsyncClient
    endpoint: str
    auth_token: str | None = None
    request_timeout: float = 5.0

    async def send(
        self,
        tokens: Iterable[str],
        title: str,
        body: str,
        data: Mapping[str, str],
    ) -> dict[str, SendResult]:
        unique = list(dict.fromkeys(tokens))
        results = await asyncio.gather(*(self._send_one(token, title, body, data) for token in unique))
        return dict(zip(unique, results))

    async def _send_one(self, token: str, title: str, body: str, data: Mapping[str, str]) -> SendResult:
        headers = {"Content-Type": "application/json"}
        if self.auth_token:
            headers["Authorization"] = f"Bearer {self.auth_token}"
        message = {
            "message": {
                "token": token,
                "notification": {"title": title, "body": body},
                "data": {str(k): str(v) for k, v in data.items()},
                "android": {"priority": "high"},
                "apns": {"payload": {"aps": {"sound": "default", "badge": 1}}},
            }
        }
        try:
            response = await self.http.post(
                self.endpoint,
                json=message,
                headers=headers,
                timeout=self.request_timeout,
            )
        except httpx.HTTPError as exc:
            logger.warning("push request failed", extra={"error": type(exc).__name__})
            return SendResult(success=False, error_kind=UNAVAILABLE)
        if response.is_success:
            return SendResult(success=True)
        return SendResult(success=False, error_kind=_error_kind(response))
