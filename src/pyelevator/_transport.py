"""HTTP-backed settings store for hosts exposing world settings over REST."""

from __future__ import annotations

import json
import logging
from typing import Any
from urllib.parse import quote

import aiohttp

from pyelevator._constants import MOD_ID
from pyelevator.exceptions import ElevatorTransportError

_logger = logging.getLogger(__name__)


class HttpSettingsStore:
    """Settings store talking to ``<base_url>/settings/<namespace>.<key>``.

    ``GET`` returns ``{"value": ...}`` (``404`` means unset) and ``PUT``
    accepts the same shape.
    """

    def __init__(
        self,
        base_url: str,
        http_session: aiohttp.ClientSession,
        *,
        token: str | None = None,
        namespace: str = MOD_ID,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._http = http_session
        self._namespace = namespace
        self._headers: dict[str, str] = {
            "accept": "application/json",
            "content-type": "application/json; charset=UTF-8",
        }
        if token:
            self._headers["authorization"] = f"Bearer {token}"

    def _endpoint(self, key: str) -> str:
        return f"/settings/{quote(f'{self._namespace}.{key}', safe='.')}"

    async def get(self, key: str) -> Any:
        endpoint = self._endpoint(key)
        url = f"{self._base_url}{endpoint}"
        _logger.debug("GET %s", url)
        try:
            async with self._http.get(url, headers=self._headers) as resp:
                text = await resp.text()
                if resp.status == 404:
                    return None
                if resp.status != 200:
                    raise ElevatorTransportError(
                        f"HTTP {resp.status} from {endpoint}: {text[:200]}",
                        status_code=resp.status,
                        endpoint=endpoint,
                    )
        except ElevatorTransportError:
            raise
        except aiohttp.ClientError as exc:
            raise ElevatorTransportError(f"Request to {endpoint} failed: {exc}", endpoint=endpoint) from exc

        try:
            body = json.loads(text)
        except json.JSONDecodeError as exc:
            raise ElevatorTransportError(f"Invalid JSON from {endpoint}: {text[:200]}", endpoint=endpoint) from exc

        if not isinstance(body, dict) or "value" not in body:
            raise ElevatorTransportError(f"Missing 'value' field from {endpoint}", endpoint=endpoint)
        return body["value"]

    async def set(self, key: str, value: Any) -> None:
        endpoint = self._endpoint(key)
        url = f"{self._base_url}{endpoint}"
        body = json.dumps({"value": value}, separators=(",", ":"))
        _logger.debug("PUT %s", url)
        try:
            async with self._http.put(url, data=body, headers=self._headers) as resp:
                if resp.status not in (200, 201, 204):
                    text = await resp.text()
                    raise ElevatorTransportError(
                        f"HTTP {resp.status} from {endpoint}: {text[:200]}",
                        status_code=resp.status,
                        endpoint=endpoint,
                    )
        except ElevatorTransportError:
            raise
        except aiohttp.ClientError as exc:
            raise ElevatorTransportError(f"Request to {endpoint} failed: {exc}", endpoint=endpoint) from exc
