"""Shared aiohttp transport for the REST-backed data sources."""

import json
import logging
from typing import Any

import aiohttp

from stackboard.board.errors import DataSourceError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30


class RestClient:
    """JSON-over-HTTP client that maps every failure to DataSourceError.

    Owns an aiohttp session unless one is injected.
    """

    def __init__(
        self,
        *,
        base_url: str,
        headers: dict[str, str],
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._headers = headers
        self._session = session
        self._owns_session = session is None

    async def close(self) -> None:
        if self._session is not None and self._owns_session:
            await self._session.close()
            self._session = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession(
                headers=self._headers,
                timeout=aiohttp.ClientTimeout(total=DEFAULT_TIMEOUT_SECONDS),
            )
        return self._session

    async def request(
        self,
        operation: str,
        method: str,
        path: str,
        *,
        params: dict[str, str] | None = None,
        payload: object = None,
    ) -> Any:
        """Send a request and decode the JSON body.

        Returns:
            Decoded JSON, or None for an empty body

        Raises:
            DataSourceError: On connection errors and non-2xx responses
        """
        url = f"{self._base_url}{path}"
        logger.debug("%s: %s %s", operation, method, url)
        try:
            async with self._get_session().request(
                method, url, params=params, json=payload
            ) as response:
                if response.status >= 400:
                    body = await response.text()
                    raise DataSourceError(operation, _error_message(body), status=response.status)
                text = await response.text()
                if not text.strip():
                    return None
                return json.loads(text)
        except aiohttp.ClientError as e:
            raise DataSourceError(operation, str(e)) from e
        except json.JSONDecodeError as e:
            raise DataSourceError(operation, f"invalid JSON response: {e}") from e


def _error_message(body: str) -> str:
    try:
        data = json.loads(body)
    except json.JSONDecodeError:
        return body.strip() or "empty error response"
    if isinstance(data, dict):
        for key in ("msg", "message", "error"):
            if data.get(key):
                return str(data[key])
    return body.strip()
