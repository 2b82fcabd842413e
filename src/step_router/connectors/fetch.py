"""Generic HTTP connector for steps that call plain web APIs."""

import json
import logging
from typing import Any, Dict, Optional

import aiohttp

from ..errors import ConnectorError

logger = logging.getLogger(__name__)


class FetchConnector:
    """HTTP connector built on an aiohttp session.

    Registered as ``fetch`` by default:
    ``await ctx.connectors.fetch.request(url=..., method="POST", body={...})``.
    """

    def __init__(self, connector_id: str = "fetch", timeout: int = 30, headers: Optional[Dict[str, str]] = None):
        """Initialize the connector.

        Args:
            connector_id: Id used in error messages
            timeout: Request timeout in seconds
            headers: Headers sent with every request
        """
        self.connector_id = connector_id
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self.headers = dict(headers or {})
        self._session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create aiohttp session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self.timeout, headers=self.headers)
        return self._session

    async def request(
        self,
        url: str,
        method: str = "GET",
        body: Any = None,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, Any]] = None,
        text: bool = False,
    ) -> Any:
        """Perform one HTTP request.

        Dict/list bodies are sent as JSON. The response is parsed as JSON
        unless ``text`` is set or the server doesn't return JSON.

        Raises:
            ConnectorError: on HTTP status >= 400 or a client/network error
        """
        kwargs: Dict[str, Any] = {"headers": headers, "params": params}
        if isinstance(body, (dict, list)):
            kwargs["json"] = body
        elif body is not None:
            kwargs["data"] = body

        logger.debug(f"{self.connector_id} {method.upper()} {url}")
        try:
            session = await self._get_session()
            async with session.request(method.upper(), url, **kwargs) as response:
                payload = await response.text()
                if response.status >= 400:
                    raise ConnectorError(
                        self.connector_id,
                        "request",
                        f"HTTP {response.status} from {url}: {payload[:200]}",
                        status=response.status,
                    )
                if text:
                    return payload
                content_type = response.headers.get("Content-Type", "")
                if "json" in content_type or payload[:1] in ("{", "["):
                    try:
                        return json.loads(payload)
                    except json.JSONDecodeError:
                        return payload
                return payload
        except aiohttp.ClientError as e:
            logger.error(f"{self.connector_id} network error calling {url}: {e}")
            raise ConnectorError(self.connector_id, "request", f"network error: {e}") from e

    async def close(self):
        """Close the client session."""
        if self._session and not self._session.closed:
            await self._session.close()
