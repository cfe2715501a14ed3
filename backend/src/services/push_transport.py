"""
WeChat push transport over the WxPush relay.

The rest of the system depends only on
``send(recipient, title, body, link_url=None) -> PushResult``.
"""

from typing import Any, Optional

import httpx

from backend.src.core.config import settings
from backend.src.core.logging import get_logger

logger = get_logger(__name__)


class PushResult:
    """Outcome of one push attempt."""

    def __init__(self, success: bool, error: Optional[str] = None, data: Any = None):
        self.success = success
        self.error = error
        self.data = data

    def __repr__(self) -> str:
        """String representation."""
        return f"<PushResult(success={self.success}, error={self.error})>"


class WxPushTransport:
    """
    Delivers template messages through the WxPush relay.

    Features:
    - Single GET with the template parameters in the query string
    - Configurable timeout
    - Never raises; failures come back as PushResult(success=False)
    """

    def __init__(self, http_client: Optional[httpx.AsyncClient] = None):
        """Initialize push transport."""
        self._http_client = http_client

    async def _get_http_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                timeout=httpx.Timeout(settings.WXPUSH_TIMEOUT),
                follow_redirects=True,
            )
        return self._http_client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    async def send(
        self,
        recipient: str,
        title: str,
        body: str,
        link_url: Optional[str] = None,
    ) -> PushResult:
        """
        Send one push.

        Args:
            recipient: WeChat user handle
            title: Message title
            body: Message content
            link_url: Landing URL, defaults to WXPUSH_BASE_URL

        Returns:
            PushResult with delivery outcome
        """
        params = {
            "userid": recipient,
            "template_id": settings.WXPUSH_TEMPLATE_ID,
            "base_url": link_url or settings.WXPUSH_BASE_URL,
            "token": settings.WXPUSH_TOKEN,
            "title": title,
            "content": body,
        }

        try:
            client = await self._get_http_client()
            response = await client.get(settings.WXPUSH_URL, params=params)
        except httpx.TimeoutException as e:
            logger.warning(
                "Push delivery failed - timeout",
                extra={"recipient": recipient, "error": str(e)},
            )
            return PushResult(success=False, error=f"Request timeout after {settings.WXPUSH_TIMEOUT}s")
        except httpx.RequestError as e:
            logger.warning(
                "Push delivery failed - request error",
                extra={"recipient": recipient, "error": str(e)},
            )
            return PushResult(success=False, error=f"Request error: {e}")

        if not 200 <= response.status_code < 300:
            logger.warning(
                "Push delivery failed - non-2xx status",
                extra={"recipient": recipient, "http_status": response.status_code},
            )
            return PushResult(
                success=False,
                error=f"HTTP {response.status_code}: {response.text[:200]}",
            )

        try:
            data = response.json()
        except ValueError:
            data = response.text[:1000]

        if isinstance(data, dict) and data.get("success") is False:
            error = str(data.get("error") or data.get("message") or "Relay rejected the push")
            logger.warning(
                "Push delivery rejected by relay",
                extra={"recipient": recipient, "error": error},
            )
            return PushResult(success=False, error=error, data=data)

        logger.info("Push delivered", extra={"recipient": recipient, "title": title})
        return PushResult(success=True, data=data)


# Export
__all__ = ["PushResult", "WxPushTransport"]
