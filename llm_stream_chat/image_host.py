"""Image host upload client.

Uploads an image as base64 in a form-encoded body and returns the hosted
URL from ``{"data": {"image": {"url": ...}}, "success": ..., "status": ...}``.
"""

from __future__ import annotations

import asyncio
import base64
import json
import logging

import aiohttp

from .cancellation import CancellationToken
from .errors import DecodeError, HttpStatusError, NetworkError
from .wire import parse_error_message

logger = logging.getLogger(__name__)

DEFAULT_UPLOAD_URL = "https://api.imgbb.com/1/upload"


def extract_image_url(body: str) -> str:
    """Return data.image.url from an upload response body.

    Raises:
        DecodeError: If the body does not have that shape.
    """
    try:
        obj = json.loads(body)
        url = obj["data"]["image"]["url"]
    except (json.JSONDecodeError, KeyError, TypeError) as e:
        raise DecodeError(f"Unexpected upload response: {body[:200]}") from e
    if not isinstance(url, str):
        raise DecodeError(f"Upload url is {type(url).__name__}")
    return url


class ImageHostClient:
    """Uploads images and hands back a URL the chat API can fetch."""

    def __init__(
        self,
        api_key: str,
        upload_url: str = DEFAULT_UPLOAD_URL,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self._api_key = api_key
        self.upload_url = upload_url
        self._session = session
        self._owns_session = session is None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        """Close the HTTP session if this client created it."""
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    async def upload(self, data: bytes, token: CancellationToken | None = None) -> str:
        """Upload image bytes.

        Args:
            data: Encoded image (JPEG, PNG, ...).
            token: Optional cancellation token for the send.

        Returns:
            The hosted image URL.

        Raises:
            NetworkError: On connection-level failures.
            HttpStatusError: On a non-2xx status.
            DecodeError: If the response has no image URL.
            Cancelled: If cancelled while waiting.
        """
        token = token or CancellationToken()
        session = await self._get_session()
        form = {
            "image": base64.b64encode(data).decode("ascii"),
            "key": self._api_key,
        }

        async def send() -> tuple[int, str]:
            async with session.post(self.upload_url, data=form) as response:
                return response.status, await response.text()

        logger.debug("image_upload_started", extra={"size_bytes": len(data)})
        try:
            status, body = await token.guard(send())
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise NetworkError(f"Image upload failed: {e}") from e

        if not 200 <= status <= 299:
            logger.warning("Image upload failed with status %d", status)
            message = parse_error_message(body)
            raise HttpStatusError(status, message if message is not None else body, body)

        url = extract_image_url(body)
        logger.info("Image uploaded: %s", url)
        return url
