"""
PostImage client for remote image hosting.
Uploads a file through the PostImage v1 API and returns the hosted URL.
"""
from typing import Optional
import logging

import httpx

from transfer_cms.config import settings
from transfer_cms.exceptions import ExternalServiceError

logger = logging.getLogger(__name__)


class PostImageClient:
    """
    Thin async client for the PostImage upload endpoint.

    ``transport`` is passed through to ``httpx.AsyncClient`` so tests can
    plug in an ``httpx.MockTransport``.
    """

    name = "postimage"

    def __init__(
        self,
        api_url: str,
        api_key: str,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_url = api_url
        self.api_key = api_key
        self.timeout = timeout
        self.transport = transport

    def is_configured(self) -> bool:
        return bool(self.api_url and self.api_key)

    async def upload(
        self,
        content: bytes,
        filename: str,
        content_type: Optional[str] = None,
        folder: Optional[str] = None,
        title: Optional[str] = None,
        description: Optional[str] = None,
        tags: Optional[str] = None,
    ) -> str:
        """
        Upload a file and return its public URL.

        Raises:
            ExternalServiceError: on network errors, non-2xx responses or a
                response body without an image URL
        """
        data = {"key": self.api_key, "format": "json"}
        if title:
            data["title"] = title
        if description:
            data["description"] = description
        if tags:
            data["tags"] = tags
        files = {"source": (filename, content, content_type or "application/octet-stream")}

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(
                    self.api_url,
                    data=data,
                    files=files,
                    headers={"X-API-Key": self.api_key},
                )
                response.raise_for_status()
                payload = response.json()
        except httpx.HTTPError as e:
            raise ExternalServiceError(f"PostImage request failed: {str(e)}") from e
        except ValueError as e:
            raise ExternalServiceError(f"PostImage returned invalid JSON: {str(e)}") from e

        if not isinstance(payload, dict):
            raise ExternalServiceError("PostImage upload failed: unexpected response")

        image = payload.get("image")
        url = image.get("url") if isinstance(image, dict) else None
        if payload.get("status_code") != 200 or not url:
            error = payload.get("error")
            message = error.get("message") if isinstance(error, dict) else "unexpected response"
            raise ExternalServiceError(f"PostImage upload failed: {message}")

        logger.info(f"Uploaded {filename} to PostImage: {url}")
        return url


def create_postimage_client() -> PostImageClient:
    return PostImageClient(
        api_url=settings.POSTIMAGE_API_URL,
        api_key=settings.POSTIMAGE_API_KEY,
        timeout=settings.REMOTE_UPLOAD_TIMEOUT,
    )
