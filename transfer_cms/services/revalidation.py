"""
Page-cache invalidation.
Tells the frontend which public pages are stale after a gallery write.
"""
from typing import Iterable, Optional
import logging

import httpx

from transfer_cms.config import settings

logger = logging.getLogger(__name__)


class PageCacheInvalidator:
    """
    Notifies the frontend revalidation webhook about stale paths.

    Without a webhook URL the paths are only logged. Webhook failures are
    logged and do not affect the already committed write.
    """

    def __init__(
        self,
        webhook_url: str = "",
        secret: str = "",
        timeout: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.webhook_url = webhook_url
        self.secret = secret
        self.timeout = timeout
        self.transport = transport

    async def invalidate(self, paths: Iterable[str]) -> None:
        paths = list(dict.fromkeys(paths))
        if not paths:
            return

        logger.info(f"Stale pages: {', '.join(paths)}")
        if not self.webhook_url:
            return

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(
                    self.webhook_url,
                    json={"paths": paths},
                    headers={"X-Revalidate-Secret": self.secret},
                )
                response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning(f"Page revalidation webhook failed for {paths}: {str(e)}")


def get_invalidator() -> PageCacheInvalidator:
    """FastAPI dependency providing the page-cache invalidator."""
    return PageCacheInvalidator(
        webhook_url=settings.REVALIDATE_WEBHOOK_URL,
        secret=settings.REVALIDATE_SECRET,
    )
