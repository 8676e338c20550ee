import json

import httpx

from transfer_cms.services.revalidation import PageCacheInvalidator


async def test_posts_unique_paths_to_webhook():
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(200, json={"revalidated": True})

    invalidator = PageCacheInvalidator(
        webhook_url="https://site.test/api/revalidate",
        secret="shh",
        transport=httpx.MockTransport(handler),
    )

    await invalidator.invalidate(["/gallery", "/gallery/fleet", "/admin", "/gallery"])

    assert len(requests) == 1
    assert requests[0].headers["X-Revalidate-Secret"] == "shh"
    assert json.loads(requests[0].content) == {"paths": ["/gallery", "/gallery/fleet", "/admin"]}


async def test_webhook_failure_is_not_raised(caplog):
    def handler(request):
        return httpx.Response(503)

    invalidator = PageCacheInvalidator(
        webhook_url="https://site.test/api/revalidate",
        transport=httpx.MockTransport(handler),
    )

    await invalidator.invalidate(["/gallery"])

    assert "revalidation webhook failed" in caplog.text


async def test_without_webhook_only_logs():
    def handler(request):
        raise AssertionError("webhook must not be called")

    invalidator = PageCacheInvalidator(transport=httpx.MockTransport(handler))

    await invalidator.invalidate(["/gallery"])
