"""Sub-resource request filtering for headless pages.

Tracking and analytics requests are always aborted. On metered (paid) proxy
bandwidth, heavyweight resources (images, stylesheets, fonts, media) are
aborted too; on free transport they load normally so pages render the same
as in a regular browser.

The route handler is installed at most once per page. Installed pages are
remembered in a WeakSet, so the registry never keeps a closed page alive.
"""

from __future__ import annotations

import logging
import weakref
from typing import Any

logger = logging.getLogger(__name__)

ALWAYS_BLOCK_PATTERNS = (
    "google-analytics",
    "facebook.net",
    "hotjar",
    "doubleclick",
    "googlesyndication",
    "googletagmanager",
    "linkedin.com/li/track",
    "bat.bing.com",
)

PAID_PROXY_BLOCK_TYPES = frozenset({"image", "stylesheet", "font", "media"})

_routed_pages: "weakref.WeakSet[Any]" = weakref.WeakSet()


def should_block_request(url: str, resource_type: str, using_paid_proxy: bool) -> bool:
    if any(pattern in url for pattern in ALWAYS_BLOCK_PATTERNS):
        return True
    return using_paid_proxy and resource_type in PAID_PROXY_BLOCK_TYPES


async def ensure_request_interception(page: Any, using_paid_proxy: bool) -> bool:
    """Install the blocking route on `page` unless it already has it.

    Returns True when the route was installed by this call, False when the
    page was already set up. If `page.route()` fails the page is forgotten
    and the error re-raised, so a later call can try again.
    """
    if page in _routed_pages:
        return False

    _routed_pages.add(page)

    async def handle(route: Any) -> None:
        request = route.request
        if should_block_request(request.url, request.resource_type, using_paid_proxy):
            await route.abort()
        else:
            await route.continue_()

    try:
        await page.route("**/*", handle)
    except Exception:
        _routed_pages.discard(page)
        raise

    logger.debug(
        "Request interception installed (paid proxy: %s)", using_paid_proxy
    )
    return True


def reset_request_interception() -> None:
    """Forget every installed page."""
    global _routed_pages
    _routed_pages = weakref.WeakSet()
