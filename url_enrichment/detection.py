"""Site-type detection from page markup.

Signatures are checked in a fixed priority order (Shopify, then WooCommerce,
then generic e-commerce markers); the first match wins. Detection is best-effort:
any fetch failure yields `SiteType.UNKNOWN`.
"""

from __future__ import annotations

import logging

import httpx

from .config import Fixtures
from .fetch import fetch_page
from .models import SiteType

logger = logging.getLogger(__name__)


def classify_body(html: str, fixtures: Fixtures) -> SiteType:
    priority = (
        (SiteType.SHOPIFY, fixtures.shopify_markers),
        (SiteType.WOOCOMMERCE, fixtures.woocommerce_markers),
        (SiteType.CUSTOM, fixtures.ecommerce_markers),
    )
    for site_type, markers in priority:
        if any(marker in html for marker in markers):
            return site_type
    return SiteType.UNKNOWN


async def detect_site_type(
    client: httpx.AsyncClient,
    url: str,
    *,
    timeout: float,
    fixtures: Fixtures,
) -> SiteType:
    page = await fetch_page(client, url, timeout=timeout)
    if not page.success:
        logger.debug(f"Site-type detection skipped for {url}: {page.error}")
        return SiteType.UNKNOWN

    site_type = classify_body(page.body, fixtures)
    logger.debug(f"Detected {site_type.value} for {url}")
    return site_type
