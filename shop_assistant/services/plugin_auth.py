import logging

import httpx

from shop_assistant.core.config import settings

logger = logging.getLogger(__name__)

BROWSER_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36"
)


class PluginAuthError(Exception):
    pass


def verify_storefront_cookies(storefront_cookies: str) -> None:
    """Check browser-extension cookies against the storefront's user-info endpoint.

    Raises ``PluginAuthError`` when the storefront rejects the cookies or is
    unreachable.
    """
    try:
        response = httpx.get(
            settings.plugin_auth_url,
            headers={"Cookie": storefront_cookies, "User-Agent": BROWSER_USER_AGENT},
            timeout=settings.plugin_auth_timeout_seconds,
        )
    except httpx.HTTPError as exc:
        logger.warning("Storefront cookie check failed: %s", exc)
        raise PluginAuthError("Storefront authentication failed") from exc

    if not response.is_success:
        logger.info("Storefront rejected plugin cookies with status %s", response.status_code)
        raise PluginAuthError(f"Storefront authentication failed: {response.status_code}")
