"""Steps that run after a collection saved something: cache refresh, push."""

import logging
import os

import httpx

from src.core.config import RevalidateConfig

logger = logging.getLogger(__name__)


class RevalidateError(Exception):
    """The content site refused or never answered the revalidation call."""


async def revalidate_site(client: httpx.AsyncClient, config: RevalidateConfig) -> bool:
    """Ask the content site to drop its cached pages.

    Returns False when no URL is configured. Raises RevalidateError once
    every attempt has failed.
    """
    if not config.url:
        logger.debug("No revalidate URL configured, skipping")
        return False

    headers = {"x-revalidate-token": os.environ.get(config.token_env, "")}
    last_error = ""
    for attempt in range(1, config.max_attempts + 1):
        try:
            response = await client.post(
                config.url, json={"all": True}, headers=headers, timeout=config.timeout_seconds,
            )
        except httpx.HTTPError as e:
            last_error = repr(e)
        else:
            if response.is_success:
                logger.info("Site revalidated")
                return True
            last_error = f"{response.status_code} {response.reason_phrase}"
        logger.info(
            "Revalidation attempt %d/%d failed: %s", attempt, config.max_attempts, last_error,
        )

    msg = f"Revalidation failed after {config.max_attempts} attempts: {last_error}"
    raise RevalidateError(msg)
