"""Hyperliquid info API client.

All reads go through POST /info with a JSON body naming the request type.
Transient failures (rate limits, 5xx, network errors) are retried with
exponential backoff; anything else surfaces as UpstreamUnavailableError.
"""

from __future__ import annotations

import logging
import random
import time
from typing import Any

import httpx

from .config import DEFAULT_HTTP_TIMEOUT, DEFAULT_MAX_RETRIES, HyperRiskConfig
from .endpoints import HYPERLIQUID_API_BASE, INFO_PATH
from .errors import UpstreamUnavailableError

logger = logging.getLogger(__name__)

USER_AGENT = "hyperrisk/0.1"

# Retry configuration
DEFAULT_BASE_DELAY = 1.0  # seconds
DEFAULT_MAX_DELAY = 30.0  # seconds
DEFAULT_BACKOFF_FACTOR = 2.0


def _is_retryable_error(status_code: int | None, error: Exception | None = None) -> bool:
    """Check if an error is retryable.

    Args:
        status_code: HTTP status code if available
        error: Exception if available

    Returns:
        True if the error is likely transient and retryable
    """
    # Retry rate limiting with backoff
    if status_code == 429:
        return True

    # Retry server errors
    if status_code in (500, 502, 503, 504):
        return True

    # Don't retry other 4xx errors (client errors)
    if status_code and 400 <= status_code < 500:
        return False

    # Retry on network/timeout errors
    if isinstance(error, (httpx.ConnectError, httpx.TimeoutException)):
        return True

    return False


def _calculate_retry_delay(
    attempt: int,
    base_delay: float = DEFAULT_BASE_DELAY,
    max_delay: float = DEFAULT_MAX_DELAY,
    backoff_factor: float = DEFAULT_BACKOFF_FACTOR,
) -> float:
    """Calculate retry delay with exponential backoff and jitter.

    Args:
        attempt: Current retry attempt (0-indexed)
        base_delay: Initial delay in seconds
        max_delay: Maximum delay in seconds
        backoff_factor: Multiplier for each retry

    Returns:
        Delay in seconds with jitter applied
    """
    delay = min(base_delay * (backoff_factor**attempt), max_delay)
    # Add jitter (+/-25%)
    jitter = delay * random.uniform(-0.25, 0.25)
    return delay + jitter


class HyperliquidClient:
    """Synchronous client for the Hyperliquid info endpoint.

    Safe to share between worker threads; httpx.Client pools connections.

    Example:
        >>> with HyperliquidClient() as client:
        ...     mids = client.get_all_mids()
    """

    def __init__(
        self,
        base_url: str = HYPERLIQUID_API_BASE,
        timeout: float = DEFAULT_HTTP_TIMEOUT,
        max_retries: int = DEFAULT_MAX_RETRIES,
        base_delay: float = DEFAULT_BASE_DELAY,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.max_retries = max_retries
        self.base_delay = base_delay
        self._http = httpx.Client(
            base_url=self.base_url,
            timeout=timeout,
            headers={"User-Agent": USER_AGENT},
            transport=transport,
        )

    @classmethod
    def from_config(cls, config: HyperRiskConfig) -> HyperliquidClient:
        """Build a client from a HyperRiskConfig."""
        return cls(
            base_url=config.api_url,
            timeout=config.http_timeout,
            max_retries=config.max_retries,
        )

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> HyperliquidClient:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:  # noqa: ANN001
        self.close()

    def _post_info(self, payload: dict[str, Any]) -> Any:
        """POST a request to /info and return the decoded JSON body.

        Raises:
            UpstreamUnavailableError: On non-retryable errors, exhausted
                retries, or an undecodable response
        """
        request_type = payload.get("type")
        last_error: Exception | None = None

        for attempt in range(self.max_retries + 1):
            if attempt > 0:
                delay = _calculate_retry_delay(attempt - 1, self.base_delay)
                logger.info(
                    "Retry attempt %d/%d for %s after %.1fs delay",
                    attempt,
                    self.max_retries,
                    request_type,
                    delay,
                )
                time.sleep(delay)

            status_code: int | None = None
            try:
                resp = self._http.post(INFO_PATH, json=payload)
                status_code = resp.status_code
                resp.raise_for_status()
            except httpx.HTTPError as e:
                last_error = e
                if not _is_retryable_error(status_code, e):
                    logger.error("Non-retryable error for %s: %s", request_type, e)
                    raise UpstreamUnavailableError(
                        f"Hyperliquid {request_type} request failed: {e}"
                    ) from e
                logger.warning("Transient error for %s: %s", request_type, e)
                continue

            try:
                return resp.json()
            except ValueError as e:
                raise UpstreamUnavailableError(
                    f"Hyperliquid {request_type} returned invalid JSON"
                ) from e

        raise UpstreamUnavailableError(
            f"Hyperliquid {request_type} request failed after {self.max_retries} retries: "
            f"{last_error}"
        ) from last_error

    def get_user_fills(self, address: str) -> list[dict[str, Any]]:
        """Fetch every fill for a user address."""
        data = self._post_info({"type": "userFills", "user": address})

        if isinstance(data, dict):
            data = data.get("fills", [])
        if not isinstance(data, list):
            raise UpstreamUnavailableError(
                f"Unexpected userFills response type: {type(data).__name__}"
            )

        fills = [f for f in data if isinstance(f, dict)]
        logger.debug("Fetched %d fills for %s", len(fills), address)
        return fills

    def get_all_mids(self) -> dict[str, str]:
        """Fetch current mid prices keyed by coin."""
        data = self._post_info({"type": "allMids"})

        if isinstance(data, dict) and isinstance(data.get("mids"), dict):
            data = data["mids"]
        if not isinstance(data, dict):
            raise UpstreamUnavailableError(
                f"Unexpected allMids response type: {type(data).__name__}"
            )

        return {str(coin): str(px) for coin, px in data.items()}
