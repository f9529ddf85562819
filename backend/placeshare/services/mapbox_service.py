"""
PlaceShare Backend: Mapbox Geocoding Service
=============================================

What:  Concrete Geocoder backed by the Mapbox Geocoding API.
How:   GET {base_url}/{urlencoded address}.json?limit=1&access_token=...,
       read features[0].center as [longitude, latitude]. Calls are wrapped
       with tenacity retries and a circuit breaker.
Who:   Instantiated once at import; called by ConsistencyManager for place
       creation and edits.

Resilience Strategy:
    1. Tenacity retry with exponential backoff + jitter for transport errors
       and 5xx/429 responses
    2. Circuit breaker that fails fast after repeated failures
    3. A refused token (401/403) is an outage, not a bad address; not retried
    4. Any other 4xx answer or an empty feature list means the address has
       no location; not retried
"""

import logging
import time
import uuid
from typing import Optional
from urllib.parse import quote

import httpx
from tenacity import (
    RetryError,
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from placeshare.config import settings
from placeshare.exceptions import GeocodeError, GeocoderUnavailableError
from placeshare.services.geocoder_base import Coordinates, Geocoder

logger = logging.getLogger(__name__)


class TransientGeocoderError(Exception):
    """Retryable upstream failure (5xx or 429)."""


class GeocoderAccessDenied(Exception):
    """The API refused our access token (401/403). Not retried."""


# ══════════════════════════════════════════════════════════════════════════
# Circuit Breaker Implementation
# ══════════════════════════════════════════════════════════════════════════

class CircuitBreaker:
    """
    Circuit breaker guarding calls to the geocoding API.

    State Machine:
        CLOSED (normal operation)
            → On failure: increment failure_count
            → When failure_count >= threshold: transition to OPEN

        OPEN (rejecting all requests)
            → All calls raise GeocoderUnavailableError immediately
            → After recovery_timeout seconds: transition to HALF_OPEN

        HALF_OPEN (testing recovery)
            → Allow ONE request through
            → On success: transition to CLOSED (reset failure_count)
            → On failure: transition back to OPEN (reset timer)

    Not thread-safe; uvicorn async workers share a single process.
    """

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"

    def __init__(self, failure_threshold: int = 5, recovery_timeout: int = 60):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.failure_count = 0
        self.state = self.CLOSED
        self.last_failure_time: Optional[float] = None

    def can_execute(self) -> bool:
        """
        Returns True if the request may proceed.

        Raises:
            GeocoderUnavailableError if the circuit is OPEN and the recovery
            timeout hasn't elapsed.
        """
        if self.state == self.CLOSED:
            return True

        if self.state == self.OPEN:
            elapsed = time.time() - (self.last_failure_time or 0)
            if elapsed >= self.recovery_timeout:
                logger.info(
                    "Circuit breaker transitioning to HALF_OPEN after %.1fs",
                    elapsed,
                )
                self.state = self.HALF_OPEN
                return True
            remaining = int(self.recovery_timeout - elapsed)
            raise GeocoderUnavailableError(
                message=(
                    "Geocoding is temporarily unavailable due to repeated failures. "
                    f"Please retry in approximately {remaining} seconds."
                ),
                retry_after=remaining,
            )

        # HALF_OPEN: allow the test request through
        return True

    def record_success(self) -> None:
        if self.state == self.HALF_OPEN:
            logger.info("Circuit breaker transitioning to CLOSED (service recovered)")
        self.failure_count = 0
        self.state = self.CLOSED
        self.last_failure_time = None

    def record_failure(self) -> None:
        self.failure_count += 1
        self.last_failure_time = time.time()

        if self.state == self.HALF_OPEN:
            logger.warning("Circuit breaker returning to OPEN (test request failed)")
            self.state = self.OPEN
        elif self.failure_count >= self.failure_threshold:
            logger.warning(
                "Circuit breaker OPENING after %d consecutive failures",
                self.failure_count,
            )
            self.state = self.OPEN


# ══════════════════════════════════════════════════════════════════════════
# Mapbox Geocoder
# ══════════════════════════════════════════════════════════════════════════

class MapboxGeocoder(Geocoder):
    """
    Mapbox Geocoding API client.

    Error Handling Chain:
        request fails (network, 5xx, 429) → tenacity retries
        → all retries fail → circuit breaker failure → GeocoderUnavailableError
        → 401/403 (token refused) → circuit breaker failure → GeocoderUnavailableError
        → no features in answer → GeocodeError (circuit breaker success)
    """

    def __init__(
        self,
        access_token: Optional[str] = None,
        base_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            access_token: Overrides settings.map_api_key.
            base_url: Overrides settings.geocoder_base_url.
            transport: Custom httpx transport (tests pass httpx.MockTransport).
        """
        self.access_token = access_token if access_token is not None else settings.map_api_key
        self.base_url = (base_url or settings.geocoder_base_url).rstrip("/")
        self.transport = transport
        self.circuit_breaker = CircuitBreaker(
            failure_threshold=settings.cb_failure_threshold,
            recovery_timeout=settings.cb_recovery_timeout,
        )

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=httpx.Timeout(settings.geocoder_timeout_seconds),
            transport=self.transport,
        )

    async def geocode(self, address: str) -> Coordinates:
        request_id = str(uuid.uuid4())[:8]

        self.circuit_breaker.can_execute()

        logger.info("[%s] Geocoding address (%d chars)", request_id, len(address))

        try:
            payload = await self._request_with_retry(address, request_id)
            self.circuit_breaker.record_success()
        except RetryError as e:
            self.circuit_breaker.record_failure()
            logger.error(
                "[%s] All geocoding retries exhausted: %s",
                request_id,
                str(e.last_attempt.exception()) if e.last_attempt else "Unknown error",
            )
            raise GeocoderUnavailableError(
                retry_after=self.circuit_breaker.recovery_timeout,
                context={"request_id": request_id, "attempts": settings.retry_max_attempts},
            )
        except GeocoderAccessDenied as e:
            self.circuit_breaker.record_failure()
            logger.error("[%s] Geocoder refused the access token: %s", request_id, str(e))
            raise GeocoderUnavailableError(
                context={"request_id": request_id, "error_type": "access_denied"},
            )
        except (httpx.HTTPError, TransientGeocoderError, ValueError) as e:
            # ValueError: the answer was not JSON
            self.circuit_breaker.record_failure()
            logger.error("[%s] Geocoding request failed: %s", request_id, str(e))
            raise GeocoderUnavailableError(
                context={"request_id": request_id, "error_type": type(e).__name__},
            )

        features = (payload or {}).get("features") or []
        if not features:
            raise GeocodeError(address=address, context={"request_id": request_id})

        center = features[0].get("center") or []
        if len(center) < 2:
            raise GeocodeError(address=address, context={"request_id": request_id})

        return float(center[0]), float(center[1])

    @retry(
        retry=retry_if_exception_type((httpx.TransportError, TransientGeocoderError)),
        stop=stop_after_attempt(settings.retry_max_attempts),
        wait=wait_exponential_jitter(
            multiplier=settings.retry_min_wait,
            max=settings.retry_max_wait,
            jitter=1,
        ),
        before_sleep=before_sleep_log(logger, logging.WARNING),
    )
    async def _request_with_retry(self, address: str, request_id: str) -> dict:
        """One HTTP round trip. Raises TransientGeocoderError for retryable statuses."""
        start_time = time.time()
        url = f"{self.base_url}/{quote(address, safe='')}.json"
        params = {"limit": 1, "access_token": self.access_token}

        async with self._client() as client:
            response = await client.get(url, params=params)

        duration_ms = (time.time() - start_time) * 1000
        if response.status_code == 429 or response.status_code >= 500:
            logger.warning(
                "[%s] Geocoder answered %d after %.0fms",
                request_id,
                response.status_code,
                duration_ms,
            )
            raise TransientGeocoderError(f"HTTP {response.status_code}")

        if response.status_code in (401, 403):
            raise GeocoderAccessDenied(f"HTTP {response.status_code}")

        if response.status_code >= 400:
            # Malformed query: no location can be derived
            logger.warning("[%s] Geocoder rejected query: HTTP %d", request_id, response.status_code)
            return {"features": []}

        logger.info("[%s] Geocoder answered in %.0fms", request_id, duration_ms)
        return response.json()

    async def health_check(self) -> bool:
        return self.circuit_breaker.state != CircuitBreaker.OPEN and bool(self.access_token)


# ── Singleton Instance ────────────────────────────────────────────────────
# Holds the circuit breaker state shared across requests
mapbox_geocoder = MapboxGeocoder()
