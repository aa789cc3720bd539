"""
Base HTTP client for the services this one calls.

Calls are retried with exponential backoff for a bounded number of
attempts; the caller decides what to do once they are exhausted.
"""

import logging
from typing import Any, Dict, Optional

import httpx
from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from problem_api.services.errors import CollaboratorError

logger = logging.getLogger(__name__)


def _is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, CollaboratorError) and exc.retryable


class CollaboratorClient:
    """
    Async JSON client for a collaborator service.

    Connection errors, timeouts, 429 and 5xx responses are retried;
    other 4xx responses fail immediately.
    """

    name = "collaborator"

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        max_attempts: int = 3,
        backoff_multiplier: float = 0.5,
        backoff_max: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the client.

        Args:
            base_url: Base URL of the collaborator
            timeout: Request timeout in seconds
            max_attempts: Attempts per call before giving up
            backoff_multiplier: Multiplier for the exponential wait (seconds)
            backoff_max: Maximum wait between attempts (seconds)
            transport: Optional httpx transport (used by tests)
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.backoff_multiplier = backoff_multiplier
        self.backoff_max = backoff_max
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
        self._client = None

    async def _send_once(self, method: str, path: str, payload: Dict[str, Any]) -> httpx.Response:
        client = await self._get_client()
        try:
            response = await client.request(method, path, json=payload)
        except httpx.TimeoutException as e:
            raise CollaboratorError(self.name, f"timeout calling {method} {path}") from e
        except httpx.HTTPError as e:
            raise CollaboratorError(self.name, f"{method} {path} failed: {e}") from e

        if response.status_code == 429 or response.status_code >= 500:
            raise CollaboratorError(
                self.name, f"{method} {path} returned {response.status_code}"
            )
        if response.status_code >= 400:
            raise CollaboratorError(
                self.name,
                f"{method} {path} rejected with {response.status_code}: {response.text[:200]}",
                retryable=False,
            )
        return response

    async def request(self, method: str, path: str, payload: Dict[str, Any]) -> httpx.Response:
        """
        Send a JSON request, retrying transient failures.

        Raises:
            CollaboratorError: when the call is rejected or every attempt failed
        """
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.backoff_multiplier, max=self.backoff_max),
            retry=retry_if_exception(_is_retryable),
            reraise=True,
        ):
            with attempt:
                number = attempt.retry_state.attempt_number
                if number > 1:
                    logger.info(f"Retrying {self.name} {method} {path} (attempt {number}/{self.max_attempts})")
                return await self._send_once(method, path, payload)
