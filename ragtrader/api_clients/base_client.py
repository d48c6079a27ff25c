"""Base API client with shared HTTP logic, retry handling, and cost tracking"""

import asyncio
import logging
from typing import Dict, List, Optional, Any, Callable
from dataclasses import dataclass
from datetime import datetime

import aiohttp

from ragtrader.utils.errors import CollaboratorError

logger = logging.getLogger(__name__)


# ============================================================================
# HTTP STATUS ERRORS
# ============================================================================

class RateLimitError(CollaboratorError):
    """Raised when API rate limit is exceeded (HTTP 429)"""

    def __init__(self, service: str, retry_after: Optional[int] = None):
        super().__init__(
            service=service,
            operation="Rate limit exceeded",
            status_code=429,
            details={'retry_after': retry_after}
        )
        self.retry_after = retry_after or 60


class AuthenticationError(CollaboratorError):
    """Raised when authentication fails (HTTP 401)"""

    def __init__(self, service: str, message: str = "Invalid API key"):
        super().__init__(
            service=service,
            operation="Authentication failed",
            status_code=401,
            message=message
        )


class ServerError(CollaboratorError):
    """Raised when server returns 5xx error"""

    def __init__(self, service: str, status_code: int, response_text: str = ""):
        super().__init__(
            service=service,
            operation="Server error",
            status_code=status_code,
            message=response_text[:100]
        )


class ClientError(CollaboratorError):
    """Raised when request is invalid (HTTP 4xx except 401/429)"""

    def __init__(self, service: str, status_code: int, message: str = ""):
        super().__init__(
            service=service,
            operation="Client error",
            status_code=status_code,
            message=message
        )


# ============================================================================
# COST TRACKING
# ============================================================================

@dataclass
class APIUsage:
    """One token-counted request"""

    timestamp: datetime
    operation: str
    input_tokens: int = 0
    output_tokens: int = 0
    status_code: int = 200
    service: str = "unknown"

    def cost(self, input_cost_per_mtok: float = 0, output_cost_per_mtok: float = 0) -> float:
        return (
            (self.input_tokens / 1_000_000) * input_cost_per_mtok +
            (self.output_tokens / 1_000_000) * output_cost_per_mtok
        )


class CostTracker:
    """Track API costs across requests"""

    def __init__(self, input_cost_per_mtok: float = 0, output_cost_per_mtok: float = 0):
        self.input_cost_per_mtok = input_cost_per_mtok
        self.output_cost_per_mtok = output_cost_per_mtok
        self.usage_history: List[APIUsage] = []

    def record_usage(self, usage: APIUsage) -> None:
        self.usage_history.append(usage)

    def total_cost(self) -> float:
        return sum(
            usage.cost(self.input_cost_per_mtok, self.output_cost_per_mtok)
            for usage in self.usage_history
        )

    def get_stats(self) -> Dict[str, Any]:
        total_cost = self.total_cost()
        total_requests = len(self.usage_history)

        return {
            'total_cost': total_cost,
            'total_requests': total_requests,
            'total_input_tokens': sum(u.input_tokens for u in self.usage_history),
            'total_output_tokens': sum(u.output_tokens for u in self.usage_history),
            'avg_cost_per_request': total_cost / max(1, total_requests),
        }


# ============================================================================
# BASE API CLIENT
# ============================================================================

class BaseAPIClient:
    """
    Base client for the exchange and reasoning APIs with shared functionality:
    - Consistent error handling with CollaboratorError subclasses
    - Automatic retry with exponential backoff
    - Cost tracking for token-counted APIs
    - Request timeout handling
    """

    def __init__(
        self,
        service_name: str,
        api_key: Optional[str] = None,
        base_url: str = "",
        timeout: int = 30,
        max_retries: int = 3,
        backoff_base: float = 2.0,
        input_cost_per_mtok: float = 0,
        output_cost_per_mtok: float = 0,
    ):
        """
        Initialize base API client

        Args:
            service_name: Name of the service (e.g., 'roostoo', 'deepseek')
            api_key: Optional API key for authentication
            base_url: Base URL for API endpoints
            timeout: Request timeout in seconds
            max_retries: Maximum number of retry attempts
            backoff_base: Base for exponential backoff (2 = 1s, 2s, 4s, 8s...)
            input_cost_per_mtok: Cost per million input tokens
            output_cost_per_mtok: Cost per million output tokens
        """
        self.service_name = service_name
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout
        self.max_retries = max_retries
        self.backoff_base = backoff_base

        # HTTP session (created in __aenter__ or on first request)
        self.session: Optional[aiohttp.ClientSession] = None

        self.cost_tracker = CostTracker(
            input_cost_per_mtok=input_cost_per_mtok,
            output_cost_per_mtok=output_cost_per_mtok
        )

    async def __aenter__(self):
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def open(self) -> None:
        if self.session is None or self.session.closed:
            timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)
            self.session = aiohttp.ClientSession(timeout=timeout)
            logger.debug(f"✅ Created session for {self.service_name}")

    async def close(self) -> None:
        if self.session and not self.session.closed:
            await self.session.close()
            logger.debug(f"✅ Closed session for {self.service_name}")
        self.session = None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self.session is None or self.session.closed:
            await self.open()
        return self.session

    # ========================================================================
    # HEADER BUILDING
    # ========================================================================

    def _build_headers(
        self,
        api_key: Optional[str] = None,
        auth_type: str = "Bearer",
        additional_headers: Optional[Dict[str, str]] = None
    ) -> Dict[str, str]:
        """
        Build HTTP headers with optional authentication

        Args:
            api_key: API key to use (defaults to self.api_key)
            auth_type: Authorization header type ("Bearer", "Token", etc.)
            additional_headers: Additional headers to include
        """
        headers = {
            "Content-Type": "application/json",
        }

        key_to_use = api_key or self.api_key
        if key_to_use:
            headers["Authorization"] = f"{auth_type} {key_to_use}"

        if additional_headers:
            headers.update(additional_headers)

        return headers

    # ========================================================================
    # RETRY LOGIC WITH EXPONENTIAL BACKOFF
    # ========================================================================

    async def _call_with_retry(
        self,
        coro_fn: Callable[[], Any],
        operation_name: str = "API call",
        max_retries: Optional[int] = None,
    ) -> Any:
        """
        Execute an async operation with exponential backoff retry logic

        Args:
            coro_fn: Async function to execute (as callable, not coroutine)
            operation_name: Human-readable operation description for logging
            max_retries: Override default max_retries for this call

        Returns:
            Result from the async function

        Raises:
            CollaboratorError: After max retries are exhausted, or immediately
                for authentication and client errors
        """
        retries = self.max_retries if max_retries is None else max_retries
        max_attempts = retries + 1
        last_exception: Optional[BaseException] = None

        for attempt in range(max_attempts):
            try:
                logger.debug(f"[{self.service_name}] {operation_name} (attempt {attempt + 1})")
                return await coro_fn()

            except RateLimitError as e:
                last_exception = e
                if attempt < max_attempts - 1:
                    wait_time = e.retry_after
                    logger.warning(
                        f"[{self.service_name}] Rate limited. "
                        f"Waiting {wait_time}s before retry..."
                    )
                    await asyncio.sleep(wait_time)
                else:
                    logger.error(f"[{self.service_name}] Rate limit exceeded after {max_attempts} attempts")

            except (asyncio.TimeoutError, aiohttp.ClientError) as e:
                last_exception = e
                if attempt < max_attempts - 1:
                    wait_time = self.backoff_base ** attempt
                    logger.warning(
                        f"[{self.service_name}] {operation_name} failed: {e}. "
                        f"Retrying in {wait_time:.1f}s... (attempt {attempt + 1}/{max_attempts - 1})"
                    )
                    await asyncio.sleep(wait_time)
                else:
                    logger.error(
                        f"[{self.service_name}] {operation_name} failed after {max_attempts} attempts"
                    )

            except ServerError as e:
                last_exception = e
                if attempt < max_attempts - 1:
                    wait_time = self.backoff_base ** attempt
                    logger.warning(
                        f"[{self.service_name}] Server error. "
                        f"Retrying in {wait_time:.1f}s..."
                    )
                    await asyncio.sleep(wait_time)
                else:
                    logger.error(f"[{self.service_name}] {operation_name} failed: {e}")

            except (AuthenticationError, ClientError) as e:
                # Auth and client errors are not retried
                logger.error(f"[{self.service_name}] {operation_name} failed: {e}")
                raise

        if isinstance(last_exception, CollaboratorError):
            raise last_exception
        raise CollaboratorError(
            self.service_name, operation_name, message=str(last_exception) or type(last_exception).__name__
        ) from last_exception

    # ========================================================================
    # RESPONSE HANDLING
    # ========================================================================

    async def _handle_response_status(self, response: aiohttp.ClientResponse) -> None:
        """
        Check HTTP response status and raise appropriate exceptions

        Raises:
            RateLimitError: If status is 429
            AuthenticationError: If status is 401
            ServerError: If status is 5xx
            ClientError: If status is 4xx (except 401, 429)
        """
        if response.status == 429:
            retry_after = int(response.headers.get('Retry-After', 60))
            raise RateLimitError(self.service_name, retry_after=retry_after)

        elif response.status == 401:
            raise AuthenticationError(self.service_name)

        elif response.status >= 500:
            text = await response.text()
            raise ServerError(self.service_name, response.status, text)

        elif response.status >= 400:
            text = await response.text()
            raise ClientError(self.service_name, response.status, text[:200])

    async def _request_json(
        self,
        method: str,
        path: str,
        operation_name: str,
        **kwargs
    ) -> Any:
        """
        Send one request with retries and return the decoded JSON body

        Raises:
            CollaboratorError: On HTTP errors, exhausted retries or a non-JSON body
        """
        url = f"{self.base_url}{path}"

        async def do_request():
            session = await self._get_session()
            async with session.request(method, url, **kwargs) as response:
                await self._handle_response_status(response)
                try:
                    return await response.json(content_type=None)
                except ValueError as e:
                    raise CollaboratorError(
                        self.service_name, operation_name, response.status, f"invalid JSON body: {e}"
                    )

        return await self._call_with_retry(do_request, operation_name)

    # ========================================================================
    # COST TRACKING
    # ========================================================================

    def record_usage(
        self,
        operation: str,
        input_tokens: int = 0,
        output_tokens: int = 0,
        status_code: int = 200
    ) -> None:
        usage = APIUsage(
            timestamp=datetime.now(),
            operation=operation,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            status_code=status_code,
            service=self.service_name,
        )
        self.cost_tracker.record_usage(usage)

    def get_cost_stats(self) -> Dict[str, Any]:
        """Get comprehensive cost and usage statistics"""
        return self.cost_tracker.get_stats()
