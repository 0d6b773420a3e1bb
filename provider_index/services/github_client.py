"""Rate-limited, caching GitHub API client"""

import json
import logging
import threading
import time
from base64 import b64decode
from collections.abc import Callable
from urllib.parse import quote

import httpx

from provider_index.config import config
from provider_index.models.repository import (
    CompareResult,
    GitHubContent,
    GitHubTag,
    RemoteRepositorySummary,
)

logger = logging.getLogger(__name__)

ANONYMOUS_RATE_LIMIT = 60
AUTHENTICATED_RATE_LIMIT = 5000
TAGS_PER_PAGE = 100
UNAVAILABLE_STATUSES = frozenset({403, 404, 409})


class GitHubAPIError(Exception):
    """Raised when the GitHub API returns a non-success response"""

    def __init__(self, url: str, status_code: int | None = None, message: str = ""):
        self.url = url
        self.status_code = status_code
        self.message = message or f"GitHub API error: {status_code}"
        super().__init__(self.message)


class ContentUnavailableError(GitHubAPIError):
    """Raised when an archive cannot be fetched for a non-retryable reason"""

    def __init__(self, url: str, status_code: int):
        super().__init__(
            url, status_code, f"repository content unavailable: status {status_code}"
        )


class RateLimitExceededError(Exception):
    """Raised when no request tokens are left in the current window"""

    def __init__(self, url: str):
        self.url = url
        super().__init__("rate limit exceeded")


class RateLimiter:
    """Token bucket that refills to max_tokens once per window"""

    def __init__(
        self,
        max_tokens: int,
        window_seconds: float = 3600.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_tokens = max_tokens
        self.window_seconds = window_seconds
        self._clock = clock
        self._tokens = max_tokens
        self._refill_at = clock() + window_seconds
        self._lock = threading.Lock()

    @property
    def remaining(self) -> int:
        with self._lock:
            return self._tokens

    @property
    def refill_at(self) -> float:
        with self._lock:
            return self._refill_at

    def acquire(self) -> bool:
        """Take one token, refilling first if the window has elapsed"""
        with self._lock:
            now = self._clock()
            if now > self._refill_at:
                self._tokens = self.max_tokens
                self._refill_at = now + self.window_seconds

            if self._tokens > 0:
                self._tokens -= 1
                return True
            return False


class ResponseCache:
    """URL -> response body cache with a fixed TTL"""

    def __init__(self, ttl_seconds: float = 600.0, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, tuple[bytes, float]] = {}
        self._lock = threading.Lock()

    def get(self, url: str) -> bytes | None:
        with self._lock:
            entry = self._entries.get(url)
        if entry is None:
            return None
        data, expires_at = entry
        if self._clock() >= expires_at:
            return None
        return data

    def set(self, url: str, data: bytes) -> None:
        expires_at = self._clock() + self.ttl_seconds
        with self._lock:
            self._entries[url] = (data, expires_at)

    def clear(self) -> None:
        with self._lock:
            self._entries = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class GitHubClient:
    """Fetch repository metadata, README, tags, compare results and tarballs"""

    def __init__(
        self,
        token: str | None = None,
        api_url: str | None = None,
        rate_limiter: RateLimiter | None = None,
        cache: ResponseCache | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Initialize GitHub client

        Args:
            token: GitHub token; raises the request quota when set
            api_url: GitHub API base URL
            rate_limiter: Token bucket (created from the token type if None)
            cache: Response cache (created with the configured TTL if None)
            timeout: HTTP timeout in seconds
            transport: Optional httpx transport (used by tests)
        """
        self.token = token
        self.api_url = (api_url or config.github_api_url).rstrip("/")
        if rate_limiter is None:
            max_tokens = AUTHENTICATED_RATE_LIMIT if token else ANONYMOUS_RATE_LIMIT
            rate_limiter = RateLimiter(max_tokens, float(config.rate_limit_window_seconds))
        self.rate_limiter = rate_limiter
        self.cache = cache or ResponseCache(float(config.cache_ttl_seconds))

        headers = {
            "Accept": "application/vnd.github.v3+json",
            "User-Agent": f"{config.otel_service_name}/{config.otel_service_version}",
        }
        if self.token:
            # Use 'token' prefix for classic GitHub tokens (ghp_*)
            # Use 'Bearer' prefix for fine-grained tokens (github_pat_*)
            prefix = "Bearer" if self.token.startswith("github_pat_") else "token"
            headers["Authorization"] = f"{prefix} {self.token}"

        self.client = httpx.AsyncClient(
            headers=headers,
            timeout=httpx.Timeout(timeout or config.http_timeout_seconds),
            follow_redirects=True,
            transport=transport,
        )

    async def get(self, url: str) -> bytes:
        """
        GET a URL through the response cache

        Raises:
            RateLimitExceededError: If no token is available
            GitHubAPIError: On any non-200 response
        """
        cached = self.cache.get(url)
        if cached is not None:
            logger.debug(f"Cache hit: {url}")
            return cached

        if not self.rate_limiter.acquire():
            raise RateLimitExceededError(url)

        response = await self.client.get(url)
        if response.status_code != 200:
            raise GitHubAPIError(url, response.status_code)

        data = response.content
        self.cache.set(url, data)
        return data

    async def get_archive(self, url: str) -> bytes:
        """
        GET a tarball (never cached)

        Raises:
            RateLimitExceededError: If no token is available
            ContentUnavailableError: On 403, 404 or 409
            GitHubAPIError: On any other non-200 response
        """
        if not self.rate_limiter.acquire():
            raise RateLimitExceededError(url)

        response = await self.client.get(url)
        if response.status_code in UNAVAILABLE_STATUSES:
            raise ContentUnavailableError(url, response.status_code)
        if response.status_code != 200:
            raise GitHubAPIError(url, response.status_code)

        return response.content

    def clear_cache(self) -> None:
        """Drop every cached response"""
        self.cache.clear()

    def repository_url(self, full_name: str) -> str:
        return f"{self.api_url}/repos/{full_name}"

    def tarball_url(self, full_name: str) -> str:
        return f"{self.repository_url(full_name)}/tarball"

    async def get_repository(self, full_name: str) -> RemoteRepositorySummary:
        """Fetch repository metadata"""
        data = await self.get(self.repository_url(full_name))
        return RemoteRepositorySummary.model_validate_json(data)

    async def get_readme(self, full_name: str) -> str:
        """Fetch the README text, via download_url when present"""
        data = await self.get(f"{self.repository_url(full_name)}/readme")
        content = GitHubContent.model_validate_json(data)

        if content.download_url:
            raw = await self.get(content.download_url)
            return raw.decode("utf-8", errors="replace")

        if content.content:
            decoded = b64decode(content.content.replace("\n", ""))
            return decoded.decode("utf-8", errors="replace")

        raise GitHubAPIError(content.path or full_name, None, "no content available")

    async def list_tags(self, full_name: str, max_pages: int = 1) -> list[GitHubTag]:
        """List tags, following pages until a short page or max_pages"""
        max_pages = max(max_pages, 1)
        tags: list[GitHubTag] = []

        for page in range(1, max_pages + 1):
            url = f"{self.repository_url(full_name)}/tags?per_page={TAGS_PER_PAGE}&page={page}"
            data = await self.get(url)
            batch = [GitHubTag.model_validate(item) for item in _json_list(data, url)]
            tags.extend(batch)
            if len(batch) < TAGS_PER_PAGE:
                break

        return tags

    async def compare(self, full_name: str, base: str, head: str) -> CompareResult:
        """Compare two refs and return per-file patches"""
        base = base.strip()
        head = head.strip()
        if not base or not head:
            raise ValueError("base and head tags are required")

        url = (
            f"{self.repository_url(full_name)}/compare/"
            f"{quote(base, safe='')}...{quote(head, safe='')}"
        )
        data = await self.get(url)
        return CompareResult.model_validate_json(data)

    async def close(self):
        """Close the HTTP client"""
        await self.client.aclose()

    async def __aenter__(self) -> "GitHubClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()


def _json_list(data: bytes, url: str) -> list:
    try:
        payload = json.loads(data)
    except json.JSONDecodeError as e:
        raise GitHubAPIError(url, 200, f"invalid JSON payload: {e}") from e
    if not isinstance(payload, list):
        raise GitHubAPIError(url, 200, "expected a JSON list")
    return payload
