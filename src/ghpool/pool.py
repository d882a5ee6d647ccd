import asyncio
import contextlib
import logging
import math
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Union

from .adapters import aclose_handle, close_handle, httpx_client, requests_session
from .env import DEFAULT_TOKENS_VAR, env_flag, env_lookup, load_tokens_from_env, parse_tokens
from .errors import InvalidConfiguration, PoolClosed
from .state import Credential
from .types import AuthConfig, GitHubConfig, PoolConfig

HandleFactory = Callable[[Union[str, None]], Any]

REQUIRED_FLAG_VAR = "GITHUB_TOKENS_REQUIRED"
API_URL_VAR = "GITHUB_API_URL"

# ---------- Common helpers ----------


def _header(headers, name: str) -> Union[str, None]:
    for k, v in headers.items():
        if k.lower() == name:
            return v
    return None


def _parse_rate_limit(headers) -> Union[tuple[int, float], None]:
    """Return (remaining, reset epoch seconds) when both headers are present and integral."""
    remaining = _header(headers or {}, "x-ratelimit-remaining")
    reset = _header(headers or {}, "x-ratelimit-reset")
    if remaining is None or reset is None:
        return None
    try:
        return max(0, int(remaining)), float(int(reset))
    except (TypeError, ValueError):
        return None


@dataclass(frozen=True)
class Lease:
    """A handle handed out by the selector, tagged with where it came from."""

    handle: Any
    index: Union[int, None] = None
    generation: int = 0

    @property
    def anonymous(self) -> bool:
        return self.index is None


# ---------- Base pool (shared logic; synchronization handled by subclasses) ----------


class _CredentialPool:
    def __init__(
        self,
        tokens,
        strict: bool,
        pool_config: Union[PoolConfig, None],
        auth_config: AuthConfig,
        github_config: GitHubConfig,
        handle_factory: HandleFactory,
    ):
        """Initialize a _CredentialPool.

        Args:
            tokens (str | Iterable[str] | None): comma-separated string or iterable of tokens
            strict (bool): raise InvalidConfiguration when no token survives parsing
            pool_config (PoolConfig | None): quota defaults and safety margin
            auth_config (AuthConfig): how tokens are presented to the API
            github_config (GitHubConfig): API location and request defaults
            handle_factory (Callable): builds a client handle for a token (None = anonymous)
        """
        self.pool_config = pool_config or PoolConfig()
        self.auth_config = auth_config
        self.github_config = github_config
        self._handle_factory = handle_factory
        self._credentials: list[Credential] = []
        self._cursor = 0
        self._generation = 0
        # handles of replaced credentials; in-flight calls may still hold them
        self._retired: list[Any] = []
        self._closed = False
        self._logger = logging.getLogger("ghpool")
        self._initialize(tokens, strict)

    # ---------- convenience: build from env ----------
    @classmethod
    def from_env(
        cls,
        name: str = DEFAULT_TOKENS_VAR,
        env_path: Union[str, None] = ".env",
        strict: Union[bool, None] = None,
        **kwargs,
    ):
        """Create a pool from the ``GITHUB_TOKENS`` variable (or ``name``).

        Args:
            name (str): variable holding the comma-separated tokens
            env_path (str | None): optional .env file; real environment wins
            strict (bool | None): defaults to the GITHUB_TOKENS_REQUIRED flag
            kwargs: forwarded to the pool constructor
        """
        tokens = load_tokens_from_env(name, env_path)
        if strict is None:
            strict = env_flag(REQUIRED_FLAG_VAR, env_path)
        if kwargs.get("github_config") is None:
            api_url = env_lookup(env_path).get(API_URL_VAR)
            if api_url:
                kwargs["github_config"] = GitHubConfig(api_url=api_url.rstrip("/"))
        return cls(tokens, strict=strict, **kwargs)

    def __len__(self) -> int:
        return len(self._credentials)

    @property
    def cursor(self) -> int:
        return self._cursor

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def credentials(self) -> tuple[Credential, ...]:
        return tuple(self._credentials)

    def is_empty(self) -> bool:
        return not self._credentials

    def status(self) -> list[dict]:
        """Per-credential quota snapshot, JSON-serializable."""
        return [
            {
                "index": i,
                "remaining": c.remaining,
                "reset_time": datetime.fromtimestamp(c.reset_at, tz=timezone.utc).isoformat(),
                "is_active": i == self._cursor,
            }
            for i, c in enumerate(self._credentials)
        ]

    def _now(self) -> float:
        return time.time()

    def _initialize(self, tokens, strict: bool) -> None:
        if self._closed:
            raise PoolClosed("token pool is closed")
        parsed = parse_tokens(tokens)
        if strict and not parsed:
            raise InvalidConfiguration("At least one GitHub token is required")
        now = self._now()
        cfg = self.pool_config
        fresh = [
            Credential(
                token=t,
                handle=self._handle_factory(t),
                remaining=cfg.default_quota,
                reset_at=now + cfg.reset_window,
            )
            for t in parsed
        ]
        self._retired.extend(c.handle for c in self._credentials if c.handle is not None)
        self._credentials = fresh
        self._cursor = 0
        self._generation += 1
        if parsed:
            self._logger.info(f"credential pool initialized with {len(parsed)} token(s)")
        else:
            self._logger.info("credential pool initialized without tokens")

    def _lease(self, index: int) -> Lease:
        return Lease(self._credentials[index].handle, index, self._generation)

    def _anonymous_lease(self) -> Lease:
        self._logger.warning(
            "No GitHub tokens available. Using unauthenticated API "
            "(limited to public repositories and lower rate limits)."
        )
        return Lease(self._handle_factory(None), None, self._generation)

    def _pick(self, now: float) -> Union[Lease, None]:
        cfg = self.pool_config
        n = len(self._credentials)
        for i in range(n):
            idx = (self._cursor + i) % n
            cred = self._credentials[idx]
            if cred.reset_if_due(now, cfg.default_quota, cfg.reset_window):
                self._logger.debug(f"token #{idx} reset window passed; assuming full quota")
            if cred.usable(cfg.safety_margin):
                self._cursor = idx
                return self._lease(idx)
        return None

    def _select_once(self) -> Union[Lease, float]:
        """One selection pass: a Lease, or the number of seconds to wait before retrying."""
        if self._closed:
            raise PoolClosed("token pool is closed")
        if not self._credentials:
            return self._anonymous_lease()
        now = self._now()
        lease = self._pick(now)
        if lease is not None:
            return lease
        delay = max(0.0, min(c.reset_at for c in self._credentials) - now)
        if delay > 0:
            return delay
        self._cursor = 0
        return self._lease(0)

    def _log_wait(self, delay: float) -> None:
        self._logger.warning(f"Rate limit exceeded. Waiting {math.ceil(delay)} seconds...")

    # ---------- rate-limit feedback ----------
    def record_usage(self, index: Union[int, None], headers, generation: Union[int, None] = None):
        """Overwrite the quota of credential ``index`` with what the API reported.

        A no-op unless both X-RateLimit-Remaining and X-RateLimit-Reset are present.
        Usage reported for an older generation of the pool is ignored.
        """
        if index is None:
            return False
        if generation is not None and generation != self._generation:
            self._logger.debug(f"ignoring usage for token #{index} from replaced pool")
            return False
        parsed = _parse_rate_limit(headers)
        if parsed is None or not 0 <= index < len(self._credentials):
            return False
        cred = self._credentials[index]
        cred.remaining, cred.reset_at = parsed
        self._logger.debug(f"token #{index} remaining={cred.remaining} reset_at={cred.reset_at:.0f}")
        return True

    def mark_result(self, lease: Lease, headers) -> bool:
        return self.record_usage(lease.index, headers, lease.generation)

    def _drain_handles(self) -> list[Any]:
        handles = self._retired + [c.handle for c in self._credentials if c.handle is not None]
        self._retired = []
        for c in self._credentials:
            c.handle = None
        self._closed = True
        return handles


# ---------- Sync pool (requests) ----------


class TokenPool(_CredentialPool):
    def __init__(
        self,
        tokens=None,
        strict: bool = False,
        log_level: Union[int, None] = None,
        **kwargs,
    ):
        """Initialize a TokenPool.

        Args:
            tokens (str | Iterable[str] | None): comma-separated string or iterable of tokens
            strict (bool, optional): raise InvalidConfiguration on an empty token list
            log_level (Union[int, None], optional): log level
            kwargs:
            - pool_config: PoolConfig object
            - auth_config: AuthConfig object
            - github_config: GitHubConfig object
            - handle_factory: callable(token | None) -> handle (default: requests.Session)
        """
        auth = kwargs.get("auth_config") or AuthConfig()
        github = kwargs.get("github_config") or GitHubConfig()
        factory = kwargs.get("handle_factory") or (
            lambda token: requests_session(token, auth, github)
        )
        self._lock = threading.Lock()
        super().__init__(tokens, strict, kwargs.get("pool_config"), auth, github, factory)
        if log_level is not None:
            with contextlib.suppress(Exception):
                self._logger.setLevel(log_level)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False

    def initialize(self, tokens, strict: bool = False) -> None:
        """Replace every credential with ``tokens``; prior quota tracking is discarded."""
        with self._lock:
            self._initialize(tokens, strict)

    def select(self) -> Lease:
        while True:
            with self._lock:
                outcome = self._select_once()
            if isinstance(outcome, Lease):
                return outcome
            self._log_wait(outcome)
            self._sleep(outcome)

    def select_handle(self):
        return self.select().handle

    def close(self):
        with self._lock:
            handles = self._drain_handles()
        for h in handles:
            close_handle(h)

    def _sleep(self, delay: float) -> None:
        time.sleep(delay)


# ---------- Async pool (httpx) ----------


class AsyncTokenPool(_CredentialPool):
    def __init__(
        self,
        tokens=None,
        strict: bool = False,
        log_level: Union[int, None] = None,
        **kwargs,
    ):
        """Initialize an AsyncTokenPool.

        Other keywords for kwargs:
        - pool_config: PoolConfig object
        - auth_config: AuthConfig object
        - github_config: GitHubConfig object
        - handle_factory: callable(token | None) -> handle (default: httpx.AsyncClient)
        """
        auth = kwargs.get("auth_config") or AuthConfig()
        github = kwargs.get("github_config") or GitHubConfig()
        factory = kwargs.get("handle_factory") or (lambda token: httpx_client(token, auth, github))
        self._lock = asyncio.Lock()
        super().__init__(tokens, strict, kwargs.get("pool_config"), auth, github, factory)
        if log_level is not None:
            with contextlib.suppress(Exception):
                self._logger.setLevel(log_level)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.aclose()
        return False

    def initialize(self, tokens, strict: bool = False) -> None:
        """Replace every credential with ``tokens``; prior quota tracking is discarded.

        Runs without awaiting, so it cannot interleave with a selection pass.
        """
        self._initialize(tokens, strict)

    async def select(self) -> Lease:
        while True:
            async with self._lock:
                outcome = self._select_once()
            if isinstance(outcome, Lease):
                return outcome
            self._log_wait(outcome)
            await self._sleep(outcome)

    async def select_handle(self):
        return (await self.select()).handle

    async def aclose(self):
        for h in self._drain_handles():
            await aclose_handle(h)

    async def _sleep(self, delay: float) -> None:
        await asyncio.sleep(delay)
