from .adapters import httpx_client, requests_session
from .env import load_tokens_from_env, parse_tokens
from .errors import GHPoolError, InvalidConfiguration, PoolClosed, RemoteNotFound
from .github import AsyncGitHubClient, GitHubClient
from .pool import AsyncTokenPool, Lease, TokenPool
from .state import Credential
from .types import AuthConfig, GitHubConfig, PoolConfig

__all__ = [
    "Credential",
    "Lease",
    "PoolConfig",
    "AuthConfig",
    "GitHubConfig",
    "TokenPool",
    "AsyncTokenPool",
    "GitHubClient",
    "AsyncGitHubClient",
    "GHPoolError",
    "InvalidConfiguration",
    "RemoteNotFound",
    "PoolClosed",
    "requests_session",
    "httpx_client",
    "load_tokens_from_env",
    "parse_tokens",
]
