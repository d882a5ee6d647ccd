from dataclasses import dataclass


@dataclass(frozen=True)
class PoolConfig:
    # GitHub's per-token hourly budget; assumed until the API reports otherwise
    default_quota: int = 5000
    # A token at or below this many calls is skipped to leave room for in-flight requests
    safety_margin: int = 10
    reset_window: float = 3600.0


@dataclass(frozen=True)
class AuthConfig:
    header: str = "Authorization"
    scheme: str = "Bearer"


@dataclass(frozen=True)
class GitHubConfig:
    api_url: str = "https://api.github.com"
    api_version: str = "2022-11-28"
    user_agent: str = "ghpool"
    timeout: float = 30.0
    per_page: int = 100
