from typing import Union

from .types import AuthConfig, GitHubConfig


def _base_headers(token: Union[str, None], auth: AuthConfig, github: GitHubConfig) -> dict:
    headers = {
        "Accept": "application/vnd.github+json",
        "X-GitHub-Api-Version": github.api_version,
        "User-Agent": github.user_agent,
    }
    if token:
        headers[auth.header] = f"{auth.scheme} {token}".strip()
    return headers


# ---------- requests (sync) ----------
def requests_session(
    token: Union[str, None],
    auth: Union[AuthConfig, None] = None,
    github: Union[GitHubConfig, None] = None,
):
    """Build a requests.Session bound to ``token`` (anonymous when token is None)."""
    import requests  # noqa: PLC0415

    sess = requests.Session()
    sess.headers.update(_base_headers(token, auth or AuthConfig(), github or GitHubConfig()))
    return sess


# ---------- httpx (async) ----------
def httpx_client(
    token: Union[str, None],
    auth: Union[AuthConfig, None] = None,
    github: Union[GitHubConfig, None] = None,
    **kwargs,
):
    """Build an httpx.AsyncClient bound to ``token`` (anonymous when token is None).

    Extra keyword arguments (e.g. ``transport``) are passed to httpx.AsyncClient.
    """
    import httpx  # noqa: PLC0415

    github = github or GitHubConfig()
    return httpx.AsyncClient(
        headers=_base_headers(token, auth or AuthConfig(), github),
        timeout=github.timeout,
        **kwargs,
    )


def close_handle(handle) -> None:
    close = getattr(handle, "close", None)
    if close is not None:
        close()


async def aclose_handle(handle) -> None:
    aclose = getattr(handle, "aclose", None)
    if aclose is not None:
        await aclose()
    else:
        close_handle(handle)
