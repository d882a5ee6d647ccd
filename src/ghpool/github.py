import base64
import logging
from typing import Union
from urllib.parse import quote

from .adapters import aclose_handle, close_handle
from .errors import RemoteNotFound
from .pool import AsyncTokenPool, Lease, TokenPool

logger = logging.getLogger("ghpool")

ENTRY_FIELDS = ("name", "path", "type", "size", "sha", "url", "html_url", "download_url")
ASSET_FIELDS = ("name", "download_count", "browser_download_url", "size")
REPO_FIELDS = (
    "name",
    "full_name",
    "description",
    "private",
    "html_url",
    "clone_url",
    "ssh_url",
    "language",
    "stargazers_count",
    "forks_count",
    "updated_at",
    "created_at",
)

# ---------- projections ----------


def _pick(data: dict, fields) -> dict:
    return {f: data.get(f) for f in fields}


def release_record(data: dict) -> dict:
    return {
        "tag_name": data.get("tag_name"),
        "name": data.get("name"),
        "body": data.get("body"),
        "published_at": data.get("published_at"),
        "html_url": data.get("html_url"),
        "assets": [_pick(a, ASSET_FIELDS) for a in data.get("assets") or []],
    }


def content_record(data: Union[dict, list]) -> Union[dict, list]:
    """Directory listings become entry summaries; a single file keeps its decoded content."""
    if isinstance(data, list):
        return [_pick(item, ENTRY_FIELDS) for item in data]
    content = data.get("content")
    if data.get("encoding") == "base64" and content is not None:
        content = base64.b64decode(content).decode("utf-8", errors="replace")
    record = _pick(data, ENTRY_FIELDS[:5])
    record["content"] = content
    record["encoding"] = data.get("encoding")
    record.update(_pick(data, ENTRY_FIELDS[5:]))
    return record


def repository_record(data: dict) -> dict:
    return _pick(data, REPO_FIELDS)


# ---------- shared request plumbing ----------


class _GitHubBase:
    def __init__(self, pool):
        self.pool = pool

    def _url(self, path: str) -> str:
        return f"{self.pool.github_config.api_url}{path}"

    def _override(self, tokens: Union[str, None]) -> None:
        # an explicit per-call token list replaces the pool wholesale
        if tokens:
            self.pool.initialize(tokens, strict=True)

    def _handle_response(self, lease: Lease, response, not_found: str):
        self.pool.mark_result(lease, response.headers)
        logger.debug(f"GET {response.url} -> {response.status_code} (token #{lease.index})")
        if response.status_code == 404:  # noqa: PLR2004, http status code can be constant
            raise RemoteNotFound(not_found, url=str(response.url))
        response.raise_for_status()
        return response.json()

    @staticmethod
    def _repo_path(owner: str, repo: str) -> str:
        return f"/repos/{quote(owner, safe='')}/{quote(repo, safe='')}"

    @staticmethod
    def _content_path(owner: str, repo: str, path: str) -> str:
        base = _GitHubBase._repo_path(owner, repo)
        return f"{base}/contents/{quote(path.strip('/'), safe='/')}"

    def _listing_params(self, type: str) -> dict:
        return {"type": type, "per_page": self.pool.github_config.per_page}

    @staticmethod
    def _owner_error(owner: str, org_err: Exception, user_err: Exception) -> Exception:
        if isinstance(org_err, RemoteNotFound) and isinstance(user_err, RemoteNotFound):
            return RemoteNotFound(f"Organization or user {owner} not found")
        return org_err


# ---------- Sync client (requests) ----------


class GitHubClient(_GitHubBase):
    def __init__(self, pool: TokenPool):
        super().__init__(pool)

    def _get(self, path: str, not_found: str, params: Union[dict, None] = None):
        lease = self.pool.select()
        try:
            resp = lease.handle.request(
                "GET", self._url(path), params=params, timeout=self.pool.github_config.timeout
            )
            return self._handle_response(lease, resp, not_found)
        finally:
            if lease.anonymous:
                close_handle(lease.handle)

    def get_latest_release(self, owner: str, repo: str, tokens: Union[str, None] = None) -> dict:
        self._override(tokens)
        data = self._get(
            f"{self._repo_path(owner, repo)}/releases/latest",
            f"Repository {owner}/{repo} not found or no releases available",
        )
        return release_record(data)

    def get_repository_content(
        self,
        owner: str,
        repo: str,
        path: str = "",
        ref: str = "main",
        tokens: Union[str, None] = None,
    ):
        self._override(tokens)
        data = self._get(
            self._content_path(owner, repo, path),
            f"Content not found: {owner}/{repo}/{path}",
            params={"ref": ref},
        )
        return content_record(data)

    def list_repositories(
        self, owner: str, type: str = "all", tokens: Union[str, None] = None
    ) -> list[dict]:
        self._override(tokens)
        params = self._listing_params(type)
        who = quote(owner, safe="")
        try:
            data = self._get(f"/orgs/{who}/repos", f"Organization {owner} not found", params)
        except Exception as org_err:
            try:
                data = self._get(f"/users/{who}/repos", f"User {owner} not found", params)
            except Exception as user_err:
                raise self._owner_error(owner, org_err, user_err)  # noqa: B904
        return [repository_record(r) for r in data]


# ---------- Async client (httpx) ----------


class AsyncGitHubClient(_GitHubBase):
    def __init__(self, pool: AsyncTokenPool):
        super().__init__(pool)

    async def _get(self, path: str, not_found: str, params: Union[dict, None] = None):
        lease = await self.pool.select()
        try:
            resp = await lease.handle.request("GET", self._url(path), params=params)
            return self._handle_response(lease, resp, not_found)
        finally:
            if lease.anonymous:
                await aclose_handle(lease.handle)

    async def get_latest_release(
        self, owner: str, repo: str, tokens: Union[str, None] = None
    ) -> dict:
        self._override(tokens)
        data = await self._get(
            f"{self._repo_path(owner, repo)}/releases/latest",
            f"Repository {owner}/{repo} not found or no releases available",
        )
        return release_record(data)

    async def get_repository_content(
        self,
        owner: str,
        repo: str,
        path: str = "",
        ref: str = "main",
        tokens: Union[str, None] = None,
    ):
        self._override(tokens)
        data = await self._get(
            self._content_path(owner, repo, path),
            f"Content not found: {owner}/{repo}/{path}",
            params={"ref": ref},
        )
        return content_record(data)

    async def list_repositories(
        self, owner: str, type: str = "all", tokens: Union[str, None] = None
    ) -> list[dict]:
        self._override(tokens)
        params = self._listing_params(type)
        who = quote(owner, safe="")
        try:
            data = await self._get(f"/orgs/{who}/repos", f"Organization {owner} not found", params)
        except Exception as org_err:
            try:
                data = await self._get(f"/users/{who}/repos", f"User {owner} not found", params)
            except Exception as user_err:
                raise self._owner_error(owner, org_err, user_err)  # noqa: B904
        return [repository_record(r) for r in data]
