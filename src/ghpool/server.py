import argparse
import json
import logging
import sys
from contextlib import asynccontextmanager
from typing import Annotated, Literal, Union

from mcp.server.fastmcp import FastMCP
from mcp.server.fastmcp.exceptions import ToolError
from pydantic import Field

from .errors import InvalidConfiguration
from .github import AsyncGitHubClient
from .pool import AsyncTokenPool

SERVER_NAME = "github-mcp-server"

Owner = Annotated[str, Field(description="Repository owner/organization name")]
Repo = Annotated[str, Field(description="Repository name")]
Tokens = Annotated[
    Union[str, None],
    Field(
        description="Comma-separated GitHub Personal Access Tokens "
        "(optional if set in environment)"
    ),
]

logger = logging.getLogger("ghpool")


def _dump(payload) -> str:
    return json.dumps(payload, indent=2)


class GitHubTools:
    """Tool handlers; each returns indented JSON text or raises ToolError("Error: ...")."""

    def __init__(self, client: AsyncGitHubClient):
        self.client = client

    async def _run(self, call) -> str:
        try:
            return _dump(await call)
        except Exception as e:
            logger.debug(f"tool call failed: {e!r}")
            raise ToolError(f"Error: {e}") from e

    async def get_latest_release(self, owner: Owner, repo: Repo, tokens: Tokens = None) -> str:
        return await self._run(self.client.get_latest_release(owner, repo, tokens))

    async def get_repository_content(
        self,
        owner: Owner,
        repo: Repo,
        path: Annotated[str, Field(description="File or directory path in the repository")] = "",
        ref: Annotated[str, Field(description="Git reference (branch, tag, or commit)")] = "main",
        tokens: Tokens = None,
    ) -> str:
        return await self._run(self.client.get_repository_content(owner, repo, path, ref, tokens))

    async def list_repositories(
        self,
        owner: Annotated[str, Field(description="Organization or user name")],
        type: Annotated[
            Literal["all", "owner", "member"],
            Field(description="Type of repositories to list"),
        ] = "all",
        tokens: Tokens = None,
    ) -> str:
        return await self._run(self.client.list_repositories(owner, type, tokens))

    async def get_rate_limit_status(self) -> str:
        return _dump(self.client.pool.status())


class GitHubMCP(FastMCP):
    async def call_tool(self, *args, **kwargs):
        try:
            return await super().call_tool(*args, **kwargs)
        except ToolError as e:
            # FastMCP prefixes "Error executing tool ...": surface the handler message as is
            if isinstance(e.__cause__, ToolError):
                raise e.__cause__ from None
            raise


def create_server(pool: Union[AsyncTokenPool, None] = None) -> FastMCP:
    pool = pool if pool is not None else AsyncTokenPool.from_env()

    @asynccontextmanager
    async def lifespan(_server):
        try:
            yield {}
        finally:
            await pool.aclose()

    tools = GitHubTools(AsyncGitHubClient(pool))
    server = GitHubMCP(SERVER_NAME, lifespan=lifespan)
    server.add_tool(
        tools.get_latest_release,
        name="get_latest_release",
        description="Get the latest release information from a GitHub repository",
    )
    server.add_tool(
        tools.get_repository_content,
        name="get_repository_content",
        description="Get content from a GitHub repository file or directory",
    )
    server.add_tool(
        tools.list_repositories,
        name="list_repositories",
        description="List repositories for an organization or user",
    )
    server.add_tool(
        tools.get_rate_limit_status,
        name="get_rate_limit_status",
        description="Show remaining quota, reset time and the active flag for each configured token",
    )
    return server


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(
        prog="ghpool-mcp", description="GitHub MCP server with rate-limit-aware token rotation"
    )
    parser.add_argument("--env-file", default=".env", help="optional .env file (default: .env)")
    parser.add_argument("--log-level", default="INFO", help="logging level (default: INFO)")
    args = parser.parse_args(argv)

    # stdout carries the protocol
    logging.basicConfig(
        stream=sys.stderr,
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        pool = AsyncTokenPool.from_env(env_path=args.env_file)
    except InvalidConfiguration as e:
        logger.error(f"Server error: {e}")
        return 1
    server = create_server(pool)
    logger.info("GitHub MCP Server running on stdio")
    server.run()
    return 0
