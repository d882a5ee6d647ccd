import os
from collections.abc import Iterable

DEFAULT_TOKENS_VAR = "GITHUB_TOKENS"
_TRUTHY = {"1", "true", "yes", "on"}


def _parse_env_file(env_path: str) -> dict[str, str]:
    """Read KEY=VALUE lines (optionally prefixed with `export`) from a .env file.

    Values lose surrounding quotes; os.environ is left untouched.
    """
    values: dict[str, str] = {}
    try:
        with open(env_path) as f:
            lines = [ln.strip() for ln in f]
    except FileNotFoundError:
        return values
    for line in lines:
        if line.startswith("#") or "=" not in line:
            continue
        key, _, val = line.partition("=")
        key = key.removeprefix("export ").strip()
        if key:
            values[key] = val.strip().strip("\"'")
    return values


def parse_tokens(tokens: str | Iterable[str] | None) -> list[str]:
    """Split a comma-separated token string (or iterable) into trimmed, non-empty tokens."""
    if tokens is None:
        return []
    parts = tokens.split(",") if isinstance(tokens, str) else tokens
    return [t.strip() for t in parts if t and t.strip()]


def env_lookup(env_path: str | None = None) -> dict[str, str]:
    """Environment view where real variables take precedence over the .env file."""
    file_env = _parse_env_file(env_path) if env_path else {}
    return {**file_env, **os.environ}


def load_tokens_from_env(
    name: str = DEFAULT_TOKENS_VAR,
    env_path: str | None = ".env",
) -> list[str]:
    """Read the comma-separated token list named ``name``.

    - The process environment wins; ``env_path`` is only consulted for variables
        it does not define (pass None to skip the file entirely).
    - Returns an empty list when the variable is missing or blank.
    """
    return parse_tokens(env_lookup(env_path).get(name))


def env_flag(name: str, env_path: str | None = ".env", default: bool = False) -> bool:
    val = env_lookup(env_path).get(name)
    if val is None or not val.strip():
        return default
    return val.strip().lower() in _TRUTHY
