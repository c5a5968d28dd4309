from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from move_composer.constants import DEFAULT_API_KEY, DEFAULT_NODE_URL, REQUEST_TIMEOUT_SECONDS
from move_composer.utils import safe_parse_float


def load_dotenv(path: Path) -> dict[str, str]:
    """
    Minimal .env loader:
    - supports KEY=VALUE and `export KEY=VALUE`
    - strips surrounding quotes
    - ignores blank lines and `#` comments
    - does not expand variables
    """
    out: dict[str, str] = {}
    if not path.exists():
        return out

    for raw in path.read_text(encoding="utf-8").splitlines():
        line = raw.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        if line.startswith("export "):
            line = line[len("export ") :]
        k, v = line.split("=", 1)
        k = k.strip()
        v = v.strip()
        if not k:
            continue
        if len(v) >= 2 and v[0] == v[-1] and v[0] in ("'", '"'):
            v = v[1:-1]
        out[k] = v
    return out


@dataclass(frozen=True)
class Settings:
    node_url: str
    api_key: str | None
    timeout_s: float


def load_settings(env_file: Path | None = None) -> Settings:
    """
    Resolve settings from (lowest to highest precedence): built-in defaults,
    the optional .env file, then the real process environment.
    """
    file_vals = load_dotenv(env_file) if env_file is not None else {}

    def _get(key: str) -> str | None:
        return os.environ.get(key) or file_vals.get(key)

    timeout_raw = _get("MOVE_COMPOSER_TIMEOUT_SECONDS")
    timeout_s = (
        safe_parse_float(timeout_raw, REQUEST_TIMEOUT_SECONDS, min_val=1.0, max_val=600.0, name="timeout")
        if timeout_raw is not None
        else REQUEST_TIMEOUT_SECONDS
    )
    return Settings(
        node_url=(_get("MOVE_COMPOSER_NODE_URL") or DEFAULT_NODE_URL).rstrip("/"),
        api_key=_get("MOVE_COMPOSER_API_KEY") or DEFAULT_API_KEY,
        timeout_s=timeout_s,
    )
