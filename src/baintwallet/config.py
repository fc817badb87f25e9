"""Configuration system for Baintwallet.

Loads service config from ``.baintwallet/config.yaml``, supports environment
variable expansion, and validates the result with Pydantic.
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field

from baintwallet.errors import ConfigError


# ---------------------------------------------------------------------------
# Environment-variable expansion helper
# ---------------------------------------------------------------------------

_ENV_VAR_RE = re.compile(r"\$\{([^}]+)\}")


def _expand_env_vars(value: str) -> str:
    """Replace ``${VAR_NAME}`` placeholders with their environment values.

    If the variable is not set the placeholder is left as-is so that
    validation can catch it later.
    """

    def _replace(match: re.Match) -> str:
        var_name = match.group(1)
        return os.environ.get(var_name, match.group(0))

    return _ENV_VAR_RE.sub(_replace, value)


def _expand_env_recursive(obj: object) -> object:
    """Walk an arbitrary nested structure and expand env vars in strings."""
    if isinstance(obj, str):
        return _expand_env_vars(obj)
    if isinstance(obj, dict):
        return {k: _expand_env_recursive(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_expand_env_recursive(item) for item in obj]
    return obj


# ---------------------------------------------------------------------------
# Pydantic v2 models
# ---------------------------------------------------------------------------


class ChainConfig(BaseModel):
    """Which EVM network the service operates on."""

    name: str = "ethereum"
    rpc_url: Optional[str] = None  # Overrides the registry default
    confirmation_timeout: float = 180.0  # seconds to wait for inclusion


class CustodyConfig(BaseModel):
    """Key custody settings.

    ``master_secret`` is combined with each identity to derive the keystore
    password.  It must come from the environment, never from a committed
    config file.
    """

    master_secret: str = "${BAINT_MASTER_SECRET}"
    kdf: str = "scrypt"          # "scrypt" or "pbkdf2"
    iterations: Optional[int] = None  # KDF work factor (None = eth-account default)

    def require_secret(self) -> str:
        """Return the master secret or raise :class:`ConfigError`."""
        secret = _expand_env_vars(self.master_secret)
        if not secret or _ENV_VAR_RE.search(secret):
            raise ConfigError(
                "custody.master_secret is not set. Export BAINT_MASTER_SECRET "
                "or set it in config.yaml."
            )
        return secret


class SessionConfig(BaseModel):
    """Pending-transfer session limits."""

    pending_ttl_seconds: int = 600   # 10 minutes
    max_pending: int = 10000         # oldest entries evicted beyond this


class ServerConfig(BaseModel):
    """SMS webhook server settings."""

    host: str = "127.0.0.1"
    port: int = 3000
    messages_per_minute: int = 10    # per sender
    wallet_api: bool = False         # expose GET /api/wallet/{identity}
    api_requests: int = 100          # per client address, on the wallet API
    api_window_seconds: int = 900


class WalletServiceConfig(BaseModel):
    """Root configuration object for the whole service."""

    name: str = "Baintwallet"
    database_path: str = "baintwallet.db"
    chain: ChainConfig = Field(default_factory=ChainConfig)
    custody: CustodyConfig = Field(default_factory=CustodyConfig)
    session: SessionConfig = Field(default_factory=SessionConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)


# ---------------------------------------------------------------------------
# Public helpers
# ---------------------------------------------------------------------------


def get_root_dir(base: Path | None = None) -> Path:
    """Return the ``.baintwallet/`` root directory (no auto-create).

    Parameters
    ----------
    base:
        Parent directory that contains (or will contain) the root folder.
        Defaults to the current working directory.
    """
    if base is None:
        base = Path.cwd()
    return base / ".baintwallet"


def resolve_database_path(config: WalletServiceConfig, root: Path) -> Path:
    """Resolve ``database_path`` relative to the config root directory."""
    path = Path(config.database_path)
    if not path.is_absolute():
        path = root / path
    return path


def load_config(path: Path) -> WalletServiceConfig:
    """Load and validate the service configuration from a YAML file.

    Environment variable placeholders (``${VAR}``) are expanded before
    validation.  A missing file yields the defaults.
    """
    if not path.exists():
        return WalletServiceConfig()
    raw_text = path.read_text(encoding="utf-8")
    raw_data = yaml.safe_load(raw_text) or {}
    expanded = _expand_env_recursive(raw_data)
    return WalletServiceConfig.model_validate(expanded)


def save_config(config: WalletServiceConfig, path: Path) -> None:
    """Serialize a :class:`WalletServiceConfig` to a YAML file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    data = config.model_dump(mode="python", exclude_none=True)
    with open(path, "w", encoding="utf-8") as fh:
        yaml.dump(data, fh, default_flow_style=False, sort_keys=False)
