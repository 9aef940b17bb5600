"""Configuration system for the custodial wallet service.

Loads service config from a YAML file, supports environment variable
expansion, and fills chain defaults from the known network table. The
resulting :class:`WalletConfig` is passed explicitly to every component;
nothing else in the package reads the process environment.
"""

from __future__ import annotations

import os
import re
from decimal import Decimal
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field, SecretStr, field_validator, model_validator

from custodial_wallet.wallet.chains import get_chain


# ---------------------------------------------------------------------------
# Environment-variable expansion helper
# ---------------------------------------------------------------------------

_ENV_VAR_RE = re.compile(r"\$\{([^}]+)\}")
_HEX_KEY_RE = re.compile(r"^[0-9a-fA-F]{64}$")


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


class DatabaseConfig(BaseModel):
    """SQLite store location."""

    path: str = "custodial-wallet.db"


class ChainConfig(BaseModel):
    """The single EVM network this deployment custodies on."""

    network: str = "sepolia"
    rpc_url: str = ""                            # empty = network default
    chain_id: Optional[int] = None               # None = network default
    confirmation_timeout_seconds: float = 600.0  # bounded receipt wait
    priority_fee_gwei: Decimal = Decimal("1.5")

    @model_validator(mode="after")
    def _fill_network_defaults(self) -> ChainConfig:
        try:
            chain = get_chain(self.network)
        except KeyError:
            if not self.rpc_url or self.chain_id is None:
                raise ValueError(
                    f"Unknown network '{self.network}': set both rpc_url and chain_id"
                )
            return self
        if not self.rpc_url:
            self.rpc_url = chain.rpc_url
        if self.chain_id is None:
            self.chain_id = chain.chain_id
        return self


class VaultConfig(BaseModel):
    """Key vault settings. The master key never leaves memory."""

    master_key: SecretStr  # ${WALLET_ENCRYPTION_KEY}, 64 hex chars

    @field_validator("master_key")
    @classmethod
    def _check_master_key(cls, value: SecretStr) -> SecretStr:
        if not _HEX_KEY_RE.match(value.get_secret_value().strip()):
            raise ValueError("master_key must be 64 hex characters (32 bytes)")
        return value

    def key_bytes(self) -> bytes:
        return bytes.fromhex(self.master_key.get_secret_value().strip())


class HistoryConfig(BaseModel):
    """Ledger-history (Blockscout/Etherscan compatible) API."""

    api_url: str = ""   # empty = network default
    api_key: str = ""   # optional, appended as ``apikey``
    timeout_seconds: float = 15.0


class CacheConfig(BaseModel):
    """Balance cache settings."""

    balance_ttl_seconds: float = 30.0


class ServerConfig(BaseModel):
    """HTTP adapter settings."""

    port: int = 8430
    host: str = "127.0.0.1"


class WalletConfig(BaseModel):
    """Root configuration object for the wallet service."""

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    chain: ChainConfig = Field(default_factory=ChainConfig)
    vault: VaultConfig
    history: HistoryConfig = Field(default_factory=HistoryConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)

    @model_validator(mode="after")
    def _fill_history_default(self) -> WalletConfig:
        if not self.history.api_url:
            try:
                self.history.api_url = get_chain(self.chain.network).history_api_url
            except KeyError:
                raise ValueError(
                    f"Unknown network '{self.chain.network}': set history.api_url"
                )
        return self


# ---------------------------------------------------------------------------
# Public helpers
# ---------------------------------------------------------------------------


DEFAULT_CONFIG_NAME = "custodial-wallet.yaml"


def load_config(path: Path) -> WalletConfig:
    """Load and validate the service configuration from a YAML file.

    Environment variable placeholders (``${VAR}``) are expanded before
    validation.
    """
    raw_text = Path(path).read_text(encoding="utf-8")
    raw_data = yaml.safe_load(raw_text) or {}
    expanded = _expand_env_recursive(raw_data)
    return WalletConfig.model_validate(expanded)


def default_config_data() -> dict:
    """Return the starter config written by ``custodial-wallet init``."""
    return {
        "database": {"path": DatabaseConfig().path},
        "chain": {"network": "sepolia", "confirmation_timeout_seconds": 600},
        "vault": {"master_key": "${WALLET_ENCRYPTION_KEY}"},
        "history": {"api_url": "", "timeout_seconds": 15},
        "cache": {"balance_ttl_seconds": 30},
        "server": {"host": "127.0.0.1", "port": 8430},
    }


def write_default_config(path: Path) -> None:
    """Serialize :func:`default_config_data` to a YAML file."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as fh:
        yaml.dump(default_config_data(), fh, default_flow_style=False, sort_keys=False)
