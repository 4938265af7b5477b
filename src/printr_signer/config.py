"""Configuration for the signing broker.

Settings come from the process environment (``${VAR}`` placeholders inside
values are expanded) and are validated into pydantic models. The resulting
:class:`SignerConfig` is built once at startup and handed to the objects that
need it.
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Mapping, Optional

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Environment-variable expansion helper
# ---------------------------------------------------------------------------

_ENV_VAR_RE = re.compile(r"\$\{([^}]+)\}")


def _expand_env_vars(value: str, environ: Mapping[str, str]) -> str:
    """Replace ``${VAR_NAME}`` placeholders with their environment values.

    If the variable is not set the placeholder is left as-is.
    """

    def _replace(match: re.Match) -> str:
        var_name = match.group(1)
        return environ.get(var_name, match.group(0))

    return _ENV_VAR_RE.sub(_replace, value)


_TRUTHY = {"1", "true", "yes", "on"}


def _as_bool(value: str | None) -> bool:
    return value is not None and value.strip().lower() in _TRUTHY


def _parse_rpc_map(value: str) -> dict[str, str]:
    """Parse ``eip155:8453=https://a,eip155:1=https://b`` into a dict keyed by CAIP-2 id."""
    out: dict[str, str] = {}
    for item in value.split(","):
        item = item.strip()
        if not item:
            continue
        chain, sep, url = item.partition("=")
        if not sep or not chain.strip().startswith("eip155:") or not url.strip():
            raise ValueError(f"EVM_RPC_URLS entry '{item}' is not of the form eip155:<id>=<url>")
        out[chain.strip()] = url.strip()
    return out


# ---------------------------------------------------------------------------
# Pydantic v2 models
# ---------------------------------------------------------------------------


def default_wallet_store() -> Path:
    """``~/.printr/wallets.json``"""
    return Path.home() / ".printr" / "wallets.json"


class BrokerConfig(BaseModel):
    """Local HTTP broker settings."""

    host: str = "127.0.0.1"
    port_range_start: int = 5174
    port_range_end: int = 5200
    session_ttl_ms: int = 30 * 60 * 1000


class SignerConfig(BaseModel):
    """Root configuration object."""

    wallet_store: Path = Field(default_factory=default_wallet_store)
    agent_mode: bool = False
    evm_wallet_private_key: Optional[str] = None
    svm_wallet_private_key: Optional[str] = None
    evm_rpc_urls: dict[str, str] = Field(default_factory=dict)
    svm_rpc_url: Optional[str] = None
    app_url: str = "https://app.printr.money"
    verbose: bool = False
    broker: BrokerConfig = Field(default_factory=BrokerConfig)

    def agent_key(self, family: str) -> str | None:
        """The agent-mode private key configured for a chain family."""
        if family == "evm":
            return self.evm_wallet_private_key
        return self.svm_wallet_private_key


def agent_key_env_var(family: str) -> str:
    """Name of the environment variable holding the agent-mode key."""
    return f"{family.upper()}_WALLET_PRIVATE_KEY"


# ---------------------------------------------------------------------------
# Public helpers
# ---------------------------------------------------------------------------

# Environment variable -> SignerConfig field
_ENV_FIELDS = {
    "PRINTR_WALLET_STORE": "wallet_store",
    "EVM_WALLET_PRIVATE_KEY": "evm_wallet_private_key",
    "SVM_WALLET_PRIVATE_KEY": "svm_wallet_private_key",
    "SVM_RPC_URL": "svm_rpc_url",
    "PRINTR_APP_URL": "app_url",
}


def load_config(environ: Mapping[str, str] | None = None) -> SignerConfig:
    """Build a :class:`SignerConfig` from environment variables.

    Parameters
    ----------
    environ:
        Mapping to read from. Defaults to ``os.environ``.

    Raises
    ------
    ValueError
        If ``EVM_RPC_URLS`` holds an entry that is not ``eip155:<id>=<url>``.
    """
    if environ is None:
        environ = os.environ

    data: dict[str, object] = {}
    for var, field_name in _ENV_FIELDS.items():
        raw = environ.get(var)
        if raw is None or not raw.strip():
            continue
        data[field_name] = _expand_env_vars(raw.strip(), environ)

    raw_rpcs = environ.get("EVM_RPC_URLS")
    if raw_rpcs and raw_rpcs.strip():
        data["evm_rpc_urls"] = _parse_rpc_map(_expand_env_vars(raw_rpcs, environ))

    if "wallet_store" in data:
        data["wallet_store"] = Path(str(data["wallet_store"])).expanduser()

    data["agent_mode"] = _as_bool(environ.get("AGENT_MODE"))
    data["verbose"] = _as_bool(environ.get("VERBOSE"))
    return SignerConfig.model_validate(data)
