"""movehat configuration loader.

Priority (high → low):
  1. CLI flags              (handled at call site — not in this module)
  2. Environment variables  (MH_CLI_NETWORK, MH_DEFAULT_NETWORK, PRIVATE_KEY)
  3. Per-project movehat.yaml
  4. Global ~/.movehat/config.yaml  (defaults only — no private keys)
  5. Hardcoded defaults

The config is a static YAML document read with yaml.safe_load(); it is never
executed. Global config must never contain private keys or accounts; use the
PRIVATE_KEY environment variable or the project file instead.
"""

from __future__ import annotations

import logging
import os
import re
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from movehat.core.names import UnsafeNameError, validate_safe_name

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_GLOBAL_CONFIG_PATH: Path = Path.home() / ".movehat" / "config.yaml"
PROJECT_CONFIG_NAME: str = "movehat.yaml"

DEFAULT_NETWORK = "testnet"
TESTNET_URL = "https://testnet.movementnetwork.xyz/v1"
LOCAL_URL = "http://localhost:8080/v1"

# Deterministic key for testnet/local only. Never used for any other network.
TEST_PRIVATE_KEY = "0x" + "0" * 63 + "1"

_AUTO_NETWORKS: dict[str, tuple[str, str]] = {
    "testnet": (TESTNET_URL, "testnet"),
    "local": (LOCAL_URL, "local"),
}

# Keys that suggest key material; forbidden in global config.
_SECRET_KEY_RE: re.Pattern[str] = re.compile(
    r"private[_\-]?key"
    r"|^accounts$"
    r"|mnemonic"
    r"|_secret$"
    r"|^secret$",
    re.IGNORECASE,
)

_KNOWN_SECTIONS: frozenset[str] = frozenset(
    ["default_network", "move_dir", "accounts", "named_addresses", "networks", "fork"]
)


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ConfigError(ValueError):
    """Raised when a config file contains an invalid or forbidden value."""


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------


@dataclass
class NetworkCfg:
    """One entry under movehat.yaml: networks:."""

    url: str
    chain_id: str | None = None
    profile: str = "default"
    accounts: list[str] = field(default_factory=list)
    named_addresses: dict[str, str] = field(default_factory=dict)


@dataclass
class ForkCfg:
    """Local fork settings (movehat.yaml: fork:)."""

    dir: str = ".movehat/forks"
    port: int = 8080
    host: str = "127.0.0.1"


@dataclass
class MovehatConfig:
    """Root configuration object, built by load_config() from merged YAML layers."""

    default_network: str | None = None
    move_dir: str = "./move"
    accounts: list[str] = field(default_factory=list)
    named_addresses: dict[str, str] = field(default_factory=dict)
    networks: dict[str, NetworkCfg] = field(default_factory=dict)
    fork: ForkCfg = field(default_factory=ForkCfg)


@dataclass
class ResolvedNetwork:
    """Everything a command needs for one network, after merging global and per-network settings.

    Attributes:
        network: Active network name.
        rpc: Node API URL.
        private_key: Primary account (first of all_accounts).
        all_accounts: All private keys for this network.
        profile: Movement CLI profile.
        move_dir: Move package directory.
        named_addresses: Global named addresses overridden by per-network ones.
    """

    network: str
    rpc: str
    private_key: str
    all_accounts: list[str]
    profile: str
    move_dir: str
    named_addresses: dict[str, str]


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def _check_no_secrets(data: dict[str, Any], source: Path) -> None:
    """Raise ConfigError if *data* contains key material of any kind."""

    def _scan(obj: Any, path: str) -> None:
        if isinstance(obj, dict):
            for k, v in obj.items():
                full = f"{path}.{k}" if path else str(k)
                if _SECRET_KEY_RE.search(str(k)):
                    raise ConfigError(
                        f"Global config '{source}' contains a forbidden key '{full}'.\n"
                        "  Private keys and accounts must not live in the global config.\n"
                        f"  Remove '{full}' from {source.name} and use:\n"
                        "    export PRIVATE_KEY=0x..."
                    )
                _scan(v, full)

    _scan(data, "")


def _warn_unknown_keys(data: dict[str, Any], source: Path) -> None:
    for key in data:
        if key not in _KNOWN_SECTIONS:
            warnings.warn(
                f"Unknown config key '{key}' in '{source}' — ignored.",
                UserWarning,
                stacklevel=4,
            )


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Config file '{path}' is not valid YAML: {exc}") from exc
    if not isinstance(raw, dict):
        raise ConfigError(f"Config file '{path}' must contain a mapping at the top level.")
    return raw


def _str_list(value: Any, where: str) -> list[str]:
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ConfigError(f"'{where}' must be a list of strings.")
    return [v for v in value if v]


def _str_map(value: Any, where: str) -> dict[str, str]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError(f"'{where}' must be a mapping of name -> value.")
    return {str(k): str(v) for k, v in value.items()}


# ---------------------------------------------------------------------------
# Merge + build
# ---------------------------------------------------------------------------


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Return a new dict that is *base* deep-merged with *override*."""
    result = dict(base)
    for k, v in override.items():
        if k in result and isinstance(result[k], dict) and isinstance(v, dict):
            result[k] = _deep_merge(result[k], v)
        else:
            result[k] = v
    return result


def _parse_network(name: str, raw: Any) -> NetworkCfg:
    try:
        validate_safe_name(name, "network")
    except UnsafeNameError as exc:
        raise ConfigError(str(exc)) from exc

    if not isinstance(raw, dict):
        raise ConfigError(f"networks.{name} must be a mapping with at least a 'url'.")
    url = raw.get("url")
    if not isinstance(url, str) or not url.startswith(("http://", "https://")):
        raise ConfigError(
            f"networks.{name}.url must be an http:// or https:// URL, got: {url!r}"
        )
    chain_id = raw.get("chain_id")
    return NetworkCfg(
        url=url,
        chain_id=str(chain_id) if chain_id is not None else None,
        profile=str(raw.get("profile", "default")),
        accounts=_str_list(raw.get("accounts"), f"networks.{name}.accounts"),
        named_addresses=_str_map(raw.get("named_addresses"), f"networks.{name}.named_addresses"),
    )


def _cfg_from_dict(data: dict[str, Any]) -> MovehatConfig:
    """Build a *MovehatConfig* from a merged raw YAML dict."""
    cfg = MovehatConfig()

    if data.get("default_network") is not None:
        cfg.default_network = str(data["default_network"])
    if "move_dir" in data:
        cfg.move_dir = str(data["move_dir"])
    cfg.accounts = _str_list(data.get("accounts"), "accounts")
    cfg.named_addresses = _str_map(data.get("named_addresses"), "named_addresses")

    networks = data.get("networks") or {}
    if not isinstance(networks, dict):
        raise ConfigError("'networks' must be a mapping of network name -> settings.")
    cfg.networks = {str(name): _parse_network(str(name), raw) for name, raw in networks.items()}

    if "fork" in data:
        f = data["fork"] or {}
        if not isinstance(f, dict):
            raise ConfigError("'fork' must be a mapping.")
        try:
            port = int(f.get("port", cfg.fork.port))
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"fork.port must be an integer, got: {f.get('port')!r}") from exc
        if not 0 < port < 65536:
            raise ConfigError(f"fork.port must be between 1 and 65535, got: {port}")
        cfg.fork = ForkCfg(
            dir=str(f.get("dir", cfg.fork.dir)),
            port=port,
            host=str(f.get("host", cfg.fork.host)),
        )

    return cfg


def _apply_env_overrides(cfg: MovehatConfig) -> MovehatConfig:
    if network := os.environ.get("MH_DEFAULT_NETWORK"):
        cfg.default_network = network
    return cfg


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(
    project_dir: Path | None = None,
    *,
    global_config_path: Path | None = None,
) -> MovehatConfig:
    """Load and return a merged *MovehatConfig*.

    Applies layers in order: global → per-project → env vars. A project with
    no movehat.yaml gets the defaults (testnet and local remain available).

    Args:
        project_dir: Directory to search for *movehat.yaml*. Defaults to CWD.
        global_config_path: Override the global config path (for testing).

    Raises:
        ConfigError: If a file is not valid YAML, has the wrong shape, or the
            global config contains key material.
    """
    global_path = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
    search_dir = project_dir if project_dir is not None else Path.cwd()

    merged: dict[str, Any] = {}

    if global_path.exists():
        raw_global = _read_yaml(global_path)
        _check_no_secrets(raw_global, global_path)
        _warn_unknown_keys(raw_global, global_path)
        merged = _deep_merge(merged, raw_global)

    project_cfg_path = search_dir / PROJECT_CONFIG_NAME
    if project_cfg_path.exists():
        raw_project = _read_yaml(project_cfg_path)
        _warn_unknown_keys(raw_project, project_cfg_path)
        merged = _deep_merge(merged, raw_project)

    cfg = _cfg_from_dict(merged)
    return _apply_env_overrides(cfg)


def select_network(cfg: MovehatConfig, name: str | None = None) -> str:
    """Pick the active network: explicit name → MH_CLI_NETWORK → default_network → testnet."""
    return name or os.environ.get("MH_CLI_NETWORK") or cfg.default_network or DEFAULT_NETWORK


def network_url(cfg: MovehatConfig, name: str | None = None) -> tuple[str, str]:
    """Return ``(network_name, node_url)`` without validating accounts.

    ``testnet`` and ``local`` resolve even when not configured.

    Raises:
        ConfigError: If the network is neither configured nor built in.
    """
    selected = select_network(cfg, name)
    if selected in cfg.networks:
        return selected, cfg.networks[selected].url
    if selected in _AUTO_NETWORKS:
        logger.info("%s not found in config - using the default %s configuration", selected, selected)
        return selected, _AUTO_NETWORKS[selected][0]
    raise ConfigError(_unknown_network_message(cfg, selected))


def resolve_network_config(cfg: MovehatConfig, name: str | None = None) -> ResolvedNetwork:
    """Merge global and per-network settings for the selected network.

    Accounts are taken from, in order: the network entry, the global
    ``accounts`` list, the PRIVATE_KEY env var. ``testnet`` and ``local`` fall
    back to a deterministic test key; every other network must be configured.

    Raises:
        ConfigError: If the network is unknown, or has no accounts and is not
            testnet/local.
    """
    selected, url = network_url(cfg, name)
    net = cfg.networks.get(selected) or NetworkCfg(url=url, chain_id=_AUTO_NETWORKS[selected][1])

    accounts = list(net.accounts) or list(cfg.accounts)
    if not accounts and os.environ.get("PRIVATE_KEY"):
        accounts = [os.environ["PRIVATE_KEY"]]

    if not accounts:
        if selected not in _AUTO_NETWORKS:
            raise ConfigError(
                f"Network '{selected}' has no accounts configured.\n"
                f"  This network requires explicit account configuration:\n"
                f"    1. export PRIVATE_KEY=0x...  (recommended for {selected})\n"
                f"    2. add 'accounts: [\"0x...\"]' to {PROJECT_CONFIG_NAME}\n"
                f"    3. add 'accounts: [\"0x...\"]' under networks.{selected}\n"
                "  For testing without configuration use --network testnet."
            )
        warnings.warn(
            f"Using the auto-generated test account for '{selected}' (safe for testing only).",
            UserWarning,
            stacklevel=2,
        )
        accounts = [TEST_PRIVATE_KEY]

    return ResolvedNetwork(
        network=selected,
        rpc=url,
        private_key=accounts[0],
        all_accounts=accounts,
        profile=net.profile,
        move_dir=cfg.move_dir,
        named_addresses={**cfg.named_addresses, **net.named_addresses},
    )


def _unknown_network_message(cfg: MovehatConfig, selected: str) -> str:
    available = ", ".join(sorted(cfg.networks)) or "(none configured)"
    return (
        f"Network '{selected}' not found in configuration.\n"
        f"  Available networks: {available}, testnet (built in), local (built in)"
    )
