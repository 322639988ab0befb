"""Config loading for hostgate.

Reads `.hostgate/config.yaml` (or `~/.hostgate/config.yaml`).
Raises SystemExit on parse errors or a missing `version` field.
If no config file is found, returns default values (safe to run without config).

Config search order:
  1. `config_path` argument (if provided — for testing or explicit override)
  2. HOSTGATE_CONFIG environment variable (if set)
  3. `.hostgate/config.yaml` (working directory — for development)
  4. `~/.hostgate/config.yaml` (home directory — for production deployments)

Environment variable overrides:
  HOSTGATE_PORT       — overrides proxy.port
  HOSTGATE_STORE_PATH — overrides store.path
  HOSTGATE_CONFIG     — sets an explicit config file path to try first

The `routes:` section seeds the in-memory store (store.backend: memory). The
SQLite store is populated with `hostgate-populate` instead.
"""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from typing import Any, NoReturn, Optional

import yaml

from hostgate.constants import (
    DEFAULT_CONNECT_TIMEOUT_S,
    DEFAULT_FORWARD_TIMEOUT_S,
    DEFAULT_HOST,
    DEFAULT_PORT,
    DEFAULT_STORE_PATH,
    VALID_STORE_BACKENDS,
)
from hostgate.utils.logger import get_logger

logger = get_logger(__name__)

# ─── Version constants ────────────────────────────────────────────────────────

SUPPORTED_CONFIG_VERSION = 1

SUPPORTED_VERSIONS: frozenset[int] = frozenset({1})

# Default config search paths (HOSTGATE_CONFIG env var prepended at runtime)
DEFAULT_CONFIG_PATHS = [
    ".hostgate/config.yaml",
    os.path.expanduser("~/.hostgate/config.yaml"),
]


# ─── Dataclasses ─────────────────────────────────────────────────────────────


@dataclass
class ProxyConfig:
    """Listener binding configuration."""

    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT


@dataclass
class ForwarderConfig:
    """Per-forwarder backend timeouts (seconds).

    timeout_s bounds every read/write/pool wait on a backend; connect_timeout_s
    bounds TCP connection establishment separately.
    """

    timeout_s: float = DEFAULT_FORWARD_TIMEOUT_S
    connect_timeout_s: float = DEFAULT_CONNECT_TIMEOUT_S


@dataclass
class StoreConfig:
    """Route store selection."""

    backend: str = "sqlite"  # "sqlite" | "memory"
    path: str = DEFAULT_STORE_PATH


@dataclass
class StaticConfig:
    """Fallback content for requests whose host has no route."""

    directory: Optional[str] = None
    index: str = "index.html"


@dataclass
class Config:
    """Root configuration object populated from .hostgate/config.yaml.

    All fields have safe defaults — hostgate can start without any config file.
    """

    version: int = SUPPORTED_CONFIG_VERSION
    proxy: ProxyConfig = field(default_factory=ProxyConfig)
    forwarder: ForwarderConfig = field(default_factory=ForwarderConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    static: StaticConfig = field(default_factory=StaticConfig)
    routes: list[dict[str, Any]] = field(default_factory=list)
    path: Optional[str] = None  # Path to the loaded config file

    @classmethod
    def defaults(cls) -> "Config":
        """Return a fully-default Config (no file required)."""
        return cls()

    @classmethod
    def from_dict(cls, raw: dict, path: Optional[str] = None) -> "Config":
        """Construct Config from a parsed YAML dict.

        Merges user-supplied values onto defaults; unknown keys are silently ignored.

        Raises:
            SystemExit(1): On an invalid store.backend, a non-positive timeout,
                           or a `routes` value that is not a list of mappings.
        """
        # ── Proxy ─────────────────────────────────────────────────────────────
        proxy_raw = raw.get("proxy") or {}
        proxy = ProxyConfig(
            host=proxy_raw.get("host", DEFAULT_HOST),
            port=proxy_raw.get("port", DEFAULT_PORT),
        )

        # ── Forwarder ─────────────────────────────────────────────────────────
        forwarder_raw = raw.get("forwarder") or {}
        forwarder = ForwarderConfig(
            timeout_s=forwarder_raw.get("timeout_s", DEFAULT_FORWARD_TIMEOUT_S),
            connect_timeout_s=forwarder_raw.get(
                "connect_timeout_s", DEFAULT_CONNECT_TIMEOUT_S
            ),
        )
        for name, value in (
            ("forwarder.timeout_s", forwarder.timeout_s),
            ("forwarder.connect_timeout_s", forwarder.connect_timeout_s),
        ):
            if not isinstance(value, (int, float)) or isinstance(value, bool) or value <= 0:
                _config_error(f"Invalid {name}: '{value}'. Must be a positive number.")

        # ── Store ─────────────────────────────────────────────────────────────
        store_raw = raw.get("store") or {}
        backend = store_raw.get("backend", "sqlite")
        if backend not in VALID_STORE_BACKENDS:
            _config_error(
                f"Invalid store.backend: '{backend}'. "
                f"Supported values: {sorted(VALID_STORE_BACKENDS)}."
            )
        store = StoreConfig(
            backend=backend,
            path=store_raw.get("path", DEFAULT_STORE_PATH),
        )

        # ── Static fallback ───────────────────────────────────────────────────
        static_raw = raw.get("static") or {}
        static = StaticConfig(
            directory=static_raw.get("directory"),
            index=static_raw.get("index", "index.html"),
        )

        # ── Seed routes ───────────────────────────────────────────────────────
        routes = raw.get("routes") or []
        if not isinstance(routes, list) or not all(isinstance(r, dict) for r in routes):
            _config_error("Invalid routes: must be a list of {name, domain, proxyTo} mappings.")

        return cls(
            version=raw.get("version", SUPPORTED_CONFIG_VERSION),
            proxy=proxy,
            forwarder=forwarder,
            store=store,
            static=static,
            routes=list(routes),
            path=path,
        )


# ─── Config loading ───────────────────────────────────────────────────────────


def load_config(config_path: Optional[str] = None) -> Config:
    """Load and validate hostgate configuration.

    If no file is found at any search path, returns default Config (not an error).
    If a file is found but invalid, writes error to stderr and raises SystemExit(1).
    Environment overrides are applied in both cases.

    Raises:
        SystemExit(1): On YAML parse error, missing ``version`` field, unsupported
                       version, invalid section values, or invalid ``HOSTGATE_PORT``.
    """
    search_paths: list[str] = []
    if config_path:
        search_paths.append(config_path)
    env_config = os.environ.get("HOSTGATE_CONFIG")
    if env_config:
        search_paths.append(env_config)
    search_paths.extend(DEFAULT_CONFIG_PATHS)

    found_path: Optional[str] = None
    for candidate in search_paths:
        expanded = os.path.expanduser(candidate)
        if os.path.isfile(expanded):
            found_path = expanded
            break

    if found_path is None:
        logger.info("No config file found — using defaults", searched=search_paths)
        config = Config.defaults()
        _apply_env_overrides(config)
        return config

    logger.info("Loading config", path=found_path)

    try:
        with open(found_path) as fh:
            raw = yaml.safe_load(fh)
    except yaml.YAMLError as exc:
        _config_error(
            f"Failed to parse {found_path}: {exc}\n"
            "hostgate refuses to start with an invalid config. "
            "Check the YAML syntax and try again."
        )
    except OSError as exc:
        _config_error(f"Could not read {found_path}: {exc}")

    if not isinstance(raw, dict):
        if raw is None:
            _config_error(
                f"{found_path} is missing the required 'version' field.\n"
                "Add 'version: 1' to the top of your config file."
            )
        _config_error(
            f"{found_path} is not a valid YAML mapping.\n"
            "The config file must be a YAML dictionary at the top level."
        )

    version = raw.get("version")
    if version is None:
        _config_error(
            f"{found_path} is missing the required 'version' field.\n"
            "Add 'version: 1' to the top of your config file."
        )
    if version not in SUPPORTED_VERSIONS:
        _config_error(
            f"Unsupported config version: {version}. "
            f"Supported versions: {sorted(SUPPORTED_VERSIONS)}."
        )

    config = Config.from_dict(raw, path=found_path)
    _apply_env_overrides(config)

    if config.proxy.host == "0.0.0.0":
        logger.warning(
            "hostgate is configured to bind on 0.0.0.0 (all interfaces)",
            port=config.proxy.port,
        )

    logger.info(
        "Config loaded",
        path=found_path,
        version=config.version,
        store_backend=config.store.backend,
        seed_routes=len(config.routes),
    )
    return config


def _apply_env_overrides(config: Config) -> None:
    """Apply environment variable overrides to a Config object in-place.

    Raises:
        SystemExit(1): If HOSTGATE_PORT is set but not a valid integer.
    """
    env_port = os.environ.get("HOSTGATE_PORT")
    if env_port is not None:
        try:
            config.proxy.port = int(env_port)
        except ValueError:
            _config_error(
                f"HOSTGATE_PORT environment variable is not a valid integer: '{env_port}'"
            )

    env_store_path = os.environ.get("HOSTGATE_STORE_PATH")
    if env_store_path:
        config.store.path = env_store_path


def _config_error(message: str) -> NoReturn:
    print(f"CONFIG ERROR: {message}", file=sys.stderr)
    raise SystemExit(1)
