"""
Engine configuration management.

This module handles loading and accessing configuration from multiple sources
with a clear priority order:

    1. Environment variables (highest priority) - for containerized deployments
    2. Config file (config/ledger.ini) - for static deployments
    3. Built-in defaults (lowest priority) - sensible fallbacks

Configuration is loaded once at module import time and cached. The
EngineConfig dataclass provides typed access to all settings.

Usage:
    from ledger_sync.config import config

    # Access settings
    print(config.node.url)
    print(config.contracts.royalty_ledger)
    print(config.sync.poll_interval_seconds)

Environment Variable Mapping:
    LEDGER_NODE_URL            -> node.url
    LEDGER_TIMEOUT             -> node.timeout_seconds
    LEDGER_EVENT_POLL_SECONDS  -> node.event_poll_seconds
    LEDGER_ROYALTY_ADDRESS     -> contracts.royalty_ledger
    LEDGER_PAYMENT_ADDRESS     -> contracts.payment_ledger
    LEDGER_BADGE_ADDRESS       -> contracts.badge_ledger
    LEDGER_DISTRIBUTOR         -> contracts.distributor
    LEDGER_POLL_INTERVAL       -> sync.poll_interval_seconds
    LEDGER_LOG_LEVEL           -> logging.level
    LEDGER_LOG_FORMAT          -> logging.format
"""

import configparser
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

# =============================================================================
# PATH CONFIGURATION
# =============================================================================

# Project root directory (contains src/, config/)
PROJECT_ROOT = Path(__file__).parent.parent.parent

# Config file paths
CONFIG_DIR = PROJECT_ROOT / "config"
CONFIG_FILE = CONFIG_DIR / "ledger.ini"
CONFIG_EXAMPLE = CONFIG_DIR / "ledger.example.ini"


# =============================================================================
# CONFIGURATION DATACLASSES
# =============================================================================


@dataclass
class NodeSettings:
    """Ledger node connection."""

    url: str = "http://localhost:8545"
    timeout_seconds: float = 30.0
    event_poll_seconds: float = 2.0


@dataclass
class ContractSettings:
    """Contract addresses and the distinguished distributor identity."""

    royalty_ledger: str = "0x821a9673196681F69c0130714dcff7C70E22B5CE"
    payment_ledger: str = "0xFa92A7E7182E3f85e5C058Ce4B2b3d374BF586db"
    badge_ledger: str = "0xAdD85e759c8D5711AA88DEFd9a7FfeAeBCE6731C"
    distributor: str = "0x8905e0ca806642bd25204f6210c8907ba96c418c"


@dataclass
class SyncSettings:
    """Reconciliation cadence and local view limits."""

    poll_interval_seconds: float = 30.0
    feedback_seconds: float = 3.0
    log_capacity: int = 20


@dataclass
class LoggingSettings:
    """Logging configuration."""

    level: str = "INFO"
    format: Literal["simple", "detailed", "json"] = "detailed"


@dataclass
class EngineConfig:
    """
    Complete engine configuration.

    This is the main configuration object that aggregates all settings sections.
    Access via the module-level `config` singleton.
    """

    node: NodeSettings = field(default_factory=NodeSettings)
    contracts: ContractSettings = field(default_factory=ContractSettings)
    sync: SyncSettings = field(default_factory=SyncSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)


# =============================================================================
# CONFIGURATION LOADING
# =============================================================================


def _parse_log_format(value: str) -> str | None:
    """Return the normalized log format, or None if unknown."""
    val = value.strip().lower()
    if val in ("simple", "detailed", "json"):
        return val
    return None


def _load_from_ini(parser: configparser.ConfigParser, cfg: EngineConfig) -> None:
    """Load configuration from parsed INI file into EngineConfig."""
    # Node section
    if parser.has_section("node"):
        if parser.has_option("node", "url"):
            cfg.node.url = parser.get("node", "url").rstrip("/")
        if parser.has_option("node", "timeout_seconds"):
            cfg.node.timeout_seconds = parser.getfloat("node", "timeout_seconds")
        if parser.has_option("node", "event_poll_seconds"):
            cfg.node.event_poll_seconds = parser.getfloat("node", "event_poll_seconds")

    # Contracts section
    if parser.has_section("contracts"):
        for option in ("royalty_ledger", "payment_ledger", "badge_ledger", "distributor"):
            if parser.has_option("contracts", option):
                setattr(cfg.contracts, option, parser.get("contracts", option).strip())

    # Sync section
    if parser.has_section("sync"):
        if parser.has_option("sync", "poll_interval_seconds"):
            cfg.sync.poll_interval_seconds = parser.getfloat("sync", "poll_interval_seconds")
        if parser.has_option("sync", "feedback_seconds"):
            cfg.sync.feedback_seconds = parser.getfloat("sync", "feedback_seconds")
        if parser.has_option("sync", "log_capacity"):
            cfg.sync.log_capacity = parser.getint("sync", "log_capacity")

    # Logging section
    if parser.has_section("logging"):
        if parser.has_option("logging", "level"):
            cfg.logging.level = parser.get("logging", "level").upper()
        if parser.has_option("logging", "format"):
            val = _parse_log_format(parser.get("logging", "format"))
            if val:
                cfg.logging.format = val  # type: ignore[assignment]


def _apply_env_overrides(cfg: EngineConfig) -> None:
    """Apply environment variable overrides to configuration."""
    # Node settings
    if env_url := os.getenv("LEDGER_NODE_URL"):
        cfg.node.url = env_url.rstrip("/")
    if env_timeout := os.getenv("LEDGER_TIMEOUT"):
        cfg.node.timeout_seconds = float(env_timeout)
    if env_event_poll := os.getenv("LEDGER_EVENT_POLL_SECONDS"):
        cfg.node.event_poll_seconds = float(env_event_poll)

    # Contract settings
    if env_royalty := os.getenv("LEDGER_ROYALTY_ADDRESS"):
        cfg.contracts.royalty_ledger = env_royalty
    if env_payment := os.getenv("LEDGER_PAYMENT_ADDRESS"):
        cfg.contracts.payment_ledger = env_payment
    if env_badge := os.getenv("LEDGER_BADGE_ADDRESS"):
        cfg.contracts.badge_ledger = env_badge
    if env_distributor := os.getenv("LEDGER_DISTRIBUTOR"):
        cfg.contracts.distributor = env_distributor

    # Sync settings
    if env_poll := os.getenv("LEDGER_POLL_INTERVAL"):
        cfg.sync.poll_interval_seconds = float(env_poll)

    # Logging settings
    if env_log := os.getenv("LEDGER_LOG_LEVEL"):
        cfg.logging.level = env_log.upper()
    if env_log_format := os.getenv("LEDGER_LOG_FORMAT"):
        val = _parse_log_format(env_log_format)
        if val:
            cfg.logging.format = val  # type: ignore[assignment]


def load_config() -> EngineConfig:
    """
    Load configuration from all sources with proper priority.

    Priority (highest wins):
        1. Environment variables
        2. config/ledger.ini
        3. config/ledger.example.ini (fallback for development)
        4. Built-in defaults

    Returns:
        EngineConfig: Fully populated configuration object.
    """
    cfg = EngineConfig()

    # Determine which config file to use
    config_file = None
    if CONFIG_FILE.exists():
        config_file = CONFIG_FILE
    elif CONFIG_EXAMPLE.exists():
        config_file = CONFIG_EXAMPLE

    if config_file:
        parser = configparser.ConfigParser()
        parser.read(config_file)
        _load_from_ini(parser, cfg)

    # Environment variables always win
    _apply_env_overrides(cfg)

    return cfg


def reload_config() -> "EngineConfig":
    """
    Reload configuration from disk and environment.

    This updates the module-level `config` singleton. Sessions that are
    already connected keep the settings they were built with.

    Returns:
        EngineConfig: The newly loaded configuration.
    """
    global config
    config = load_config()
    return config


# =============================================================================
# MODULE-LEVEL SINGLETON
# =============================================================================

# Load configuration once at module import time
config = load_config()


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================


def get_config_status() -> dict:
    """
    Get configuration status for diagnostics.

    Returns a dictionary with configuration source information.
    """
    return {
        "config_file_exists": CONFIG_FILE.exists(),
        "config_file_path": str(CONFIG_FILE),
        "using_example": not CONFIG_FILE.exists() and CONFIG_EXAMPLE.exists(),
        "node_url": config.node.url,
        "poll_interval_seconds": config.sync.poll_interval_seconds,
    }


def print_config_summary() -> None:
    """Print a summary of current configuration to stdout."""
    status = get_config_status()
    print("\n" + "=" * 60)
    print("LEDGER SYNC CONFIGURATION")
    print("=" * 60)
    print(f"Config file: {status['config_file_path']}")
    print(f"File exists: {status['config_file_exists']}")
    if status["using_example"]:
        print("WARNING: Using example config (copy to ledger.ini for your deployment)")
    print("-" * 60)
    print(f"Node:         {config.node.url} (timeout {config.node.timeout_seconds}s)")
    print(f"Royalty:      {config.contracts.royalty_ledger}")
    print(f"Payment:      {config.contracts.payment_ledger}")
    print(f"Badges:       {config.contracts.badge_ledger}")
    print(f"Distributor:  {config.contracts.distributor}")
    print(f"Poll every:   {config.sync.poll_interval_seconds}s")
    print(f"Log level:    {config.logging.level} ({config.logging.format})")
    print("=" * 60 + "\n")
