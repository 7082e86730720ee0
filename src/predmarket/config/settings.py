"""TOML config loading and profiles."""

from __future__ import annotations

import logging
import os
import tomllib
from pathlib import Path
from typing import Any

# Default config search path (project root or cwd)
_CONFIG_DIR = Path(__file__).resolve().parent.parent.parent.parent / "config"
_CWD_CONFIG = Path.cwd() / "config"


def _load_toml(path: Path) -> dict[str, Any]:
    with open(path, "rb") as f:
        return tomllib.load(f)


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge override into base. Override values take precedence."""
    result = dict(base)
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _find_config_dir(config_dir: Path | None = None) -> Path:
    if config_dir is not None:
        return config_dir
    if _CWD_CONFIG.exists():
        return _CWD_CONFIG
    return _CONFIG_DIR


def load_config(profile: str | None = None, config_dir: Path | None = None) -> dict[str, Any]:
    """Load merged config from default.toml and optional profile overlay."""
    config_dir = _find_config_dir(config_dir)
    default_path = config_dir / "default.toml"
    if not default_path.exists():
        return {}
    base = _load_toml(default_path)
    if profile:
        profile_path = config_dir / f"{profile}.toml"
        if profile_path.exists():
            overlay = _load_toml(profile_path)
            base = _deep_merge(base, overlay)
    return base


def get_settings(profile: str | None = None, config_dir: Path | None = None) -> Settings:
    """Return Settings instance from merged config."""
    raw = load_config(profile, config_dir)
    return Settings.from_dict(raw)


class Settings:
    """Application settings from TOML config."""

    def __init__(
        self,
        *,
        storage: dict[str, Any] | None = None,
        api: dict[str, Any] | None = None,
        chain: dict[str, Any] | None = None,
        view: dict[str, Any] | None = None,
        proposal: dict[str, Any] | None = None,
        layout: dict[str, Any] | None = None,
        logging: dict[str, Any] | None = None,
    ):
        self.storage = storage or {}
        self.api = api or {}
        self.chain = chain or {}
        self.view = view or {}
        self.proposal = proposal or {}
        self.layout = layout or {}
        self.logging = logging or {}

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> Settings:
        return cls(
            storage=raw.get("storage"),
            api=raw.get("api"),
            chain=raw.get("chain"),
            view=raw.get("view"),
            proposal=raw.get("proposal"),
            layout=raw.get("layout"),
            logging=raw.get("logging"),
        )

    # Convenience accessors with defaults
    @property
    def db_path(self) -> str:
        return self.storage.get("db_path", "data/predmarket.duckdb")

    @property
    def images_dir(self) -> str:
        return self.storage.get("images_dir", "data/market-images")

    @property
    def images_base_url(self) -> str:
        return self.storage.get("images_base_url", "http://127.0.0.1:8000/images").rstrip("/")

    @property
    def api_base_url(self) -> str:
        return self.api.get("base_url", "http://127.0.0.1:8000").rstrip("/")

    @property
    def api_page_size(self) -> int:
        return int(self.api.get("page_size", 50))

    @property
    def verify_proposer(self) -> bool:
        return bool(self.api.get("verify_proposer", True))

    @property
    def api_timeout_sec(self) -> float:
        return float(self.api.get("timeout_sec", 10.0))

    @property
    def rpc_url(self) -> str:
        return self.chain.get("rpc_url", "https://forno.celo-sepolia.celo-testnet.org")

    @property
    def chain_id(self) -> int:
        return int(self.chain.get("chain_id", 11142220))

    @property
    def contract_address(self) -> str:
        return self.chain.get("contract_address", "0x14211622320207699794414fa59d80d1c031bfb8")

    @property
    def token_address(self) -> str:
        return self.chain.get("token_address", "0x01C5C0122039549AD1493B8220cABEdD739BC44E")

    @property
    def receipt_timeout_sec(self) -> float:
        return float(self.chain.get("receipt_timeout_sec", 120.0))

    @property
    def private_key_env(self) -> str:
        return self.chain.get("private_key_env", "PREDMARKET_PRIVATE_KEY")

    @property
    def private_key(self) -> str | None:
        return os.environ.get(self.private_key_env) or None

    @property
    def poll_interval_sec(self) -> float:
        return float(self.view.get("poll_interval_sec", 5.0))

    @property
    def metadata_max_attempts(self) -> int:
        return int(self.view.get("metadata_max_attempts", 3))

    @property
    def min_duration_sec(self) -> int:
        return int(self.proposal.get("min_duration_sec", 3600))

    @property
    def max_duration_sec(self) -> int:
        return int(self.proposal.get("max_duration_sec", 30 * 24 * 3600))

    @property
    def receipt_parse_attempts(self) -> int:
        return int(self.proposal.get("receipt_parse_attempts", 3))

    @property
    def receipt_parse_backoff_sec(self) -> float:
        return float(self.proposal.get("receipt_parse_backoff_sec", 1.0))

    @property
    def layout_state_path(self) -> str:
        return self.layout.get("state_path", "data/layout.json")

    @property
    def logging_level(self) -> str:
        return self.logging.get("level", "INFO").upper()

    @property
    def logging_format(self) -> str:
        return self.logging.get("format", "console")

    @property
    def logging_level_num(self) -> int:
        return getattr(logging, self.logging_level, logging.INFO)


def configure_logging(settings: Settings) -> None:
    """Configure structlog with settings. Call once at application entry."""
    import structlog

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]
    if settings.logging_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(settings.logging_level_num),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
