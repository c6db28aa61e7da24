"""Configuration loading from CLI args, env vars, and optional YAML file."""

import os
import logging
from dataclasses import dataclass, field

import yaml

from slowlog.normalizer import DEFAULT_DIALECT
from slowlog.report import SORT_ORDERS

logger = logging.getLogger(__name__)

OUTPUT_FORMATS = ("text", "json")


@dataclass(frozen=True)
class Config:
    infile: str | None = None
    filters: list[str] = field(default_factory=list)
    order: str = "none"
    limit: int = 10
    aggregate: bool = False
    normalize: bool = False
    output: str = "text"
    workers: int = 1
    dialect: str = DEFAULT_DIALECT


def load_yaml_config(path: str | None) -> dict:
    """Load defaults from a YAML file. Returns empty dict if no path."""
    if not path:
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        logger.info("Loaded YAML config from %s", path)
    except FileNotFoundError:
        logger.warning("Config file %s not found, using defaults", path)
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"Config file {path} must contain a mapping, got {type(data).__name__}")
    return data


def _pick(cli_value, env_name: str, yaml_value, default, cast):
    """CLI beats env beats YAML beats default."""
    if cli_value is not None:
        return cast(cli_value)
    env_value = os.environ.get(env_name)
    if env_value is not None:
        return cast(env_value)
    if yaml_value is not None:
        return cast(yaml_value)
    return default


def _flag(cli_value, yaml_data: dict, key: str) -> bool:
    """Store-true CLI flag OR a YAML boolean. Quoted strings such as "false" are rejected."""
    yaml_value = yaml_data.get(key)
    if yaml_value is None:
        yaml_value = False
    if not isinstance(yaml_value, bool):
        raise ValueError(f"{key} must be true or false, got {yaml_value!r}")
    return bool(cli_value) or yaml_value


def load_config(cli_args, yaml_data: dict) -> Config:
    """Build Config from CLI args, env vars, and parsed YAML data."""
    filters = [str(f) for f in yaml_data.get("filters", []) or []]
    filters.extend(getattr(cli_args, "filters", None) or [])

    config = Config(
        infile=getattr(cli_args, "infile", None) or yaml_data.get("infile"),
        filters=filters,
        order=getattr(cli_args, "order", None) or yaml_data.get("order") or "none",
        limit=_pick(getattr(cli_args, "limit", None), "SLOWLOG_LIMIT", yaml_data.get("limit"), 10, int),
        aggregate=_flag(getattr(cli_args, "aggregate", False), yaml_data, "aggregate"),
        normalize=_flag(getattr(cli_args, "normalize", False), yaml_data, "normalize"),
        output=getattr(cli_args, "output", None) or yaml_data.get("output") or "text",
        workers=_pick(getattr(cli_args, "workers", None), "SLOWLOG_WORKERS", yaml_data.get("workers"), 1, int),
        dialect=_pick(getattr(cli_args, "dialect", None), "SLOWLOG_DIALECT", yaml_data.get("dialect"),
                      DEFAULT_DIALECT, str),
    )

    if config.order not in SORT_ORDERS:
        raise ValueError(f"order must be one of {', '.join(SORT_ORDERS)}, got {config.order!r}")
    if config.output not in OUTPUT_FORMATS:
        raise ValueError(f"output must be one of {', '.join(OUTPUT_FORMATS)}, got {config.output!r}")
    if config.workers < 1:
        raise ValueError(f"workers must be at least 1, got {config.workers}")
    return config
