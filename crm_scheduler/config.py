"""Configuration loading (YAML or JSON) and logging setup."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict

import yaml


@dataclass
class BootstrapConfig:
    org_name: str = "Default Organization"
    org_slug: str = "default"
    admin_email: str = "admin@example.local"
    admin_full_name: str = "System Administrator"


@dataclass
class ExportConfig:
    # Fixed local offset used to bucket shifts into calendar days
    utc_offset_hours: int = 6
    sheet_name: str = "Schedule"
    format: str = "xlsx"


@dataclass
class SchedulerConfig:
    database_url: str = "sqlite:///crm_scheduler.db"
    overlap_ceiling: int = 2
    max_team_size: int = 100
    default_page_size: int = 25
    max_page_size: int = 200
    log_level: str = "INFO"
    bootstrap: BootstrapConfig = field(default_factory=BootstrapConfig)
    export: ExportConfig = field(default_factory=ExportConfig)


def _build(cls, data: Dict[str, Any]):
    known = {f.name: f for f in fields(cls)}
    unknown = set(data) - set(known)
    if unknown:
        raise ValueError(f"Unknown {cls.__name__} keys: {sorted(unknown)}")

    kwargs = {}
    for name, value in data.items():
        if name == "bootstrap":
            value = _build(BootstrapConfig, value or {})
        elif name == "export":
            value = _build(ExportConfig, value or {})
        kwargs[name] = value
    return cls(**kwargs)


def load_config(path: str | Path | None = None) -> SchedulerConfig:
    """
    Load scheduler configuration from a YAML or JSON file.

    Args:
        path: Path to config file. None returns the defaults.

    Returns:
        SchedulerConfig with file values layered over defaults

    Raises:
        ValueError: If the file contains unknown keys or invalid values
    """
    if path is None:
        return SchedulerConfig()

    path = Path(path)
    text = path.read_text(encoding="utf-8")
    if path.suffix.lower() == ".json":
        data = json.loads(text)
    else:
        data = yaml.safe_load(text)

    cfg = _build(SchedulerConfig, data or {})

    if cfg.overlap_ceiling < 1:
        raise ValueError("overlap_ceiling must be at least 1")
    if cfg.default_page_size < 1 or cfg.default_page_size > cfg.max_page_size:
        raise ValueError("default_page_size must be between 1 and max_page_size")
    if cfg.export.format not in ("xlsx", "csv"):
        raise ValueError(f"Unsupported export format: {cfg.export.format}")

    return cfg


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
