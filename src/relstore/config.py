"""Configuration loading from environment variables and relstore.toml."""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib
from pathlib import Path

_CONFIG_FILENAME = "relstore.toml"
_TRUE_VALUES = {"1", "true", "yes", "on"}


@dataclass
class NotifierConfig:
    """Change notifier configuration."""

    flush_delay: float = 0.0


@dataclass
class MergeConfig:
    """Deep-merge configuration."""

    infer_indexed_edits: bool = True
    default_id_field: str = "id"


@dataclass
class TypeConfig:
    """A record type registered by the command line."""

    id_field: str = "id"


@dataclass
class StoreConfig:
    """Top-level relstore configuration."""

    notifier: NotifierConfig = field(default_factory=NotifierConfig)
    merge: MergeConfig = field(default_factory=MergeConfig)
    types: dict[str, TypeConfig] = field(default_factory=dict)
    log_level: str = "INFO"


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in _TRUE_VALUES


def load_config(config_path: Path | None = None) -> StoreConfig:
    """Load configuration from environment variables and optional relstore.toml.

    Priority: environment variables > relstore.toml > defaults.
    """
    file_data: dict = {}
    if config_path and config_path.exists():
        file_data = tomllib.loads(config_path.read_text())
    else:
        # Search current dir and ~/.relstore/
        for candidate in [
            Path.cwd() / _CONFIG_FILENAME,
            Path.home() / ".relstore" / _CONFIG_FILENAME,
        ]:
            if candidate.exists():
                file_data = tomllib.loads(candidate.read_text())
                break

    notifier_data = file_data.get("notifier", {})
    merge_data = file_data.get("merge", {})
    types_data = file_data.get("types", {})
    default_id_field = merge_data.get("default_id_field", "id")

    config = StoreConfig(
        notifier=NotifierConfig(
            flush_delay=float(
                os.getenv("RELSTORE_FLUSH_DELAY", notifier_data.get("flush_delay", 0.0))
            ),
        ),
        merge=MergeConfig(
            infer_indexed_edits=_env_bool(
                "RELSTORE_INFER_INDEXED_EDITS", bool(merge_data.get("infer_indexed_edits", True))
            ),
            default_id_field=default_id_field,
        ),
        types={
            name: TypeConfig(id_field=data.get("id_field", default_id_field))
            for name, data in types_data.items()
        },
        log_level=os.getenv("RELSTORE_LOG_LEVEL", file_data.get("log_level", "INFO")),
    )
    return config
