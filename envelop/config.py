from __future__ import annotations
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from envelop.codec import Compression
from envelop.envelope import UnsupportedCompression
from envelop.log import get_logger

logger = get_logger(__name__)

DEFAULT_CONFIG_FILE = "envelop.yaml"
_TRUTHY = {"1", "true", "yes", "on"}


class ConfigError(Exception):
    """Raised when the settings file or an override is invalid."""
    pass


@dataclass
class Settings:
    """
    Codec defaults. Example envelop.yaml:

        secret: "change-me"
        compression: gzip
        signature_required: true
        log_level: INFO
    """
    secret: Optional[str] = None
    compression: Compression = Compression.NONE
    signature_required: bool = False
    log_level: Optional[str] = None


def _config_path(path: Optional[Union[str, Path]]) -> Optional[Path]:
    if path is not None:
        p = Path(path)
        if not p.exists():
            raise ConfigError(f"Config file not found: {p}")
        return p
    env_path = os.getenv("ENVELOP_CONFIG")
    if env_path:
        p = Path(env_path)
        if not p.exists():
            raise ConfigError(f"Config file not found: {p} (from ENVELOP_CONFIG)")
        return p
    p = Path.cwd() / DEFAULT_CONFIG_FILE
    return p if p.exists() else None


def _read_yaml(p: Path) -> Dict[str, Any]:
    try:
        with p.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Error reading {p}: {e}") from e
    except OSError as e:
        raise ConfigError(f"Cannot open {p}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"{p} must contain a mapping at top level")
    return data


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in _TRUTHY


def _compression(value: Any, source: str) -> Compression:
    try:
        return Compression.from_string(str(value).strip().lower())
    except UnsupportedCompression as e:
        raise ConfigError(f"{source}: {e}") from e


def load_settings(path: Optional[Union[str, Path]] = None) -> Settings:
    """
    Load settings from YAML (explicit path, $ENVELOP_CONFIG, or ./envelop.yaml)
    and apply ENVELOP_SECRET / ENVELOP_COMPRESSION / ENVELOP_SIGNATURE_REQUIRED.
    """
    settings = Settings()

    p = _config_path(path)
    if p is not None:
        data = _read_yaml(p)
        if data.get("secret") is not None:
            settings.secret = str(data["secret"])
        if data.get("compression") is not None:
            settings.compression = _compression(data["compression"], str(p))
        if data.get("signature_required") is not None:
            settings.signature_required = _as_bool(data["signature_required"])
        if data.get("log_level") is not None:
            settings.log_level = str(data["log_level"]).upper()
        logger.debug("Loaded settings from %s", p)

    if os.getenv("ENVELOP_SECRET"):
        settings.secret = os.environ["ENVELOP_SECRET"]
    if os.getenv("ENVELOP_COMPRESSION"):
        settings.compression = _compression(os.environ["ENVELOP_COMPRESSION"], "ENVELOP_COMPRESSION")
    if os.getenv("ENVELOP_SIGNATURE_REQUIRED"):
        settings.signature_required = _as_bool(os.environ["ENVELOP_SIGNATURE_REQUIRED"])

    return settings
