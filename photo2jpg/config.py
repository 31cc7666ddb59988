from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

from .decoder import ImageDecoder, PillowDecoder, QtDecoder
from .encoder import JpegEncoder, PillowJpegEncoder, QtJpegEncoder

CONFIG_FILE = Path("config.toml")
CONFIG_ENV = "PHOTO2JPG_CONFIG"
BACKENDS = ("pillow", "qt")


@dataclass(slots=True)
class AppConfig:
    default_quality: int = 80
    stagger_interval_ms: int = 200
    backend: str = "pillow"
    optimize: bool = True
    apply_exif_orientation: bool = True
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        if not 0 < self.default_quality <= 100:
            raise ValueError(f"default_quality must be in 1..100, got {self.default_quality}")
        if self.stagger_interval_ms < 0:
            raise ValueError(f"stagger_interval_ms must be non-negative, got {self.stagger_interval_ms}")
        if self.backend not in BACKENDS:
            raise ValueError(f"Unknown backend {self.backend!r}; expected one of {', '.join(BACKENDS)}")


def _read_toml(path: Path) -> Mapping[str, object]:
    if not path.exists():
        return {}
    with path.open("rb") as handle:
        return tomllib.load(handle)


def _parse_bool(value: object, default: bool) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in {"1", "true", "yes", "on"}:
            return True
        if normalized in {"0", "false", "no", "off"}:
            return False
    return default


def _config_path(path: Path | None) -> Path:
    if path is not None:
        return path
    env_path = os.getenv(CONFIG_ENV)
    return Path(env_path) if env_path else CONFIG_FILE


def load_config(path: Path | None = None) -> AppConfig:
    raw = _read_toml(_config_path(path))
    data = raw.get("converter") if isinstance(raw, Mapping) else None
    if not isinstance(data, Mapping):
        return AppConfig()
    defaults = AppConfig()
    return AppConfig(
        default_quality=int(data.get("default_quality", defaults.default_quality)),
        stagger_interval_ms=int(data.get("stagger_interval_ms", defaults.stagger_interval_ms)),
        backend=str(data.get("backend", defaults.backend)).lower(),
        optimize=_parse_bool(data.get("optimize"), defaults.optimize),
        apply_exif_orientation=_parse_bool(data.get("apply_exif_orientation"), defaults.apply_exif_orientation),
        log_level=str(data.get("log_level", defaults.log_level)).upper(),
    )


def create_decoder(config: AppConfig) -> ImageDecoder:
    if config.backend == "qt":
        return QtDecoder()
    return PillowDecoder(apply_exif_orientation=config.apply_exif_orientation)


def create_encoder(config: AppConfig) -> JpegEncoder:
    if config.backend == "qt":
        return QtJpegEncoder()
    return PillowJpegEncoder(optimize=config.optimize)
