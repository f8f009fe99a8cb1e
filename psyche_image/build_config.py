from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from .errors import InputError


@dataclass(frozen=True)
class ImageConfig:
    arch: str = "arm64"
    image: Optional[str] = None
    image_url: Optional[str] = None
    build_dir: str = "build"
    hostname: str = "psyche"
    username: str = "pi"
    password: str = "raspberry"
    wifi_ssid: Optional[str] = None
    wifi_psk: Optional[str] = None
    wifi_country: str = "US"
    deb_path: Optional[str] = None
    project_dir: str = "."
    package_name: str = "created"
    image_name: str = "raspios-custom"
    # None: decide from the effective uid at run time
    use_sudo: Optional[bool] = None

    @property
    def wifi_enabled(self) -> bool:
        return bool(self.wifi_ssid) and bool(self.wifi_psk)

    @classmethod
    def field_names(cls) -> set[str]:
        return {f.name for f in dataclasses.fields(cls)}

    @classmethod
    def from_layers(cls, *layers: Mapping[str, Any]) -> "ImageConfig":
        """Merge layers left to right; None values never override."""

        merged: Dict[str, Any] = {}
        for layer in layers:
            unknown = set(layer) - cls.field_names()
            if unknown:
                raise InputError(f"Unknown config keys: {', '.join(sorted(unknown))}")
            merged.update({k: v for k, v in layer.items() if v is not None})
        return cls(**merged)


def load_config_file(path: str) -> Dict[str, Any]:
    p = Path(path)
    if not p.exists():
        raise InputError(f"Config file not found: {path}")

    if p.suffix.lower() not in {".yaml", ".yml"}:
        raise InputError("config file must be YAML")

    try:
        import yaml  # type: ignore
    except Exception as e:
        raise InputError("PyYAML is required to read the config file") from e

    raw = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
    if not isinstance(raw, dict):
        raise InputError(f"{path} must contain a mapping/object")

    return raw
