from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Optional

from ..errors import UnsupportedArchitecture

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Arch:
    name: str
    deb_arch: str
    rust_target: str
    cross_gcc: str
    cross_apt_pkg: str


ARCHES: Dict[str, Arch] = {
    "arm64": Arch(
        name="arm64",
        deb_arch="arm64",
        rust_target="aarch64-unknown-linux-gnu",
        cross_gcc="aarch64-linux-gnu-gcc",
        cross_apt_pkg="gcc-aarch64-linux-gnu",
    ),
    "armhf": Arch(
        name="armhf",
        deb_arch="armhf",
        rust_target="armv7-unknown-linux-gnueabihf",
        cross_gcc="arm-linux-gnueabihf-gcc",
        cross_apt_pkg="gcc-arm-linux-gnueabihf",
    ),
}

# Filename tokens as used by Raspberry Pi OS release names.
_HINTS = [
    (("arm64", "aarch64"), "arm64"),
    (("armhf", "armv7"), "armhf"),
]


def resolve_arch(name: str) -> Arch:
    try:
        return ARCHES[name]
    except KeyError:
        raise UnsupportedArchitecture(name, tuple(ARCHES)) from None


def arch_hint(filename: str) -> Optional[str]:
    """Guess the architecture from an image filename, or None."""

    for tokens, arch in _HINTS:
        if any(t in filename for t in tokens):
            return arch
    return None


def warn_on_arch_hint(filename: str, arch: Arch) -> Optional[str]:
    """Log a warning when the filename suggests another arch. Never fatal."""

    hint = arch_hint(filename)
    if hint is not None and hint != arch.name:
        logger.warning(
            "Image name (%s) suggests arch '%s' but --arch is '%s'", filename, hint, arch.name
        )
    return hint
