from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from .build_config import ImageConfig
from .lib.arch import Arch, resolve_arch
from .lib.command import needs_sudo


@dataclass(frozen=True)
class PipelineContext:
    """Explicit per-run paths and settings, threaded through every component."""

    cfg: ImageConfig
    arch: Arch
    sudo: bool

    @classmethod
    def from_config(cls, cfg: ImageConfig) -> "PipelineContext":
        sudo = needs_sudo() if cfg.use_sudo is None else cfg.use_sudo
        return cls(cfg=cfg, arch=resolve_arch(cfg.arch), sudo=sudo)

    @property
    def build_dir(self) -> Path:
        return Path(self.cfg.build_dir)

    @property
    def tmp_dir(self) -> Path:
        return self.build_dir / "tmp"

    @property
    def boot_mnt(self) -> Path:
        return self.build_dir / "mnt" / "boot"

    @property
    def root_mnt(self) -> Path:
        return self.build_dir / "mnt" / "root"

    @property
    def output_dir(self) -> Path:
        return self.build_dir / "output"

    @property
    def logs_dir(self) -> Path:
        return self.build_dir / "logs"

    @property
    def output_image(self) -> Path:
        return self.output_dir / f"{self.cfg.image_name}-{self.arch.name}.img"

    @property
    def deb_dir(self) -> Path:
        return Path(self.cfg.project_dir) / "target" / "debian"

    def ensure_dirs(self) -> None:
        for p in [self.tmp_dir, self.boot_mnt, self.root_mnt, self.output_dir]:
            p.mkdir(parents=True, exist_ok=True)
