from __future__ import annotations

import logging
from pathlib import Path

from .command import run_cmd

logger = logging.getLogger(__name__)


def under(root: Path, rel: str) -> Path:
    """Absolute in-image path rel, re-rooted at a mounted tree."""

    return root / rel.lstrip("/")


class TreeWriter:
    """File edits inside mounted image trees.

    Mounted partitions are root-owned; without root privileges the edits go
    through sudo (tee/mkdir/ln/touch), otherwise they are plain file calls.
    """

    def __init__(self, *, sudo: bool = False):
        self.sudo = sudo

    def mkdir(self, path: Path) -> None:
        if self.sudo:
            run_cmd(["mkdir", "-p", str(path)], sudo=True)
        else:
            path.mkdir(parents=True, exist_ok=True)

    def write_text(self, path: Path, contents: str) -> None:
        logger.debug("Writing %s", path)
        self.mkdir(path.parent)
        if self.sudo:
            run_cmd(["tee", str(path)], input_text=contents, sudo=True)
        else:
            path.write_text(contents, encoding="utf-8")

    def touch(self, path: Path) -> None:
        self.mkdir(path.parent)
        if self.sudo:
            run_cmd(["touch", str(path)], sudo=True)
        else:
            path.touch()

    def symlink(self, target: str, link: Path) -> None:
        """Point link at target, replacing an existing link or file."""

        self.mkdir(link.parent)
        if self.sudo:
            run_cmd(["ln", "-sfn", target, str(link)], sudo=True)
            return
        if link.is_symlink() or link.exists():
            link.unlink()
        link.symlink_to(target)
