from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Tuple

from ..errors import MountError
from .command import CommandError, run_cmd
from .loopdev import LoopDevice

logger = logging.getLogger(__name__)

BOOT_PARTITION = 1
ROOT_PARTITION = 2


def is_mounted(path: Path) -> bool:
    return run_cmd(["mountpoint", "-q", str(path)], check=False).returncode == 0


class MountSet:
    """Boot and root partitions of an attached image, mounted under scratch paths.

    Partition 1 is boot and partition 2 is root by convention. release()
    unmounts only what this set mounted and must run before the loop device
    is detached. Targets whose unmount failed stay in ``mounted``.
    """

    def __init__(self, loop: LoopDevice, *, boot_mount: Path, root_mount: Path, sudo: bool = False):
        self.loop = loop
        self.boot_mount = boot_mount
        self.root_mount = root_mount
        self.sudo = sudo
        # (target, partition) in mount order
        self.mounted: List[Tuple[Path, str]] = []

    def _mount(self, partition_number: int, target: Path) -> None:
        if len(self.loop.partitions) < partition_number:
            raise MountError(
                f"{self.loop.device} has no partition {partition_number} "
                f"(found {len(self.loop.partitions)})",
                partition=f"p{partition_number}",
            )
        part = self.loop.partitions[partition_number - 1]
        target.mkdir(parents=True, exist_ok=True)
        if is_mounted(target):
            raise MountError(f"{target} is already a mount point", partition=part)
        try:
            run_cmd(["mount", part, str(target)], sudo=self.sudo)
        except CommandError as e:
            raise MountError(
                f"Failed to mount partition {partition_number} ({part}) at {target}: {e.stderr.strip()}",
                partition=part,
            ) from e
        self.mounted.append((target, part))

    def mount(self) -> "MountSet":
        logger.info("Mounting partitions")
        self._mount(ROOT_PARTITION, self.root_mount)
        self._mount(BOOT_PARTITION, self.boot_mount)
        return self

    def release(self) -> None:
        errors = []
        remaining = []
        for target, part in reversed(self.mounted):
            logger.info("Unmounting %s", target)
            try:
                run_cmd(["umount", str(target)], sudo=self.sudo)
            except CommandError as e:
                errors.append(f"{target}: {e.stderr.strip()}")
                remaining.append((target, part))
        self.mounted = list(reversed(remaining))
        if errors:
            raise MountError(
                "Failed to unmount " + "; ".join(errors),
                partition=", ".join(part for _, part in self.mounted),
            )

    def __enter__(self) -> "MountSet":
        return self.mount()

    def __exit__(self, *exc) -> None:
        self.release()
