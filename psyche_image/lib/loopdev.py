from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import List, Optional

from ..errors import DeviceError
from .command import CommandError, run_cmd

logger = logging.getLogger(__name__)

# loop7p2 -> 2; lsblk only grew a PARTN column in util-linux 2.39
_PART_NUMBER = re.compile(r"p(\d+)$")


def list_partitions(device: str, *, sudo: bool = False) -> List[str]:
    """Partition device paths of a block device, ordered by partition number."""

    r = run_cmd(["lsblk", "--json", "--output", "PATH,TYPE", device], sudo=sudo)
    data = json.loads(r.stdout or "{}")
    parts = []
    for dev in data.get("blockdevices") or []:
        for child in dev.get("children") or []:
            if child.get("type") != "part":
                continue
            m = _PART_NUMBER.search(child["path"])
            if m is None:
                raise ValueError(f"unexpected partition name {child['path']!r} on {device}")
            parts.append((int(m.group(1)), child["path"]))
    return [path for _, path in sorted(parts)]


class LoopDevice:
    """Exclusive loop attachment of an image file with partition scanning.

    attach() either returns with device and partitions set, or raises with
    nothing left attached. release() is idempotent.
    """

    def __init__(self, image: Path, *, sudo: bool = False):
        self.image = image
        self.sudo = sudo
        self.device: Optional[str] = None
        self.partitions: List[str] = []

    def attach(self) -> "LoopDevice":
        if self.device is not None:
            raise DeviceError(f"{self.image} is already attached at {self.device}")

        logger.info("Setting up loop device for %s", self.image)
        try:
            r = run_cmd(["losetup", "--show", "-fP", str(self.image)], sudo=self.sudo)
        except CommandError as e:
            raise DeviceError(f"losetup failed for {self.image}: {e.stderr.strip()}") from e
        device = r.stdout.strip()
        if not device:
            raise DeviceError(f"losetup did not report a device for {self.image}")

        try:
            partitions = list_partitions(device, sudo=self.sudo)
        except (CommandError, ValueError, KeyError) as e:
            self._detach(device)
            raise DeviceError(f"Unable to list partitions of {device}: {e}") from e
        except BaseException:
            self._detach(device)
            raise

        self.device = device
        self.partitions = partitions
        logger.info("Attached %s at %s (partitions: %s)", self.image, device, ", ".join(partitions))
        return self

    def _detach(self, device: str) -> None:
        try:
            run_cmd(["losetup", "-d", device], sudo=self.sudo)
        except CommandError as e:
            raise DeviceError(f"losetup -d {device} failed: {e.stderr.strip()}") from e

    def release(self) -> None:
        if self.device is None:
            return
        device = self.device
        logger.info("Detaching loop device %s", device)
        self._detach(device)
        self.device = None
        self.partitions = []

    def __enter__(self) -> "LoopDevice":
        return self.attach()

    def __exit__(self, *exc) -> None:
        self.release()
