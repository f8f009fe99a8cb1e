"""
Shared fixtures for psyche-image tests.

FakeHost stands in for the privileged host tools (losetup, lsblk, mount,
umount, mountpoint, dpkg-deb) so the pipeline can run without root, loop
devices or real images. Mount targets are plain directories under tmp_path,
so whatever the mutation steps write stays inspectable after release.
"""

import json
from pathlib import Path
from typing import Callable, Dict, List, Optional

import pytest

from psyche_image.build_config import ImageConfig
from psyche_image.lib.command import CmdResult, CommandError


class FakeHost:
    def __init__(self, partitions: int = 2):
        self.partitions = partitions
        self.calls: List[List[str]] = []
        self.attached: Dict[str, str] = {}
        self.mounted: Dict[str, str] = {}
        self.deb_arches: Dict[str, str] = {}
        self.deb_payloads: Dict[str, Dict[str, str]] = {}
        self.fail: Optional[Callable[[List[str]], bool]] = None
        self.detach_while_mounted = False
        self._next_loop = 7

    # -- helpers -----------------------------------------------------------

    def add_deb(self, path: Path, arch: str, payload: Optional[Dict[str, str]] = None) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(b"!<arch>\n")
        self.deb_arches[str(path)] = arch
        self.deb_payloads[str(path)] = payload or {}
        return path

    def commands(self, name: str) -> List[List[str]]:
        return [c for c in self.calls if c[0] == name]

    def _result(self, argv, rc=0, stdout="", stderr="", check=True) -> CmdResult:
        if check and rc != 0:
            raise CommandError(argv, rc, stderr)
        return CmdResult(argv=list(argv), returncode=rc, stdout=stdout, stderr=stderr)

    # -- run_cmd replacement -----------------------------------------------

    def run_cmd(self, argv, *, check=True, sudo=False, **kwargs) -> CmdResult:
        argv = list(argv)
        self.calls.append(argv)

        if self.fail is not None and self.fail(argv):
            return self._result(argv, rc=32, stderr="injected failure", check=check)

        tool = argv[0]
        if tool == "losetup" and argv[1] == "--show":
            dev = f"/dev/loop{self._next_loop}"
            self._next_loop += 1
            self.attached[dev] = argv[-1]
            return self._result(argv, stdout=dev + "\n", check=check)

        if tool == "losetup" and argv[1] == "-d":
            dev = argv[2]
            if any(part.startswith(dev + "p") for part in self.mounted.values()):
                self.detach_while_mounted = True
                return self._result(argv, rc=1, stderr="device busy", check=check)
            self.attached.pop(dev, None)
            return self._result(argv, check=check)

        if tool == "lsblk":
            # util-linux 2.38 (bookworm) columns only
            unknown = set(argv[argv.index("--output") + 1].split(",")) - {"PATH", "TYPE", "NAME"}
            if unknown:
                return self._result(argv, rc=1, stderr=f"lsblk: unknown column: {unknown.pop()}", check=check)
            dev = argv[-1]
            children = [
                {"path": f"{dev}p{n}", "type": "part"}
                for n in range(self.partitions, 0, -1)
            ]
            body = {"blockdevices": [{"path": dev, "type": "loop", "children": children}]}
            return self._result(argv, stdout=json.dumps(body), check=check)

        if tool == "mountpoint":
            return self._result(argv, rc=0 if argv[-1] in self.mounted else 1, check=check)

        if tool == "mount":
            part, target = argv[1], argv[2]
            self.mounted[target] = part
            return self._result(argv, check=check)

        if tool == "umount":
            self.mounted.pop(argv[1], None)
            return self._result(argv, check=check)

        if tool == "dpkg-deb" and argv[1] == "-f":
            arch = self.deb_arches.get(argv[2])
            if arch is None:
                return self._result(argv, rc=2, stderr="not a debian format archive", check=check)
            return self._result(argv, stdout=arch + "\n", check=check)

        if tool == "dpkg-deb" and argv[1] == "-x":
            root = Path(argv[3])
            for rel, content in self.deb_payloads.get(argv[2], {}).items():
                dst = root / rel.lstrip("/")
                dst.parent.mkdir(parents=True, exist_ok=True)
                dst.write_text(content)
            return self._result(argv, check=check)

        raise AssertionError(f"unexpected command: {argv}")


RUN_CMD_USERS = [
    "psyche_image.lib.loopdev.run_cmd",
    "psyche_image.lib.mounts.run_cmd",
    "psyche_image.lib.package.run_cmd",
    "psyche_image.lib.files.run_cmd",
    "psyche_image.steps.step_50_install_package.run_cmd",
]


@pytest.fixture
def fake_host(monkeypatch) -> FakeHost:
    host = FakeHost()
    for target in RUN_CMD_USERS:
        monkeypatch.setattr(target, host.run_cmd)
    monkeypatch.setattr("psyche_image.controller.require_tool", lambda name, hint=None: name)
    return host


@pytest.fixture
def raw_image(tmp_path) -> Path:
    img = tmp_path / "src" / "2025-05-13-raspios-bookworm-arm64-lite.img"
    img.parent.mkdir(parents=True)
    img.write_bytes(b"\x00" * 4096)
    return img


@pytest.fixture
def package_payload() -> Dict[str, str]:
    return {
        "/usr/bin/created": "#!/bin/sh\n",
        "/lib/systemd/system/created.service": "[Service]\nExecStart=/usr/bin/created\n",
        "/lib/udev/rules.d/99-created.rules": 'KERNEL=="ttyUSB*", GROUP="dialout"\n',
    }


@pytest.fixture
def make_config(tmp_path, raw_image):
    def _make(**overrides) -> ImageConfig:
        values = dict(
            image=str(raw_image),
            build_dir=str(tmp_path / "build"),
            project_dir=str(tmp_path / "project"),
            use_sudo=False,
        )
        values.update(overrides)
        return ImageConfig(**values)

    return _make
