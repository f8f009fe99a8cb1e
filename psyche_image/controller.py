from __future__ import annotations

import contextlib
import hashlib
import logging
import signal
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, List, Optional, Sequence

from .build_config import ImageConfig
from .context import PipelineContext
from .errors import ImageBuildError
from .lib.command import require_tool
from .lib.files import TreeWriter
from .lib.loopdev import LoopDevice
from .lib.mounts import MountSet
from .lib.package import PackageRef, resolve_package
from .lib.source import ImageSpec, resolve_source, stage_output_image
from .pipeline import (
    CustomizationRequest,
    MutationCtx,
    MutationResult,
    MutationStep,
    run_mutations,
)
from .steps import (
    DefaultConfigStep,
    EnableServiceStep,
    EnableSSHStep,
    InstallPackageStep,
    SetHostnameStep,
    UserConfStep,
    WifiStep,
)

logger = logging.getLogger(__name__)

HOST_TOOLS = {
    "losetup": "Install util-linux",
    "mount": "Install util-linux",
    "umount": "Install util-linux",
    "mountpoint": "Install util-linux",
    "lsblk": "Install util-linux",
    "dpkg-deb": "Install dpkg (sudo apt-get install dpkg)",
}


def build_steps() -> List[MutationStep]:
    return [
        EnableSSHStep(),
        SetHostnameStep(),
        UserConfStep(),
        WifiStep(),
        InstallPackageStep(),
        EnableServiceStep(),
        DefaultConfigStep(),
    ]


@dataclass(frozen=True)
class PipelineResult:
    output_image: Path
    source: ImageSpec
    package: PackageRef
    ran_steps: List[str]
    skipped_steps: List[str]


def preflight(ctx: PipelineContext) -> None:
    if ctx.sudo:
        require_tool("sudo", hint="Run as root or install sudo")
    for tool, hint in HOST_TOOLS.items():
        require_tool(tool, hint=hint)


@contextlib.contextmanager
def sigterm_exits() -> Iterator[None]:
    """Turn SIGTERM into SystemExit so scoped releases still run."""

    if threading.current_thread() is not threading.main_thread():
        yield
        return

    def _handler(signum, frame):
        raise SystemExit(128 + signum)

    previous = signal.signal(signal.SIGTERM, _handler)
    try:
        yield
    finally:
        signal.signal(signal.SIGTERM, previous)


def write_checksum(image: Path) -> Path:
    """Record the image's sha256 in SHA256SUMS beside it, keeping other entries."""

    h = hashlib.sha256()
    with open(image, "rb") as f:
        for chunk in iter(lambda: f.read(1024 * 1024), b""):
            h.update(chunk)

    sums_path = image.parent / "SHA256SUMS"
    lines = []
    if sums_path.exists():
        lines = [
            line
            for line in sums_path.read_text(encoding="utf-8").splitlines()
            if line.strip() and not line.endswith(f"  {image.name}")
        ]
    lines.append(f"{h.hexdigest()}  {image.name}")
    sums_path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return sums_path


def release_image(mounts: MountSet, loop: LoopDevice, exc: Optional[BaseException] = None) -> None:
    """Unmount, then detach. The loop device stays attached while anything is mounted.

    With exc set (the scope is already failing) a release error is logged and
    exc keeps propagating; otherwise the release error is raised.
    """

    try:
        mounts.release()
        loop.release()
    except ImageBuildError as e:
        if exc is None:
            raise
        logger.error("Cleanup after failure did not complete: %s", e)
        if loop.device is not None:
            logger.error(
                "Left attached: %s. Unmount %s and run: losetup -d %s",
                loop.device,
                ", ".join(str(target) for target, _ in mounts.mounted) or "nothing",
                loop.device,
            )


def customize_image(
    ctx: PipelineContext,
    image: Path,
    request: CustomizationRequest,
    steps: Sequence[MutationStep],
) -> MutationResult:
    """Attach, mount, mutate. Mounts and the loop device are released on every exit path."""

    with contextlib.ExitStack() as stack:
        loop = LoopDevice(image, sudo=ctx.sudo).attach()
        mounts = MountSet(loop, boot_mount=ctx.boot_mnt, root_mount=ctx.root_mnt, sudo=ctx.sudo)
        # Registered before mounting so a failed boot mount still unmounts root.
        stack.push(lambda exc_type, exc, tb: release_image(mounts, loop, exc))
        mounts.mount()

        mctx = MutationCtx(
            boot=ctx.boot_mnt,
            root=ctx.root_mnt,
            request=request,
            fs=TreeWriter(sudo=ctx.sudo),
        )
        return run_mutations(mctx, steps)


def run_build(cfg: ImageConfig, *, steps: Optional[Sequence[MutationStep]] = None) -> PipelineResult:
    ctx = PipelineContext.from_config(cfg)
    preflight(ctx)
    ctx.ensure_dirs()

    spec = resolve_source(
        image=cfg.image,
        image_url=cfg.image_url,
        arch=ctx.arch,
        tmp_dir=ctx.tmp_dir,
    )
    out = stage_output_image(spec, ctx.output_image)

    pkg = resolve_package(
        arch=ctx.arch,
        deb_dir=ctx.deb_dir,
        project_dir=Path(cfg.project_dir),
        package_name=cfg.package_name,
        deb_path=cfg.deb_path,
    )
    logger.info("Using package: %s (%s)", pkg.path, pkg.origin)

    request = CustomizationRequest(
        hostname=cfg.hostname,
        username=cfg.username,
        password=cfg.password,
        package=pkg,
        package_name=cfg.package_name,
        wifi_ssid=cfg.wifi_ssid,
        wifi_psk=cfg.wifi_psk,
        wifi_country=cfg.wifi_country,
    )

    with sigterm_exits():
        mutations = customize_image(ctx, out, request, steps if steps is not None else build_steps())

    write_checksum(out)
    logger.info("Customization complete: %s", out)
    logger.info(
        "Next: Write image to SD card or run in emulator. SSH will be enabled; login %s/<password>. "
        "The %s service should be running (journalctl -u %s).",
        cfg.username,
        cfg.package_name,
        cfg.package_name,
    )
    return PipelineResult(
        output_image=out,
        source=spec,
        package=pkg,
        ran_steps=mutations.ran_steps,
        skipped_steps=mutations.skipped_steps,
    )
