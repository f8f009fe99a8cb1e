from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from ..errors import PackageArchMismatch, PackageBuildFailed, PackageResolutionFailed
from .arch import ARCHES, Arch
from .command import CommandError, have_tool, run_cmd

logger = logging.getLogger(__name__)

ORIGIN_USER = "userProvided"
ORIGIN_DISCOVERED = "discovered"
ORIGIN_BUILT = "built"


@dataclass(frozen=True)
class PackageRef:
    path: Path
    architecture: str
    origin: str


def deb_architecture(deb: Path) -> str:
    """Architecture control field of a .deb, or '' when unreadable."""

    r = run_cmd(["dpkg-deb", "-f", str(deb), "Architecture"], check=False)
    if r.returncode != 0:
        return ""
    return r.stdout.strip()


def candidate_dirs(deb_dir: Path, arch: Arch) -> List[Path]:
    # cargo-deb writes to target/<triple>/debian when --target is given
    return [deb_dir, deb_dir.parent / arch.rust_target / "debian"]


def find_debs(deb_dir: Path, package_name: str) -> List[Path]:
    # Sorted so discovery does not depend on directory iteration order.
    return sorted(p for p in deb_dir.glob(f"{package_name}_*.deb") if p.is_file())


def discover_package(deb_dir: Path, package_name: str, arch: Arch) -> Optional[Path]:
    for base in candidate_dirs(deb_dir, arch):
        for deb in find_debs(base, package_name):
            if deb_architecture(deb) == arch.deb_arch:
                return deb
    return None


def cargo_deb_available() -> bool:
    if have_tool("cargo-deb"):
        return True
    if not have_tool("cargo"):
        return False
    return run_cmd(["cargo", "deb", "-V"], check=False).returncode == 0


def _toolchain_advice(arch: Arch) -> None:
    """Best-effort hints; the build itself decides success."""

    if have_tool("rustup"):
        r = run_cmd(["rustup", "target", "list", "--installed"], check=False)
        if arch.rust_target not in r.stdout.split():
            logger.warning(
                "Rust target %s not installed. Install with: rustup target add %s",
                arch.rust_target,
                arch.rust_target,
            )
    if not have_tool(arch.cross_gcc):
        logger.warning(
            "Note: cross C linker %s not found; pure-Rust crates will still build.",
            arch.cross_gcc,
        )


def build_package(*, project_dir: Path, package_name: str, arch: Arch) -> None:
    logger.info("Building %s .deb for %s (%s)", package_name, arch.name, arch.rust_target)
    _toolchain_advice(arch)
    try:
        run_cmd(
            ["cargo", "deb", "-p", package_name, "--target", arch.rust_target],
            cwd=str(project_dir),
            capture=False,
        )
    except (CommandError, OSError) as e:
        raise PackageBuildFailed(f"cargo deb failed for {arch.rust_target}: {e}") from e


def _remediation(package_name: str, arch: Arch) -> str:
    return "\n".join(
        [
            f"Provide --deb /path/to/{package_name}_<ver>_{arch.deb_arch}.deb",
            "Hints: install cross toolchains and rust target (on Debian/Ubuntu):",
            "  sudo apt-get install " + " ".join(a.cross_apt_pkg for a in ARCHES.values()),
            "  rustup target add " + " ".join(a.rust_target for a in ARCHES.values()),
        ]
    )


def resolve_package(
    *,
    arch: Arch,
    deb_dir: Path,
    project_dir: Path,
    package_name: str,
    deb_path: Optional[str] = None,
) -> PackageRef:
    """Explicit path, then previously built debs, then a fresh cargo-deb build."""

    if deb_path:
        actual = deb_architecture(Path(deb_path))
        if actual != arch.deb_arch:
            raise PackageArchMismatch(deb_path, actual, arch.deb_arch)
        return PackageRef(path=Path(deb_path), architecture=actual, origin=ORIGIN_USER)

    found = discover_package(deb_dir, package_name, arch)
    if found is not None:
        return PackageRef(path=found, architecture=arch.deb_arch, origin=ORIGIN_DISCOVERED)

    if not cargo_deb_available():
        raise PackageResolutionFailed(
            f"Could not find {package_name} .deb for {arch.name} and cargo-deb is not installed",
            remediation="Install with: cargo install cargo-deb\n" + _remediation(package_name, arch),
        )

    build_package(project_dir=project_dir, package_name=package_name, arch=arch)
    found = discover_package(deb_dir, package_name, arch)
    if found is not None:
        return PackageRef(path=found, architecture=arch.deb_arch, origin=ORIGIN_BUILT)

    raise PackageResolutionFailed(
        f"Could not find or build {package_name} .deb for {arch.name}",
        remediation=_remediation(package_name, arch),
    )
