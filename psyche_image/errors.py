"""Error taxonomy for the image build.

Every failure is fatal to the run. Each exception carries the process exit
code the CLI returns for it and, where one exists, remediation text for the
operator.

Hierarchy:
    ImageBuildError
        ├── InputError
        │   ├── MissingImageSource
        │   └── UnsupportedArchitecture
        ├── ToolingMissing
        ├── SourceResolutionError
        │   ├── DownloadFailed
        │   ├── UnsupportedSource
        │   ├── UnsupportedFormat
        │   └── NoImageInArchive
        ├── PackageResolutionError
        │   ├── PackageArchMismatch
        │   ├── PackageBuildFailed
        │   └── PackageResolutionFailed
        ├── DeviceError
        ├── MountError
        └── MutationError
            └── HashingUnavailable
"""

from __future__ import annotations

from typing import Optional


class ImageBuildError(Exception):
    """Base exception for all pipeline failures."""

    exit_code = 1

    def __init__(self, message: str, *, remediation: Optional[str] = None):
        self.remediation = remediation
        super().__init__(message)


class InputError(ImageBuildError):
    exit_code = 2


class MissingImageSource(InputError):
    def __init__(self) -> None:
        super().__init__(
            "No image source given",
            remediation="Provide --img /path/to/raspios.img[.xz|.zip] or --img-url URL",
        )


class UnsupportedArchitecture(InputError):
    exit_code = 6

    def __init__(self, arch: str, supported: tuple[str, ...]):
        self.arch = arch
        super().__init__(
            f"Unsupported architecture: {arch} (expected {' or '.join(supported)})"
        )


class ToolingMissing(ImageBuildError):
    """A required host utility is not on PATH."""

    exit_code = 3

    def __init__(self, tool: str, *, remediation: Optional[str] = None):
        self.tool = tool
        super().__init__(f"Missing required command: {tool}", remediation=remediation)


class SourceResolutionError(ImageBuildError):
    exit_code = 12


class DownloadFailed(SourceResolutionError):
    def __init__(self, url: str, reason: str):
        self.url = url
        super().__init__(f"Download of {url} failed: {reason}")


class UnsupportedSource(SourceResolutionError):
    exit_code = 5

    def __init__(self, filename: str):
        self.filename = filename
        super().__init__(
            f"Unsupported or unknown image filename: {filename}",
            remediation="Image sources must end in .img, .img.xz or .zip",
        )


class UnsupportedFormat(SourceResolutionError):
    exit_code = 5

    def __init__(self, path: str):
        self.path = path
        super().__init__(
            f"Unsupported image format: {path}",
            remediation="Image sources must end in .img, .img.xz or .zip",
        )


class NoImageInArchive(SourceResolutionError):
    exit_code = 4

    def __init__(self, archive: str):
        self.archive = archive
        super().__init__(f"No .img in zip: {archive}")


class CorruptArchive(SourceResolutionError):
    """A .img.xz or .zip that cannot be decompressed (truncated download, wrong content)."""

    def __init__(self, archive: str, reason: str):
        self.archive = archive
        super().__init__(
            f"Cannot decompress {archive}: {reason}",
            remediation="Delete the file and download the image again",
        )


class PackageResolutionError(ImageBuildError):
    exit_code = 7


class PackageArchMismatch(PackageResolutionError):
    def __init__(self, path: str, actual: str, expected: str):
        self.path = path
        self.actual = actual
        self.expected = expected
        super().__init__(
            f"Provided deb ({path}) architecture '{actual}' does not match target '{expected}'"
        )


class PackageBuildFailed(PackageResolutionError):
    pass


class PackageResolutionFailed(PackageResolutionError):
    pass


class DeviceError(ImageBuildError):
    exit_code = 9


class MountError(ImageBuildError):
    exit_code = 10

    def __init__(self, message: str, *, partition: Optional[str] = None):
        self.partition = partition
        super().__init__(message)


class MutationError(ImageBuildError):
    exit_code = 11


class HashingUnavailable(MutationError):
    exit_code = 8

    def __init__(self, reason: str):
        super().__init__(
            f"Cannot hash password for userconf: {reason}",
            remediation="Install passlib (pip install passlib)",
        )
