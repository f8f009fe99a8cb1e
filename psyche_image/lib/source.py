from __future__ import annotations

import logging
import lzma
import os
import re
import shutil
import zipfile
import zlib
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Optional, Tuple
from urllib.parse import unquote, urlparse

import requests

from ..errors import (
    CorruptArchive,
    DownloadFailed,
    InputError,
    MissingImageSource,
    NoImageInArchive,
    UnsupportedFormat,
    UnsupportedSource,
)
from .arch import Arch, warn_on_arch_hint

logger = logging.getLogger(__name__)

IMAGE_SUFFIXES = (".img", ".img.xz", ".zip")
_IMG_MEMBER = re.compile(r"\.img$")
_CHUNK = 1024 * 1024


@dataclass(frozen=True)
class ImageSpec:
    source_locator: str
    arch: str
    decompressed_path: Path
    # True when an existing decompressed file was reused
    reused: bool = False


def image_kind(name: str) -> Optional[str]:
    for suffix in IMAGE_SUFFIXES:
        if name.endswith(suffix):
            return suffix
    return None


def url_filename(url: str) -> str:
    return unquote(PurePosixPath(urlparse(url).path).name)


def download_image(url: str, out: Path) -> Path:
    """Stream url to out; the final name only appears once complete."""

    logger.info("Downloading image: %s", url)
    out.parent.mkdir(parents=True, exist_ok=True)
    part = out.with_name(out.name + ".part")
    try:
        with requests.get(url, stream=True) as r:
            r.raise_for_status()
            with open(part, "wb") as f:
                for chunk in r.iter_content(chunk_size=_CHUNK):
                    f.write(chunk)
    except requests.exceptions.RequestException as e:
        part.unlink(missing_ok=True)
        raise DownloadFailed(url, str(e)) from e
    os.replace(part, out)
    return out


def _unxz(src: Path, out: Path) -> None:
    part = out.with_name(out.name + ".part")
    try:
        with lzma.open(src, "rb") as fin, open(part, "wb") as fout:
            shutil.copyfileobj(fin, fout, _CHUNK)
    except (lzma.LZMAError, EOFError) as e:
        part.unlink(missing_ok=True)
        raise CorruptArchive(str(src), str(e) or "truncated stream") from e
    except BaseException:
        part.unlink(missing_ok=True)
        raise
    os.replace(part, out)


def _unzip_first_image(src: Path) -> Path:
    try:
        with zipfile.ZipFile(src) as zf:
            member = next((n for n in zf.namelist() if _IMG_MEMBER.search(n)), None)
            if member is None:
                raise NoImageInArchive(str(src))
            logger.info("Unzipping %s (%s)", src, member)
            return Path(zf.extract(member, path=src.parent))
    except (zipfile.BadZipFile, EOFError, zlib.error) as e:
        raise CorruptArchive(str(src), str(e)) from e


def decompress_if_needed(path: Path) -> Tuple[Path, bool]:
    """Return (raw image path, reused).

    reused is True when a previously decompressed .img.xz target was found
    and no decompression work was done.
    """

    kind = image_kind(path.name)
    if kind == ".img":
        return path, False
    if kind == ".img.xz":
        out = path.with_name(path.name[: -len(".xz")])
        if out.is_file():
            logger.info("Using existing decompressed image: %s", out)
            return out, True
        logger.info("Decompressing %s -> %s", path, out)
        _unxz(path, out)
        return out, False
    if kind == ".zip":
        return _unzip_first_image(path), False
    raise UnsupportedFormat(str(path))


def resolve_source(
    *,
    image: Optional[str],
    image_url: Optional[str],
    arch: Arch,
    tmp_dir: Path,
) -> ImageSpec:
    if image:
        locator = image
        local = Path(image)
        if image_kind(local.name) is None:
            raise UnsupportedFormat(image)
        if not local.is_file():
            raise InputError(f"Image not found: {image}")
    elif image_url:
        locator = image_url
        fname = url_filename(image_url)
        if image_kind(fname) is None:
            raise UnsupportedSource(fname)
        local = download_image(image_url, tmp_dir / fname)
    else:
        raise MissingImageSource()

    decompressed, reused = decompress_if_needed(local)
    warn_on_arch_hint(decompressed.name, arch)
    return ImageSpec(
        source_locator=locator,
        arch=arch.name,
        decompressed_path=decompressed,
        reused=reused,
    )


def stage_output_image(spec: ImageSpec, out: Path) -> Path:
    """Copy the pristine image to the output path; only the copy is mutated."""

    out.parent.mkdir(parents=True, exist_ok=True)
    logger.info("Copying %s -> %s", spec.decompressed_path, out)
    shutil.copyfile(spec.decompressed_path, out)
    return out
