import logging

import pytest

from psyche_image.errors import UnsupportedArchitecture
from psyche_image.lib.arch import arch_hint, resolve_arch, warn_on_arch_hint


def test_resolve_known_arches():
    assert resolve_arch("arm64").rust_target == "aarch64-unknown-linux-gnu"
    assert resolve_arch("armhf").rust_target == "armv7-unknown-linux-gnueabihf"
    assert resolve_arch("armhf").deb_arch == "armhf"


def test_resolve_unknown_arch():
    with pytest.raises(UnsupportedArchitecture) as exc:
        resolve_arch("amd64")
    assert exc.value.exit_code == 6
    assert "amd64" in str(exc.value)


@pytest.mark.parametrize(
    "name,hint",
    [
        ("2025-05-13-raspios-bookworm-arm64-lite.img", "arm64"),
        ("ubuntu-aarch64.img", "arm64"),
        ("2025-05-13-raspios-bookworm-armhf-lite.img", "armhf"),
        ("debian-armv7.img", "armhf"),
        ("disk.img", None),
    ],
)
def test_arch_hint(name, hint):
    assert arch_hint(name) == hint


def test_matching_hint_does_not_warn(caplog):
    with caplog.at_level(logging.WARNING):
        warn_on_arch_hint("raspios-arm64.img", resolve_arch("arm64"))
    assert caplog.records == []
