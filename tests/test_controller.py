"""End-to-end pipeline runs against the fake host, including failure paths."""

import hashlib
import os

import pytest

from psyche_image import controller
from psyche_image.errors import (
    MountError,
    MutationError,
    PackageArchMismatch,
    UnsupportedArchitecture,
)
from psyche_image.steps import step_30_userconf
from psyche_image.steps.step_30_userconf import verify_password


@pytest.fixture
def deb(tmp_path, fake_host, package_payload):
    return fake_host.add_deb(
        tmp_path / "project" / "target" / "debian" / "created_0.1.0_arm64.deb", "arm64", package_payload
    )


def _assert_released(fake_host):
    assert fake_host.mounted == {}
    assert fake_host.attached == {}
    assert not fake_host.detach_while_mounted


def test_end_to_end(tmp_path, fake_host, deb, make_config, raw_image):
    cfg = make_config(hostname="testhost", username="alice", password="secret123")
    result = controller.run_build(cfg)

    build = tmp_path / "build"
    boot = build / "mnt" / "boot"
    root = build / "mnt" / "root"

    assert result.output_image == build / "output" / "raspios-custom-arm64.img"
    assert result.output_image.read_bytes() == raw_image.read_bytes()
    assert result.package.path == deb

    assert (root / "etc/hostname").read_text() == "testhost\n"
    user, hashed = (boot / "userconf").read_text().strip().split(":", 1)
    assert user == "alice"
    assert verify_password("secret123", hashed)
    assert (boot / "ssh").exists()
    assert (root / "usr/bin/created").exists()
    assert os.readlink(root / "etc/systemd/system/multi-user.target.wants/created.service") == (
        "/lib/systemd/system/created.service"
    )
    assert not (boot / "wpa_supplicant.conf").exists()
    assert result.skipped_steps == ["40_wifi"]

    _assert_released(fake_host)

    sums = (build / "output" / "SHA256SUMS").read_text()
    digest = hashlib.sha256(raw_image.read_bytes()).hexdigest()
    assert sums == f"{digest}  raspios-custom-arm64.img\n"


def test_mounts_released_before_detach(tmp_path, fake_host, deb, make_config):
    controller.run_build(make_config())
    names = [c[0] for c in fake_host.calls if c[0] in {"umount", "losetup"}]
    assert names == ["losetup", "umount", "umount", "losetup"]


def test_existing_config_survives(tmp_path, fake_host, make_config, package_payload):
    payload = dict(package_payload)
    payload["/etc/created/config.toml"] = 'message = "from package"\n'
    fake_host.add_deb(tmp_path / "project/target/debian/created_0.1.0_arm64.deb", "arm64", payload)

    result = controller.run_build(make_config())

    conf = tmp_path / "build/mnt/root/etc/created/config.toml"
    assert conf.read_text() == 'message = "from package"\n'
    assert "70_default_config" in result.skipped_steps


def test_wifi_written_when_both_given(tmp_path, fake_host, deb, make_config):
    controller.run_build(make_config(wifi_ssid="lab", wifi_psk="s3cret!"))
    conf = (tmp_path / "build/mnt/boot/wpa_supplicant.conf").read_text()
    assert 'ssid="lab"' in conf
    assert 'psk="s3cret!"' in conf


def test_mount_failure_releases_everything(fake_host, deb, make_config):
    fake_host.fail = lambda argv: argv[0] == "mount" and argv[1].endswith("p1")
    with pytest.raises(MountError):
        controller.run_build(make_config())
    _assert_released(fake_host)


def test_mutation_failure_releases_everything(fake_host, deb, make_config):
    fake_host.fail = lambda argv: argv[:2] == ["dpkg-deb", "-x"]
    with pytest.raises(MutationError):
        controller.run_build(make_config())
    _assert_released(fake_host)


def test_umount_failure_keeps_mutation_error(fake_host, deb, make_config):
    fake_host.fail = lambda argv: argv[:2] == ["dpkg-deb", "-x"] or (
        argv[0] == "umount" and argv[1].endswith("root")
    )
    with pytest.raises(MutationError) as exc:
        controller.run_build(make_config())
    assert exc.value.exit_code == 11
    assert not fake_host.detach_while_mounted
    # root is still mounted, so its loop device was not detached
    assert [c for c in fake_host.commands("losetup") if c[1] == "-d"] == []
    assert list(fake_host.attached) == ["/dev/loop7"]


def test_umount_failure_after_success_is_reported(fake_host, deb, make_config):
    fake_host.fail = lambda argv: argv[0] == "umount" and argv[1].endswith("boot")
    with pytest.raises(MountError):
        controller.run_build(make_config())
    assert not fake_host.detach_while_mounted
    assert list(fake_host.attached) == ["/dev/loop7"]


def test_interrupt_releases_everything(fake_host, deb, make_config, monkeypatch):
    def interrupted(password):
        raise KeyboardInterrupt

    monkeypatch.setattr(step_30_userconf, "hash_password", interrupted)
    with pytest.raises(KeyboardInterrupt):
        controller.run_build(make_config())
    _assert_released(fake_host)


def test_package_mismatch_happens_before_attach(tmp_path, fake_host, make_config):
    bad = fake_host.add_deb(tmp_path / "created_0.1.0_armhf.deb", "armhf")
    with pytest.raises(PackageArchMismatch):
        controller.run_build(make_config(deb_path=str(bad)))
    assert fake_host.commands("losetup") == []


def test_unsupported_arch_fails_first(fake_host, make_config):
    with pytest.raises(UnsupportedArchitecture):
        controller.run_build(make_config(arch="x86"))
    assert fake_host.calls == []


def test_write_checksum_replaces_own_line(tmp_path):
    img = tmp_path / "a.img"
    img.write_bytes(b"one")
    (tmp_path / "SHA256SUMS").write_text("deadbeef  other.img\nfeedface  a.img\n")

    controller.write_checksum(img)

    lines = (tmp_path / "SHA256SUMS").read_text().splitlines()
    assert lines == ["deadbeef  other.img", f"{hashlib.sha256(b'one').hexdigest()}  a.img"]
