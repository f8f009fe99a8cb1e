from __future__ import annotations

import argparse
import logging
import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from .build_config import ImageConfig, load_config_file
from .controller import run_build
from .errors import ImageBuildError
from .logging_utils import LOG_NAME, configure_logging

logger = logging.getLogger(__name__)

CONFIG_ENV = "PSYCHE_IMAGE_CONFIG"

# argparse dest -> ImageConfig field
_FLAG_FIELDS = {
    "arch": "arch",
    "img": "image",
    "img_url": "image_url",
    "build_dir": "build_dir",
    "hostname": "hostname",
    "user": "username",
    "password": "password",
    "wifi_ssid": "wifi_ssid",
    "wifi_psk": "wifi_psk",
    "wifi_country": "wifi_country",
    "deb": "deb_path",
    "project_dir": "project_dir",
    "package_name": "package_name",
    "image_name": "image_name",
}


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="psyche-image",
        description="Customize a Raspberry Pi OS Lite image with the created service preinstalled.",
        epilog="Outputs image at: <build-dir>/output/<image-name>-<arch>.img",
    )
    # Defaults live in ImageConfig so a config file can supply them too.
    p.add_argument("--config", default=None, help=f"YAML file with defaults (or ${CONFIG_ENV})")
    p.add_argument("--arch", default=None, help="Target arch: arm64|armhf (default: arm64)")
    p.add_argument("--img", default=None, help="Path to Raspberry Pi OS image (.img or .img.xz/.zip)")
    p.add_argument("--img-url", default=None, help="URL to download image if --img not set")
    p.add_argument("--build-dir", default=None, help="Build/output directory (default: build)")
    p.add_argument("--hostname", default=None, help="Hostname to set (default: psyche)")
    p.add_argument("--user", default=None, help="Username to create on first boot (default: pi)")
    p.add_argument("--password", default=None, help="Password for user (default: raspberry)")
    p.add_argument("--wifi-ssid", default=None, help="WiFi SSID (optional)")
    p.add_argument("--wifi-psk", default=None, help="WiFi PSK (optional)")
    p.add_argument("--wifi-country", default=None, help="WiFi regulatory country (default: US)")
    p.add_argument("--deb", default=None, help="Path to created .deb (optional)")
    p.add_argument("--project-dir", default=None, help="Cargo workspace holding target/debian (default: .)")
    p.add_argument("--package-name", default=None, help="Package and service name (default: created)")
    p.add_argument("--image-name", default=None, help="Output image base name (default: raspios-custom)")
    p.add_argument("--no-sudo", action="store_true", help="Never prefix privileged commands with sudo")
    p.add_argument("-v", "--verbose", action="store_true", help="Debug logging (command output)")
    return p


def config_from_args(args: argparse.Namespace, env: Optional[Mapping[str, str]] = None) -> ImageConfig:
    """Built-in defaults < config file < command line flags."""

    env = os.environ if env is None else env
    file_layer: Dict[str, Any] = {}
    config_path = args.config or env.get(CONFIG_ENV)
    if config_path:
        file_layer = load_config_file(config_path)

    cli_layer: Dict[str, Any] = {field: getattr(args, dest) for dest, field in _FLAG_FIELDS.items()}
    if args.no_sudo:
        cli_layer["use_sudo"] = False
    return ImageConfig.from_layers(file_layer, cli_layer)


def report_failure(e: ImageBuildError) -> int:
    logger.error("%s", e)
    if e.remediation:
        for line in e.remediation.splitlines():
            logger.error("%s", line)
    return e.exit_code


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        cfg = config_from_args(args)
    except ImageBuildError as e:
        configure_logging(log_path=str(Path.cwd() / LOG_NAME), verbose=args.verbose)
        return report_failure(e)

    configure_logging(log_path=str(Path(cfg.build_dir) / "logs" / LOG_NAME), verbose=args.verbose)

    try:
        result = run_build(cfg)
    except ImageBuildError as e:
        return report_failure(e)
    except KeyboardInterrupt:
        logger.error("Interrupted")
        return 130
    except Exception:
        logger.exception("Image build failed")
        raise

    # Only the image path goes to stdout.
    print(result.output_image)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
