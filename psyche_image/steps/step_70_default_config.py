from __future__ import annotations

import logging
from typing import Optional

from ..lib.files import under
from ..pipeline import MutationCtx

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_MS = 5000
DEFAULT_MESSAGE = "hello world"


def config_path(package_name: str) -> str:
    return f"/etc/{package_name}/config.toml"


def render_default_config() -> str:
    return f'interval_ms = {DEFAULT_INTERVAL_MS}\nmessage = "{DEFAULT_MESSAGE}"\n'


class DefaultConfigStep:
    """System-wide daemon config, written only if nothing is there yet."""

    step_id = "70_default_config"

    def skip_reason(self, ctx: MutationCtx) -> Optional[str]:
        p = under(ctx.root, config_path(ctx.request.package_name))
        if p.exists():
            return f"{config_path(ctx.request.package_name)} already present"
        return None

    def run(self, ctx: MutationCtx) -> None:
        rel = config_path(ctx.request.package_name)
        ctx.fs.write_text(under(ctx.root, rel), render_default_config())
        logger.info("Wrote default config at %s", rel)
