from __future__ import annotations

import logging
import re
from typing import Optional

from ..lib.files import under
from ..pipeline import MutationCtx

logger = logging.getLogger(__name__)

_LOOPBACK_ALIAS = re.compile(r"^127\.0\.1\.1.*$", re.MULTILINE)


def patch_hosts(text: str, hostname: str) -> str:
    """Point the 127.0.1.1 alias at hostname; text without one is returned as-is."""

    return _LOOPBACK_ALIAS.sub(lambda _m: f"127.0.1.1\t{hostname}", text)


class SetHostnameStep:
    step_id = "20_hostname"

    def skip_reason(self, ctx: MutationCtx) -> Optional[str]:
        return None

    def run(self, ctx: MutationCtx) -> None:
        hostname = ctx.request.hostname
        ctx.fs.write_text(under(ctx.root, "/etc/hostname"), hostname + "\n")

        hosts = under(ctx.root, "/etc/hosts")
        if hosts.is_file():
            current = hosts.read_text(encoding="utf-8")
            patched = patch_hosts(current, hostname)
            if patched != current:
                ctx.fs.write_text(hosts, patched)
        else:
            logger.info("No %s in image; leaving hosts untouched", hosts)

        logger.info("Set hostname: %s", hostname)
