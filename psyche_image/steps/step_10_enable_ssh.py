from __future__ import annotations

import logging
from typing import Optional

from ..pipeline import MutationCtx

logger = logging.getLogger(__name__)


class EnableSSHStep:
    """First boot enables sshd when an ``ssh`` file exists on the boot partition."""

    step_id = "10_enable_ssh"

    def skip_reason(self, ctx: MutationCtx) -> Optional[str]:
        return None

    def run(self, ctx: MutationCtx) -> None:
        ctx.fs.touch(ctx.boot / "ssh")
        logger.info("Enabled SSH")
