from __future__ import annotations

import logging
from typing import Optional

from ..lib.files import under
from ..pipeline import MutationCtx

logger = logging.getLogger(__name__)

WANTS_DIR = "/etc/systemd/system/multi-user.target.wants"

# Without dpkg the package's dedicated user/group never gets created.
OVERRIDE = """[Service]
User=root
Group=root
SupplementaryGroups=dialout
"""


class EnableServiceStep:
    step_id = "60_enable_service"

    def skip_reason(self, ctx: MutationCtx) -> Optional[str]:
        return None

    def run(self, ctx: MutationCtx) -> None:
        unit = f"{ctx.request.package_name}.service"
        ctx.fs.symlink(f"/lib/systemd/system/{unit}", under(ctx.root, f"{WANTS_DIR}/{unit}"))
        ctx.fs.write_text(
            under(ctx.root, f"/etc/systemd/system/{unit}.d/override.conf"),
            OVERRIDE,
        )
        logger.info("Enabled %s", unit)
