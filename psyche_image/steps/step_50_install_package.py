from __future__ import annotations

import logging
from typing import Optional

from ..errors import MutationError
from ..lib.command import CommandError, run_cmd
from ..pipeline import MutationCtx

logger = logging.getLogger(__name__)


class InstallPackageStep:
    """Unpack the .deb payload into the root tree.

    This is ``dpkg-deb -x``, not a dpkg transaction: maintainer scripts do not
    run because nothing is booted. EnableServiceStep compensates for the user
    and group the postinst would have created.
    """

    step_id = "50_install_package"

    def skip_reason(self, ctx: MutationCtx) -> Optional[str]:
        return None

    def run(self, ctx: MutationCtx) -> None:
        deb = ctx.request.package.path
        logger.info("Installing %s into rootfs", deb)
        try:
            run_cmd(["dpkg-deb", "-x", str(deb), str(ctx.root)], sudo=ctx.fs.sudo)
        except CommandError as e:
            raise MutationError(f"Extracting {deb} failed: {e.stderr.strip()}") from e
