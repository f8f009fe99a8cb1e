from __future__ import annotations

import logging
from typing import Optional

from ..errors import HashingUnavailable
from ..pipeline import MutationCtx

logger = logging.getLogger(__name__)

# Same cost as `openssl passwd -6`, which first boot userconf expects.
SHA512_ROUNDS = 5000


def hash_password(password: str) -> str:
    """SHA-512 crypt ($6$) hash with a random salt."""

    try:
        from passlib.hash import sha512_crypt
    except ImportError as e:
        raise HashingUnavailable(str(e)) from e
    return sha512_crypt.using(rounds=SHA512_ROUNDS).hash(password)


def verify_password(password: str, hashed: str) -> bool:
    from passlib.hash import sha512_crypt

    return sha512_crypt.verify(password, hashed)


class UserConfStep:
    """Write ``username:hash`` to the boot partition ``userconf`` file.

    The first boot wizard of Raspberry Pi OS creates (or renames) the default
    user from it. The plaintext password never lands in the image.
    """

    step_id = "30_userconf"

    def skip_reason(self, ctx: MutationCtx) -> Optional[str]:
        return None

    def run(self, ctx: MutationCtx) -> None:
        req = ctx.request
        hashed = hash_password(req.password)
        ctx.fs.write_text(ctx.boot / "userconf", f"{req.username}:{hashed}\n")
        logger.info("Configured user %s via userconf on boot partition", req.username)
