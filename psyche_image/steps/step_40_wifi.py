from __future__ import annotations

import logging
from typing import Optional

from ..pipeline import CustomizationRequest, MutationCtx

logger = logging.getLogger(__name__)


def render_wpa_supplicant(req: CustomizationRequest) -> str:
    return "\n".join(
        [
            "ctrl_interface=DIR=/var/run/wpa_supplicant GROUP=netdev",
            "update_config=1",
            f"country={req.wifi_country}",
            "",
            "network={",
            f'  ssid="{req.wifi_ssid}"',
            f'  psk="{req.wifi_psk}"',
            "}",
            "",
        ]
    )


class WifiStep:
    step_id = "40_wifi"

    def skip_reason(self, ctx: MutationCtx) -> Optional[str]:
        req = ctx.request
        if not (req.wifi_ssid and req.wifi_psk):
            return "wifi ssid and psk not both given"
        return None

    def run(self, ctx: MutationCtx) -> None:
        ctx.fs.write_text(ctx.boot / "wpa_supplicant.conf", render_wpa_supplicant(ctx.request))
        logger.info("Configured WiFi on boot partition (ssid=%s)", ctx.request.wifi_ssid)
