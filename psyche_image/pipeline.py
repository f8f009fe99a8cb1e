from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Protocol, Sequence

from .errors import ImageBuildError, MutationError
from .lib.command import CommandError
from .lib.files import TreeWriter
from .lib.package import PackageRef

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CustomizationRequest:
    hostname: str
    username: str
    password: str
    package: PackageRef
    package_name: str = "created"
    wifi_ssid: Optional[str] = None
    wifi_psk: Optional[str] = None
    wifi_country: str = "US"


@dataclass(frozen=True)
class MutationCtx:
    boot: Path
    root: Path
    request: CustomizationRequest
    fs: TreeWriter


class MutationStep(Protocol):
    """A single customization applied to the mounted trees."""

    step_id: str

    def skip_reason(self, ctx: MutationCtx) -> Optional[str]:
        ...

    def run(self, ctx: MutationCtx) -> None:
        ...


@dataclass(frozen=True)
class MutationResult:
    ran_steps: List[str]
    skipped_steps: List[str]


def run_mutations(ctx: MutationCtx, steps: Sequence[MutationStep]) -> MutationResult:
    """Run steps in order. The first failure aborts the remaining steps."""

    ran: List[str] = []
    skipped: List[str] = []

    for step in steps:
        reason = step.skip_reason(ctx)
        if reason:
            logger.info("Skipping step %s (%s)", step.step_id, reason)
            skipped.append(step.step_id)
            continue

        logger.info("Running step %s", step.step_id)
        try:
            step.run(ctx)
        except ImageBuildError:
            raise
        except (CommandError, OSError) as e:
            raise MutationError(f"Step {step.step_id} failed: {e}") from e
        ran.append(step.step_id)

    return MutationResult(ran_steps=ran, skipped_steps=skipped)
