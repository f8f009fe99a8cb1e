"""Psyche image builder.

Turns a stock Raspberry Pi OS Lite image into one that boots with SSH
enabled, a provisioned user and hostname, optional WiFi, and the created
daemon installed and enabled.

Core design goals:
- Golden image is never modified; only a copy in the output directory is
- Every loop device and mount acquired during a run is released, whatever happens
- Architecture-aware package selection (arm64/armhf), never a silent fallback
- Centralized logging
"""

__all__ = []
