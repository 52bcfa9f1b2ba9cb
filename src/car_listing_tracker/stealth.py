"""Fingerprint masking for browser-backed sources.

Carvana and similar marketplaces sit behind bot mitigation that rejects
plain headless Chromium.  ``playwright-stealth`` hides the automation
markers (``navigator.webdriver``, missing plugins, the headless WebGL
vendor).  A source sets ``use_stealth = True`` and its browser session
patches every page it opens with :func:`apply_stealth`.
"""

from __future__ import annotations

from playwright_stealth import Stealth

_stealth = Stealth()


async def apply_stealth(page) -> None:
    """Patch *page* before its first navigation."""
    await _stealth.apply_stealth_async(page)
