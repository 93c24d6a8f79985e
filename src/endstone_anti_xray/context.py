"""
Runtime context shared by the Anti-Xray components
Constructed once at startup and handed to every component.
"""

from typing import Callable
import time

from endstone_anti_xray.settings import AntiXraySettings


class AntiXrayContext:
    """Logger, settings, clock and version for the detection core"""

    LOG_TAG = "[AntiXray] "

    def __init__(
        self,
        logger,
        settings: AntiXraySettings = None,
        clock: Callable[[], float] = time.time,
        version: str = "1.0.0",
    ):
        self.logger = logger
        self._settings = settings or AntiXraySettings()
        self.clock = clock
        self.version = version

    @property
    def settings(self) -> AntiXraySettings:
        return self._settings

    def swap_settings(self, settings: AntiXraySettings) -> None:
        """Replace the settings tree; readers see either the old or the new one."""
        self._settings = settings

    def now(self) -> float:
        return self.clock()

    def debug(self, message: str) -> None:
        if self._settings.debug:
            self.logger.info(f"[DEBUG] {message}")
