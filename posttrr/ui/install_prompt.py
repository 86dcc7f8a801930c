"""
Install-to-home-screen prompts for the progressive web app.

Two widgets share the persisted flags:

- ``pwa-installed``: ``"true"`` once the app is known to be installed
- ``pwa-install-dismissed``: epoch milliseconds of the last dismissal

``InstallBanner`` is the install button shown on any device. It honours a
24 hour cool-down after a dismissal. ``IOSInstallGuide`` walks Safari users
through Add to Home Screen and stays hidden after any dismissal.

Storage is any ``MutableMapping[str, str]`` (the browser's localStorage in
the client). Clocks return epoch seconds and default to ``time.time``.
"""

import re
import time
from collections.abc import Callable, MutableMapping
from typing import Any

INSTALLED_KEY = "pwa-installed"
DISMISSED_KEY = "pwa-install-dismissed"

DISMISS_COOLDOWN_HOURS = 24
IOS_GUIDE_DELAY_SECONDS = 2.0
MOBILE_MAX_WIDTH = 768

MOBILE_UA = re.compile(r"Android|webOS|iPhone|iPad|iPod|BlackBerry|IEMobile|Opera Mini", re.I)
IOS_UA = re.compile(r"iphone|ipad|ipod", re.I)

MANUAL_INSTALL_INSTRUCTIONS = (
    "PWA Installation:\n\n"
    "On Android: Tap the menu (⋮) → Install app\n"
    "On Chrome: Look for the install icon in the address bar\n"
    "On Safari: Tap Share → Add to Home Screen"
)

Clock = Callable[[], float]


class _PromptBase:
    def __init__(
        self,
        storage: MutableMapping[str, str],
        user_agent: str = "",
        standalone: bool = False,
        clock: Clock | None = None,
    ):
        self.storage = storage
        self.user_agent = user_agent
        self.standalone = standalone
        self._clock = clock

    def _now(self) -> float:
        return (self._clock or time.time)()

    def _now_ms(self) -> int:
        return int(self._now() * 1000)

    def _store_installed(self) -> None:
        self.storage[INSTALLED_KEY] = "true"
        self.storage.pop(DISMISSED_KEY, None)

    def _store_dismissed(self) -> None:
        self.storage[DISMISSED_KEY] = str(self._now_ms())

    def _stored_installed(self) -> bool:
        return self.storage.get(INSTALLED_KEY) == "true"


class InstallBanner(_PromptBase):
    """State of the install button."""

    def __init__(
        self,
        storage: MutableMapping[str, str],
        user_agent: str = "",
        viewport_width: int = 1024,
        standalone: bool = False,
        clock: Clock | None = None,
    ):
        super().__init__(storage, user_agent, standalone, clock)
        self.viewport_width = viewport_width
        self.installed = False
        self.visible = True
        self.show_button = False
        self.deferred_prompt: Any = None
        self.installation_attempted = False

    @property
    def is_mobile(self) -> bool:
        return bool(MOBILE_UA.search(self.user_agent)) or self.viewport_width < MOBILE_MAX_WIDTH

    @property
    def should_render(self) -> bool:
        return not self.installed and self.visible

    def _hours_since_dismissed(self) -> float | None:
        dismissed = self.storage.get(DISMISSED_KEY)
        if not dismissed:
            return None
        try:
            dismissed_ms = int(dismissed)
        except ValueError:
            # Unreadable timestamps count as expired
            return float("inf")
        return (self._now_ms() - dismissed_ms) / (1000 * 60 * 60)

    def mount(self) -> None:
        """Apply installation state, stored flags and the dismissal cool-down."""
        if self.standalone:
            self.installed = True
            self.show_button = False
            self._store_installed()
            return

        if self._stored_installed():
            self.installed = True
            self.show_button = False
            return

        hours = self._hours_since_dismissed()
        if hours is not None:
            if hours < DISMISS_COOLDOWN_HOURS:
                self.visible = False
                return
            del self.storage[DISMISSED_KEY]

        if self.is_mobile:
            self.show_button = True

    def resize(self, viewport_width: int) -> None:
        """Re-check the mobile layout only; stored flags are left alone."""
        self.viewport_width = viewport_width
        if self.is_mobile and not self.installed:
            self.show_button = True

    def on_before_install_prompt(self, prompt: Any) -> None:
        """Keep the browser's deferred install prompt for the button."""
        self.deferred_prompt = prompt
        self.show_button = True
        self.visible = True

    def on_app_installed(self) -> None:
        self.installed = True
        self.show_button = False
        self.deferred_prompt = None
        self.installation_attempted = False
        self._store_installed()

    def click_install(self) -> Any:
        """
        Start an installation attempt.

        Returns the deferred prompt to show, or None when the browser gave
        none and ``MANUAL_INSTALL_INSTRUCTIONS`` should be shown instead.
        """
        self.installation_attempted = True
        return self.deferred_prompt

    def install_outcome(self, accepted: bool) -> None:
        """Record the user's answer to the browser prompt. A prompt is single-use."""
        if accepted:
            self.installed = True
            self.show_button = False
            self.storage[INSTALLED_KEY] = "true"
        else:
            self.installation_attempted = False
        self.deferred_prompt = None

    def dismiss(self) -> None:
        self.visible = False
        self.installation_attempted = False
        self._store_dismissed()


class IOSInstallGuide(_PromptBase):
    """State of the Add to Home Screen guide shown on iOS."""

    def __init__(
        self,
        storage: MutableMapping[str, str],
        user_agent: str = "",
        standalone: bool = False,
        clock: Clock | None = None,
    ):
        super().__init__(storage, user_agent, standalone, clock)
        self.installed = False
        self.show_prompt = False
        self._show_at: float | None = None

    @property
    def is_ios(self) -> bool:
        return bool(IOS_UA.search(self.user_agent))

    @property
    def should_render(self) -> bool:
        return not self.installed and self.show_prompt and self.is_ios

    def mount(self) -> None:
        if self.standalone:
            self.installed = True
            return
        if self.storage.get(DISMISSED_KEY):
            return
        if self._stored_installed():
            self.installed = True
            return
        if self.is_ios:
            self._show_at = self._now() + IOS_GUIDE_DELAY_SECONDS

    def tick(self) -> None:
        """Advance the delayed show; the view calls this from its timer."""
        if self._show_at is None or self._now() < self._show_at:
            return
        self._show_at = None
        if not self.installed and not self.storage.get(DISMISSED_KEY):
            self.show_prompt = True

    def unmount(self) -> None:
        self._show_at = None

    def on_app_installed(self) -> None:
        self.installed = True
        self.show_prompt = False
        self._store_installed()

    def dismiss(self) -> None:
        self.show_prompt = False
        self._store_dismissed()
