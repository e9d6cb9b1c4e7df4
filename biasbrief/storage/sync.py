"""Polling fallback for noticing preference changes made elsewhere.

Storages that cannot broadcast writes (a JSON file shared by several
processes, a profile document edited from another device) are polled. Changes
are delivered through the same listener signature as PreferenceStore.subscribe.
"""

import asyncio
import logging
from typing import Any, Iterable, Optional

from ..config.settings import settings
from .preferences import PreferenceListener, PreferenceStore

logger = logging.getLogger(__name__)


class PreferencePoller:
    """Periodically re-reads selected preferences and reports changes."""

    def __init__(
        self,
        store: PreferenceStore,
        listener: PreferenceListener,
        fields: Iterable[str] = ("preferred_categories",),
        interval: Optional[float] = None,
    ):
        """
        Args:
            store: Store to poll
            listener: Called with (field_name, new_value) on change
            fields: Preference names to watch
            interval: Seconds between polls (default from settings)
        """
        self.store = store
        self.listener = listener
        self.fields = tuple(fields)
        self.interval = settings.preference_poll_interval if interval is None else interval
        self._last: dict[str, Any] = {}
        self._task: Optional[asyncio.Task] = None

    def _read(self, name: str) -> Any:
        return getattr(self.store, f"get_{name}")().data

    def prime(self) -> None:
        """Remember current values without reporting them."""
        self._last = {name: self._read(name) for name in self.fields}

    def poll_once(self) -> list[str]:
        """
        Compare current values with the last seen ones.

        Returns:
            Names of the fields that changed
        """
        changed = []
        for name in self.fields:
            value = self._read(name)
            if name in self._last and self._last[name] != value:
                changed.append(name)
                try:
                    self.listener(name, value)
                except Exception:
                    logger.exception("[PREFS] Poll listener failed for %s", name)
            self._last[name] = value
        return changed

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            self.poll_once()

    def start(self) -> asyncio.Task:
        """Start polling on the running event loop."""
        if self._task is None or self._task.done():
            self.prime()
            self._task = asyncio.get_running_loop().create_task(self._run())
            logger.debug("[PREFS] Polling %s every %.1fs", ", ".join(self.fields), self.interval)
        return self._task

    async def stop(self) -> None:
        """Stop polling and wait for the task to finish."""
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()
