"""
Process-wide online/offline state.

`ConnectivityState` is the observable that readers (the sync orchestrator, the
CLI) consult and subscribe to. `ConnectivityWatcher` is its only writer: it
publishes transitions reported from outside or discovered by probing the
remote store in the background.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from contextlib import suppress

log = logging.getLogger(__name__)

Subscriber = Callable[[bool], None]


class ConnectivityState:
    """An observable boolean: is the remote store reachable?"""

    def __init__(self, online: bool = True):
        self._online = online
        self._subscribers: list[Subscriber] = []

    @property
    def is_online(self) -> bool:
        return self._online

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """
        Registers `callback(online)` for every transition.

        Returns:
            A function that removes the subscription. Calling it twice is harmless.
        """
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            with suppress(ValueError):
                self._subscribers.remove(callback)

        return unsubscribe

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def _publish(self, online: bool) -> bool:
        """Sets the flag and notifies subscribers. Returns True on a transition."""
        if online == self._online:
            return False
        self._online = online
        log.info(
            "[green]Connection restored.[/green]"
            if online
            else "[yellow]Connection lost; working from the local cache.[/yellow]"
        )
        for callback in list(self._subscribers):
            try:
                callback(online)
            except Exception as e:
                log.error(f"Connectivity subscriber {callback!r} failed: {e}")
        return True


class ConnectivityWatcher:
    """Writes the connectivity state, from reports or from a periodic probe."""

    def __init__(
        self,
        state: ConnectivityState,
        probe: Callable[[], Awaitable[bool]] | None = None,
        interval: float = 30.0,
    ):
        """
        Args:
            state: The state this watcher owns.
            probe: Coroutine function returning True when the remote answers.
            interval: Seconds between background probes.
        """
        self.state = state
        self.interval = interval
        self._probe = probe
        self._task: asyncio.Task | None = None

    def report(self, online: bool) -> bool:
        """Publishes an externally observed transition (e.g. an OS network event)."""
        return self.state._publish(online)

    async def check_now(self) -> bool:
        """Runs the probe once and publishes the result."""
        if self._probe is None:
            return self.state.is_online
        try:
            online = bool(await self._probe())
        except Exception as e:
            log.debug(f"Connectivity probe raised: {e}")
            online = False
        self.state._publish(online)
        return online

    async def start(self) -> None:
        """
        Starts the periodic background probe task. The first probe runs one
        interval from now; call `check_now()` for an immediate answer.
        """
        if self._probe is None:
            return
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._probe_loop())
            log.debug("Started connectivity probe task.")

    async def _probe_loop(self) -> None:
        while True:
            try:
                await asyncio.sleep(self.interval)
                await self.check_now()
            except asyncio.CancelledError:
                log.debug("Connectivity probe task cancelled.")
                break

    async def stop(self) -> None:
        """Stops the background probe task gracefully."""
        if self._task and not self._task.done():
            self._task.cancel()
            with suppress(asyncio.CancelledError):
                await self._task
            log.debug("Stopped connectivity probe task.")
        self._task = None
