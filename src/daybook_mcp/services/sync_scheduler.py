"""Background scheduling of remote synchronization.

Two schedulers live here:

* :class:`DebouncedSyncScheduler` coalesces bursts of saves into one sync
  that runs a fixed delay after the *last* save.
* :class:`PeriodicReconciler` runs a reconcile routine on a fixed interval
  in a daemon thread, surviving failures in any single tick.

Both take their collaborators as plain callables so they can be driven
from tests without real timers or git.
"""

import functools
import logging
import threading
import time
from enum import Enum
from typing import Callable, Optional, Protocol

logger = logging.getLogger(__name__)


class Timer(Protocol):
    """The part of ``threading.Timer`` the debounce scheduler relies on."""

    daemon: bool

    def start(self) -> None: ...

    def cancel(self) -> None: ...


TimerFactory = Callable[[float, Callable[[], None]], Timer]


class SchedulerState(str, Enum):
    IDLE = "idle"
    ARMED = "armed"


class DebouncedSyncScheduler:
    """Debounce state machine: IDLE until armed, ARMED until the delay passes.

    Arming only records the arm time. A countdown timer is started when
    none is running; when it expires it compares the clock with the last
    arm time and either re-schedules itself for the remainder or goes back
    to IDLE and runs the action. N arms within the delay therefore produce
    one run, no earlier than ``delay`` after the last arm.

    Args:
        delay: Quiet period in seconds
        action: The sync routine; exceptions are logged, never raised
        clock: Monotonic clock in seconds
        timer_factory: Builds a started-on-demand countdown
            (``threading.Timer`` signature)
    """

    def __init__(
        self,
        delay: float,
        action: Callable[[], None],
        clock: Callable[[], float] = time.monotonic,
        timer_factory: TimerFactory = threading.Timer,
    ) -> None:
        if delay <= 0:
            raise ValueError("delay must be > 0")
        self._delay = delay
        self._action = action
        self._clock = clock
        self._timer_factory = timer_factory
        self._lock = threading.Lock()
        self._state = SchedulerState.IDLE
        self._armed_at: Optional[float] = None
        self._timer: Optional[Timer] = None
        self._generation = 0
        self._closed = False
        self.arm_count = 0
        self.run_count = 0

    @property
    def delay(self) -> float:
        return self._delay

    @property
    def state(self) -> SchedulerState:
        with self._lock:
            return self._state

    @property
    def is_armed(self) -> bool:
        return self.state is SchedulerState.ARMED

    def due_in(self) -> Optional[float]:
        """Seconds until the pending run, or None when idle."""
        with self._lock:
            if self._state is SchedulerState.IDLE or self._armed_at is None:
                return None
            return max(0.0, self._armed_at + self._delay - self._clock())

    def arm(self) -> None:
        """Schedule a run ``delay`` seconds from now, replacing any pending one."""
        with self._lock:
            if self._closed:
                logger.debug("Scheduler closed, ignoring arm()")
                return
            self._armed_at = self._clock()
            self._state = SchedulerState.ARMED
            self.arm_count += 1
            if self._timer is None:
                self._start_timer(self._delay)

    def _start_timer(self, interval: float) -> None:
        # Caller holds self._lock
        self._generation += 1
        callback = functools.partial(self._on_timer, self._generation)
        timer = self._timer_factory(interval, callback)
        timer.daemon = True
        self._timer = timer
        timer.start()

    def _on_timer(self, generation: int) -> None:
        """Countdown expiry: run if the quiet period has passed, else wait more."""
        with self._lock:
            if generation != self._generation:
                return  # superseded by cancel() or a newer countdown
            self._timer = None
            if self._state is not SchedulerState.ARMED or self._armed_at is None:
                return
            remaining = self._armed_at + self._delay - self._clock()
            if remaining > 0:
                self._start_timer(remaining)
                return
            self._state = SchedulerState.IDLE
            self._armed_at = None

        self._run_action()

    def _run_action(self) -> None:
        self.run_count += 1
        try:
            self._action()
        except Exception as e:
            logger.error("Debounced sync failed: %s", e, exc_info=True)

    def cancel(self) -> bool:
        """Drop a pending run. Returns True if one was pending."""
        with self._lock:
            pending = self._state is SchedulerState.ARMED
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            self._generation += 1
            self._state = SchedulerState.IDLE
            self._armed_at = None
            return pending

    def shutdown(self, flush: bool = True) -> None:
        """Stop accepting arms; optionally run a pending sync first."""
        with self._lock:
            self._closed = True
        pending = self.cancel()
        if pending and flush:
            logger.info("Flushing pending sync on shutdown")
            self._run_action()


class PeriodicReconciler:
    """Runs a routine every ``interval`` seconds in a daemon thread.

    A tick that raises is logged and the loop carries on; the thread only
    ends through :meth:`stop`.
    """

    def __init__(
        self,
        interval: float,
        tick: Callable[[], object],
        name: str = "daybook-reconciler",
    ) -> None:
        if interval <= 0:
            raise ValueError("interval must be > 0")
        self._interval = interval
        self._tick = tick
        self._name = name
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.tick_count = 0
        self.error_count = 0

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.is_running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name=self._name, daemon=True)
        self._thread.start()
        logger.info("Reconciler started (every %ss)", self._interval)

    def _loop(self) -> None:
        while not self._stop.wait(self._interval):
            self.run_once()

    def run_once(self) -> bool:
        """Run a single tick. Returns False if it raised."""
        self.tick_count += 1
        try:
            self._tick()
            return True
        except Exception as e:
            self.error_count += 1
            logger.error("Reconcile tick failed: %s", e, exc_info=True)
            return False

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        self._stop.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)
        self._thread = None
        logger.info("Reconciler stopped")
