import logging
import threading
import time

from config.settings import MUSICBRAINZ_MIN_INTERVAL_SECONDS

logger = logging.getLogger(__name__)


class RateGate:
    """Serializes upstream calls and keeps them a minimum interval apart.

    The lock is held for the whole call, so concurrent searches queue behind
    one another. The interval is measured from the end of the previous call to
    the start of the next one.
    """

    def __init__(self, min_interval_seconds=MUSICBRAINZ_MIN_INTERVAL_SECONDS, *, clock=time.monotonic, sleep=time.sleep):
        self.min_interval_seconds = max(0.0, float(min_interval_seconds))
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()
        self._last_call_ts = None
        self.calls = 0

    def call(self, fn, *args, **kwargs):
        with self._lock:
            if self._last_call_ts is not None:
                wait_for = self.min_interval_seconds - (self._clock() - self._last_call_ts)
                if wait_for > 0:
                    logger.debug("[RATE_GATE] sleep %.3fs", wait_for)
                    self._sleep(wait_for)
            self.calls += 1
            try:
                return fn(*args, **kwargs)
            finally:
                self._last_call_ts = self._clock()


_RATE_GATE = None
_RATE_GATE_LOCK = threading.Lock()


def get_rate_gate() -> RateGate:
    global _RATE_GATE
    if _RATE_GATE is not None:
        return _RATE_GATE
    with _RATE_GATE_LOCK:
        if _RATE_GATE is None:
            _RATE_GATE = RateGate()
    return _RATE_GATE
