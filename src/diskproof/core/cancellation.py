"""
Copyright (c) 2025 initumX (initum.x@gmail.com)
Licensed under the MIT License

core/cancellation.py
Cooperative, level-triggered cancellation.

The engine only ever sees a `stopped_flag: Callable[[], bool]`. At the process
boundary the stop file (written by a UPS monitor or an operator) and
SIGINT/SIGTERM are translated into one CancellationToken.
"""

import os
import signal
import logging
import threading
from typing import Optional

from diskproof.core.models import EngineConfig

logger = logging.getLogger(__name__)


class CancellationToken:
    """Thread-safe stop flag. Once set it stays set."""

    def __init__(self):
        self._event = threading.Event()
        self.reason: Optional[str] = None

    def cancel(self, reason: str = "cancelled") -> None:
        if not self._event.is_set():
            self.reason = reason
            logger.info(f"Stop requested: {reason}")
        self._event.set()

    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def __call__(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Sleeps up to timeout; returns True as soon as the token is set."""
        return self._event.wait(timeout)


class SentinelWatcher:
    """
    Polls for a stop file and cancels the token when it appears.
    Presence means stop; the file's content is ignored.
    """

    def __init__(self, stop_file: str, token: CancellationToken,
                 poll_interval: float = EngineConfig.SENTINEL_POLL_INTERVAL):
        self.stop_file = stop_file
        self.token = token
        self.poll_interval = poll_interval
        self._finished = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def check(self) -> bool:
        """One poll. Returns True if the sentinel is present."""
        if os.path.exists(self.stop_file):
            self.token.cancel(f"stop file present: {self.stop_file}")
            return True
        return False

    def start(self) -> "SentinelWatcher":
        if self.check():
            return self
        self._thread = threading.Thread(target=self._run, name="sentinel-watcher", daemon=True)
        self._thread.start()
        return self

    def stop(self) -> None:
        self._finished.set()
        if self._thread is not None:
            self._thread.join(timeout=self.poll_interval * 2)
            self._thread = None

    def _run(self) -> None:
        while not self._finished.wait(self.poll_interval):
            if self.token.is_cancelled() or self.check():
                return

    def __enter__(self):
        return self.start()

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stop()


def install_signal_handlers(token: CancellationToken):
    """
    Routes SIGINT/SIGTERM to the token so running pipelines stop between files.
    A second SIGINT falls through to the default handler (KeyboardInterrupt).
    Returns the previous handlers so callers can restore them.
    Must be called from the main thread.
    """
    previous = {}

    def handler(signum, frame):
        name = signal.Signals(signum).name
        if token.is_cancelled() and signum == signal.SIGINT:
            signal.signal(signal.SIGINT, signal.default_int_handler)
            raise KeyboardInterrupt
        token.cancel(f"received {name}")

    for sig in (signal.SIGINT, signal.SIGTERM):
        previous[sig] = signal.signal(sig, handler)
    return previous


def restore_signal_handlers(previous) -> None:
    for sig, old in previous.items():
        signal.signal(sig, old)
