"""Base class for components with a start/stop lifecycle and worker threads."""

from __future__ import annotations

import threading
from typing import Callable, Optional

__all__ = ["Stoppable"]

Worker = Callable[[Optional[threading.Event]], None]


class Stoppable:
    """Runs workers that receive an exit event, set when the component stops."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._threads_lock = threading.Lock()
        self._exit: Optional[threading.Event] = None
        self._threads: list[threading.Thread] = []

    @property
    def running(self) -> bool:
        return self._exit is not None

    def start(self) -> None:
        """Start with no extra start procedure."""
        self.start_func(lambda: None)

    def stop(self) -> None:
        """Stop with no extra stop procedure."""
        self.stop_func(lambda: None)

    def start_func(self, start_procedure: Callable[[], object]) -> None:
        """Start and run ``start_procedure``; stop everything again if it raises."""
        with self._lock:
            if self._exit is not None:
                return
            self._exit = threading.Event()
            try:
                start_procedure()
            except BaseException:
                self._do_stop(lambda: None)
                raise

    def stop_func(self, callable: Callable[[], object]) -> None:
        """Signal exit, run ``callable``, then wait for every worker."""
        with self._lock:
            if self._exit is None:
                return
            self._do_stop(callable)

    def go(self, callable: Worker) -> None:
        """Run ``callable(exit)`` in a worker thread; do nothing when stopped."""
        exit_event = self._exit
        if exit_event is None:
            return
        thread = threading.Thread(target=callable, args=(exit_event,), daemon=True)
        with self._threads_lock:
            self._threads.append(thread)
        thread.start()

    def with_exit(self, callable: Worker) -> None:
        """Call ``callable`` with the exit event, or with None when stopped."""
        callable(self._exit)

    def _do_stop(self, callable: Callable[[], object]) -> None:
        if self._exit is None:
            return
        self._exit.set()
        callable()
        while True:
            with self._threads_lock:
                if not self._threads:
                    break
                thread = self._threads.pop()
            thread.join()
        self._exit = None