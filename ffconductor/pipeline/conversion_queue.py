"""
The ConversionQueue: runs many conversions on a pool of worker threads.

Workers are started with the queue but only take items while the gate is open.
`start()` opens the gate and `pause()` closes it. Pausing is soft: it stops
workers from taking new items, but an item a worker has already taken runs to
completion.

Every processed item increments a sequence number in completion order. The
outcome is reported to observers:

- `on_converted(sequence, total, conversion)` after a successful run
- `on_exception(sequence, total, conversion, error)` after a failed or
  cancelled run

Failures never leave the worker: one broken conversion does not stop the queue
or affect the other items. An observer raising from `on_converted` turns that
item into a failure; observers raising from `on_exception` are logged.

The deque of pending items, the gate, the counters and the stop flag are all
guarded by one `threading.Condition`.
"""
import os
import threading
from collections import deque
from concurrent.futures import Future
from typing import Callable, Deque, List, Optional, Tuple

from loguru import logger

from ..services.conversion import Conversion

ConvertedCallback = Callable[[int, int, Conversion], None]
ExceptionCallback = Callable[[int, int, Conversion, BaseException], None]


class ConversionQueue:
    """
    A pausable worker pool for conversions.

    Args:
        parallel: Use one worker per CPU instead of a single worker.
        on_converted: Observer called after each successful conversion.
        on_exception: Observer called after each failed conversion.
    """

    def __init__(
        self,
        parallel: bool = False,
        on_converted: Optional[ConvertedCallback] = None,
        on_exception: Optional[ExceptionCallback] = None,
    ):
        cpu_count = os.cpu_count() or 1
        self.worker_count = cpu_count if parallel and cpu_count > 1 else 1

        self._condition = threading.Condition()
        self._items: Deque[Conversion] = deque()
        self._gate_open = False
        self._stopping = False
        self._total = 0
        self._number = 0
        # Items added (or pending production) that have not been processed yet.
        self._unfinished = 0
        self._cancel_event = threading.Event()

        self._converted_listeners: List[ConvertedCallback] = [on_converted] if on_converted else []
        self._exception_listeners: List[ExceptionCallback] = [on_exception] if on_exception else []

        self._workers = [
            threading.Thread(target=self._worker_loop, name=f"conversion-worker-{i}", daemon=True)
            for i in range(self.worker_count)
        ]
        for worker in self._workers:
            worker.start()
        logger.debug(f"ConversionQueue started {self.worker_count} worker(s).")

    def __enter__(self) -> "ConversionQueue":
        return self

    def __exit__(self, exc_type, exc, tb):
        self.shutdown()

    # --- State ---

    @property
    def total(self) -> int:
        """Number of conversions added so far."""
        with self._condition:
            return self._total

    @property
    def number(self) -> int:
        """Number of conversions processed so far (the last sequence number)."""
        with self._condition:
            return self._number

    @property
    def pending(self) -> int:
        with self._condition:
            return len(self._items)

    @property
    def is_running(self) -> bool:
        with self._condition:
            return self._gate_open and not self._stopping

    # --- Observers ---

    def add_converted_listener(self, callback: ConvertedCallback):
        with self._condition:
            self._converted_listeners.append(callback)

    def add_exception_listener(self, callback: ExceptionCallback):
        with self._condition:
            self._exception_listeners.append(callback)

    # --- Submission ---

    def _ensure_open(self):
        if self._stopping:
            raise RuntimeError("ConversionQueue has been shut down.")

    def add(self, conversion: Conversion):
        """Adds a conversion to the end of the queue."""
        with self._condition:
            self._ensure_open()
            self._unfinished += 1
            self._enqueue_locked(conversion)

    def _enqueue_locked(self, conversion: Conversion):
        self._items.append(conversion)
        self._total += 1
        self._condition.notify()

    def add_future(self, pending: "Future[Conversion]"):
        """
        Adds a conversion that is still being prepared elsewhere (e.g. probed on a
        thread pool). The conversion is queued as soon as `pending` resolves. If
        the future fails, the error is logged and nothing is queued.
        """
        with self._condition:
            self._ensure_open()
            self._unfinished += 1

        def _on_done(done: "Future[Conversion]"):
            try:
                conversion = done.result()
            except Exception as e:
                logger.error(f"A conversion could not be prepared and was not queued: {e}")
                self._mark_finished()
                return
            with self._condition:
                if self._stopping:
                    logger.warning(f"Queue shut down before {conversion!r} was ready; dropping it.")
                    self._unfinished -= 1
                    self._condition.notify_all()
                    return
                self._enqueue_locked(conversion)

        pending.add_done_callback(_on_done)

    # --- Gate and Cancellation ---

    def start(self, cancel_event: Optional[threading.Event] = None):
        """
        Opens the gate so workers take items.

        Args:
            cancel_event: A cancellation scope for the conversions started from
                          now on. If omitted, the current scope is kept unless
                          it was already cancelled, in which case a fresh one is
                          installed.
        """
        with self._condition:
            self._ensure_open()
            if cancel_event is not None:
                self._cancel_event = cancel_event
            elif self._cancel_event.is_set():
                self._cancel_event = threading.Event()
            self._gate_open = True
            self._condition.notify_all()
        logger.debug("ConversionQueue gate opened.")

    def pause(self):
        """Closes the gate. Conversions already taken by a worker keep running."""
        with self._condition:
            self._gate_open = False
        logger.debug("ConversionQueue gate closed.")

    def cancel(self):
        """Closes the gate and cancels every conversion that is currently running."""
        with self._condition:
            self._gate_open = False
            self._cancel_event.set()
        logger.info("ConversionQueue cancelled running conversions.")

    def join(self, timeout: Optional[float] = None) -> bool:
        """
        Waits until every added conversion has been processed.

        Note that this waits forever if the gate is never opened.

        Returns:
            True if the queue drained, False if `timeout` expired first.
        """
        with self._condition:
            return self._condition.wait_for(lambda: self._unfinished == 0, timeout)

    def shutdown(self):
        """
        Stops all workers and waits for them to exit.

        Running conversions are cancelled and conversions that were not taken
        yet are dropped. The queue cannot be used afterwards.
        """
        with self._condition:
            if self._stopping and not any(w.is_alive() for w in self._workers):
                return
            self._stopping = True
            self._gate_open = False
            dropped = len(self._items)
            self._items.clear()
            self._unfinished -= dropped
            self._cancel_event.set()
            self._condition.notify_all()
        if dropped:
            logger.warning(f"ConversionQueue shut down with {dropped} conversion(s) not started.")

        current = threading.current_thread()
        for worker in self._workers:
            if worker is not current:
                worker.join()
        logger.debug("ConversionQueue workers stopped.")

    # --- Workers ---

    def _take(self) -> Optional[Tuple[Conversion, threading.Event]]:
        with self._condition:
            while not self._stopping and not (self._gate_open and self._items):
                self._condition.wait()
            if self._stopping:
                return None
            return self._items.popleft(), self._cancel_event

    def _worker_loop(self):
        while True:
            taken = self._take()
            if taken is None:
                return
            conversion, cancel_event = taken
            try:
                self._process(conversion, cancel_event)
            finally:
                self._mark_finished()

    def _mark_finished(self):
        with self._condition:
            self._unfinished -= 1
            self._condition.notify_all()

    def _next_sequence(self) -> Tuple[int, int]:
        with self._condition:
            self._number += 1
            return self._number, self._total

    def _process(self, conversion: Conversion, cancel_event: threading.Event):
        sequence: Optional[int] = None
        total = 0
        try:
            conversion.start(cancel_event=cancel_event)
            sequence, total = self._next_sequence()
            logger.info(f"[{sequence}/{total}] Converted: {conversion!r}")
            for listener in list(self._converted_listeners):
                listener(sequence, total, conversion)
        except Exception as e:
            if sequence is None:
                sequence, total = self._next_sequence()
            logger.error(f"[{sequence}/{total}] Failed: {conversion!r}: {type(e).__name__}: {getattr(e, 'message', e)}")
            for listener in list(self._exception_listeners):
                try:
                    listener(sequence, total, conversion, e)
                except Exception:
                    logger.exception(f"Exception observer {listener!r} raised.")
