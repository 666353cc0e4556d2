"""Progress reporting for long-running collection.

The producer runs in a worker thread and reports through a callback of
shape `(info, relative)`; the calling thread polls a shared, lock-protected
counter and renders it until the producer signals completion.
"""
import logging
import queue
import sys
import threading
import time
from dataclasses import dataclass, replace
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)

POLL_INTERVAL_SECONDS = 0.1


@dataclass
class ProgressInfo:
    namespaces_total: int = 0
    namespaces_done: int = 0
    workloads_total: int = 0
    workloads_done: int = 0


# callback signature: (info, relative) -> None; relative updates are added, absolute ones replace
ProgressCallback = Callable[[ProgressInfo, bool], None]


class ProgressState:
    def __init__(self):
        self._lock = threading.Lock()
        self._info = ProgressInfo()

    def update(self, info: ProgressInfo, relative: bool) -> None:
        with self._lock:
            if relative:
                self._info.namespaces_total += info.namespaces_total
                self._info.namespaces_done += info.namespaces_done
                self._info.workloads_total += info.workloads_total
                self._info.workloads_done += info.workloads_done
            else:
                self._info = replace(info)

    def snapshot(self) -> ProgressInfo:
        with self._lock:
            return replace(self._info)


def render_progress(info: ProgressInfo, elapsed: float, final: bool) -> None:
    sys.stderr.write(
        f"\rCollecting data ({elapsed:.1f}s): {info.namespaces_done} of {info.namespaces_total} namespace(s) "
        f"and {info.workloads_done} of {info.workloads_total} application(s) completed... "
    )
    if final:
        sys.stderr.write("done.\n\n")
    sys.stderr.flush()


def run_with_progress(runner: Callable[[ProgressCallback], Any],
                      render: Callable[[ProgressInfo, float, bool], None] = render_progress,
                      interval: float = POLL_INTERVAL_SECONDS) -> Any:
    """Run `runner(callback)` in a thread while rendering its progress.

    Returns the runner's result, or re-raises its exception after the final
    render.
    """
    state = ProgressState()
    done: "queue.Queue[tuple]" = queue.Queue(maxsize=1)

    def _produce():
        try:
            done.put((runner(state.update), None))
        except BaseException as e:
            done.put((None, e))

    start = time.monotonic()
    render(state.snapshot(), 0.0, False)
    producer = threading.Thread(target=_produce, name="collector", daemon=True)
    producer.start()

    while True:
        try:
            result, error = done.get_nowait()
            break
        except queue.Empty:
            render(state.snapshot(), time.monotonic() - start, False)
            time.sleep(interval)
    producer.join()
    final = state.snapshot()
    elapsed = time.monotonic() - start
    render(final, elapsed, True)
    logger.debug(f"Collection finished in {elapsed:.1f}s: {final}")

    if error is not None:
        raise error
    return result


def report(callback: Optional[ProgressCallback], relative: bool = True, **counts: int) -> None:
    """Invoke an optional progress callback with the given counter values."""
    if callback is not None:
        callback(ProgressInfo(**counts), relative)
