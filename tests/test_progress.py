"""
Tests for progress tracking and rendering
"""
import logging
import threading

import pytest

from progress import ProgressInfo, ProgressState, report, run_with_progress


class TestProgressState:

    def test_relative_updates_add_up(self):
        state = ProgressState()
        state.update(ProgressInfo(namespaces_total=3), relative=False)
        state.update(ProgressInfo(workloads_total=4), relative=True)
        state.update(ProgressInfo(workloads_done=1), relative=True)
        state.update(ProgressInfo(workloads_done=1, namespaces_done=1), relative=True)
        assert state.snapshot() == ProgressInfo(namespaces_total=3, namespaces_done=1, workloads_total=4, workloads_done=2)

    def test_absolute_update_replaces(self):
        state = ProgressState()
        state.update(ProgressInfo(workloads_done=5), relative=True)
        state.update(ProgressInfo(namespaces_total=2), relative=False)
        assert state.snapshot() == ProgressInfo(namespaces_total=2)

    def test_snapshot_is_a_copy(self):
        state = ProgressState()
        snap = state.snapshot()
        snap.workloads_done = 99
        assert state.snapshot().workloads_done == 0

    def test_concurrent_updates_are_not_lost(self):
        state = ProgressState()

        def worker():
            for _ in range(1000):
                state.update(ProgressInfo(workloads_done=1), relative=True)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert state.snapshot().workloads_done == 8000


class TestRunWithProgress:

    def test_returns_result_and_renders_final_frame(self):
        frames = []

        def runner(callback):
            report(callback, relative=False, namespaces_total=1)
            report(callback, workloads_total=2)
            report(callback, workloads_done=2, namespaces_done=1)
            return "done"

        result = run_with_progress(runner, render=lambda info, elapsed, final: frames.append((info, final)),
                                   interval=0.001)

        assert result == "done"
        last_info, last_final = frames[-1]
        assert last_final is True
        assert last_info == ProgressInfo(namespaces_total=1, namespaces_done=1, workloads_total=2, workloads_done=2)
        assert [final for _, final in frames].count(True) == 1

    def test_final_frame_is_logged(self, caplog):
        with caplog.at_level(logging.DEBUG, logger="progress"):
            run_with_progress(lambda callback: report(callback, workloads_done=3),
                              render=lambda info, elapsed, final: None, interval=0.001)
        assert "Collection finished" in caplog.text
        assert "workloads_done=3" in caplog.text

    def test_runner_error_is_reraised_after_final_frame(self):
        frames = []

        def runner(callback):
            raise RuntimeError("collection failed")

        with pytest.raises(RuntimeError, match="collection failed"):
            run_with_progress(runner, render=lambda info, elapsed, final: frames.append(final), interval=0.001)
        assert frames[-1] is True


def test_report_without_callback_is_noop():
    report(None, workloads_done=1)
