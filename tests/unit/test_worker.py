"""Tests for the background batch worker.

The worker must post progress messages first and exactly one terminal
message last. run_batch is replaced with controllable fakes where timing
matters.
"""

import threading

import pytest

from cfmodel.sdk.batch import worker as worker_module
from cfmodel.sdk.batch import BatchCancelledError, BatchJob, BatchJobError, BatchResults, BatchWorker
from cfmodel.sdk.schemas import BatchScenarioPreset, MarketRow, ProviderRow, ScenarioInputs


TIMEOUT = 10


# === FIXTURES ===

def make_job(n=5, chunk_size=2) -> BatchJob:
    market = MarketRow(
        specialty="Cardiology",
        tcc_25=300000, tcc_50=400000, tcc_75=500000, tcc_90=600000,
        wrvu_25=6000, wrvu_50=7000, wrvu_75=8000, wrvu_90=9000,
        cf_25=40, cf_50=50, cf_75=60, cf_90=70,
    )
    providers = [
        ProviderRow(provider_id=f"P{i}", specialty="Cardiology", base_salary=300000, work_rvus=7000, current_cf=50)
        for i in range(n)
    ]
    scenarios = [
        BatchScenarioPreset(id="current", name="Current"),
        BatchScenarioPreset(id="raise", name="Raise", scenario_inputs=ScenarioInputs(proposed_cf_percentile=65)),
    ]
    return BatchJob(providers=providers, market_rows=[market], scenarios=scenarios, chunk_size=chunk_size)


class TestWorkerSuccess:

    def test_progress_then_done(self):
        worker = BatchWorker()
        worker.submit(make_job())

        messages = list(worker.iter_messages(timeout=TIMEOUT))

        types = [m.type for m in messages]
        assert types[-1] == "done"
        assert set(types[:-1]) == {"progress"}
        processed = [m.processed for m in messages[:-1]]
        assert processed == sorted(processed)
        assert processed[-1] == 10
        assert len(messages[-1].results.rows) == 10

    def test_wait_returns_results_and_forwards_progress(self):
        seen = []
        worker = BatchWorker()
        worker.submit(make_job(n=3))

        results = worker.wait(on_progress=lambda p, t, ms: seen.append((p, t)), timeout=TIMEOUT)

        assert results.provider_count == 3
        assert seen[-1] == (6, 6)

    def test_job_is_copied(self, monkeypatch):
        captured = {}

        def fake_run_batch(providers, market_rows, scenarios, **kwargs):
            captured["providers"] = providers
            return BatchResults(rows=[], run_at="now", scenario_count=0, provider_count=0)

        monkeypatch.setattr(worker_module, "run_batch", fake_run_batch)
        job = make_job(n=2)
        worker = BatchWorker()
        worker.submit(job)
        worker.wait(timeout=TIMEOUT)

        assert captured["providers"] == job.providers
        assert captured["providers"][0] is not job.providers[0]

    def test_worker_reusable(self):
        worker = BatchWorker()
        worker.submit(make_job(n=1))
        worker.wait(timeout=TIMEOUT)
        worker.join(TIMEOUT)

        worker.submit(make_job(n=2))
        assert worker.wait(timeout=TIMEOUT).provider_count == 2


class TestWorkerFailure:

    def test_error_is_terminal_message(self, monkeypatch):
        def failing_run_batch(*args, **kwargs):
            raise RuntimeError("boom")

        monkeypatch.setattr(worker_module, "run_batch", failing_run_batch)
        worker = BatchWorker()
        worker.submit(make_job())

        messages = list(worker.iter_messages(timeout=TIMEOUT))
        assert [m.type for m in messages] == ["error"]
        assert messages[0].error == "boom"

    def test_wait_raises_job_error(self, monkeypatch):
        def failing_run_batch(*args, **kwargs):
            raise RuntimeError("boom")

        monkeypatch.setattr(worker_module, "run_batch", failing_run_batch)
        worker = BatchWorker()
        worker.submit(make_job())
        with pytest.raises(BatchJobError, match="boom"):
            worker.wait(timeout=TIMEOUT)

    def test_wait_without_submit(self):
        with pytest.raises(BatchJobError):
            BatchWorker().wait(timeout=TIMEOUT)


class TestWorkerCancel:

    def test_cancel_discards_results(self, monkeypatch):
        started = threading.Event()

        def slow_run_batch(providers, market_rows, scenarios, on_progress=None, should_cancel=None, **kwargs):
            on_progress(1, 10, 0)
            started.set()
            while not should_cancel():
                threading.Event().wait(0.01)
            raise BatchCancelledError("cancelled")

        monkeypatch.setattr(worker_module, "run_batch", slow_run_batch)
        worker = BatchWorker()
        worker.submit(make_job())
        assert started.wait(TIMEOUT)
        worker.cancel()

        messages = list(worker.iter_messages(timeout=TIMEOUT))
        assert [m.type for m in messages] == ["progress", "cancelled"]
        assert not any(m.type == "done" for m in messages)

    def test_wait_raises_cancelled(self, monkeypatch):
        def cancelled_run_batch(*args, **kwargs):
            raise BatchCancelledError("cancelled")

        monkeypatch.setattr(worker_module, "run_batch", cancelled_run_batch)
        worker = BatchWorker()
        worker.submit(make_job())
        with pytest.raises(BatchCancelledError):
            worker.wait(timeout=TIMEOUT)

    def test_submit_while_running(self, monkeypatch):
        release = threading.Event()

        def blocking_run_batch(*args, **kwargs):
            release.wait(TIMEOUT)
            raise BatchCancelledError("stopped")

        monkeypatch.setattr(worker_module, "run_batch", blocking_run_batch)
        worker = BatchWorker()
        worker.submit(make_job())
        try:
            with pytest.raises(BatchJobError, match="already running"):
                worker.submit(make_job())
        finally:
            release.set()
            worker.join(TIMEOUT)
