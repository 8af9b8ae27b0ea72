"""Background batch worker.

Runs one BatchJob at a time on a daemon thread so the caller (CLI, server)
stays responsive. The job is deep-copied at submission; the worker never
shares provider or market objects with the caller.

Messages are posted to a queue in this order:

    progress* -> done | error | cancelled

Exactly one terminal message is posted per job and it is always last.
Cancelling discards everything computed so far. Failures are reported once
and never retried; re-submit the job to retry.

Usage:
    worker = BatchWorker()
    worker.submit(job)
    results = worker.wait(on_progress=lambda p, t, ms: print(p, t))
"""

import logging
import queue
import threading
from typing import Callable, Iterator, Optional, Union

from .runner import BatchCancelledError, run_batch
from .schemas import (
    BatchJob,
    BatchResults,
    CancelledMessage,
    DoneMessage,
    ErrorMessage,
    ProgressMessage,
)

logger = logging.getLogger(__name__)

WorkerMessage = Union[ProgressMessage, DoneMessage, ErrorMessage, CancelledMessage]
TERMINAL_TYPES = ("done", "error", "cancelled")


class BatchJobError(Exception):
    """Raised when a batch job fails in the worker, or is misused."""
    pass


class BatchWorker:
    """Single-consumer background runner for batch jobs."""

    def __init__(self):
        self.messages: "queue.Queue[WorkerMessage]" = queue.Queue()
        self._cancel = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def submit(self, job: BatchJob) -> None:
        """Start processing a job on a background thread.

        Raises:
            BatchJobError: If a job is already running
        """
        if self.is_running:
            raise BatchJobError("A batch job is already running on this worker")

        job = job.model_copy(deep=True)
        self.messages = queue.Queue()
        self._cancel.clear()
        self._thread = threading.Thread(target=self._run, args=(job,), daemon=True)
        self._thread.start()

    def cancel(self) -> None:
        """Request cancellation; the run stops before the next provider."""
        self._cancel.set()

    def join(self, timeout: Optional[float] = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)

    def _run(self, job: BatchJob) -> None:
        def progress_cb(processed: int, total: int, elapsed_ms: int) -> None:
            self.messages.put(ProgressMessage(processed=processed, total=total, elapsed_ms=elapsed_ms))

        try:
            results = run_batch(
                job.providers,
                job.market_rows,
                job.scenarios,
                synonym_map=job.synonym_map,
                on_progress=progress_cb,
                chunk_size=job.chunk_size,
                should_cancel=self._cancel.is_set,
            )
        except BatchCancelledError:
            self.messages.put(CancelledMessage())
        except Exception as e:
            logger.warning(f"batch worker failed: {e}")
            self.messages.put(ErrorMessage(error=str(e) or e.__class__.__name__))
        else:
            self.messages.put(DoneMessage(results=results))

    def iter_messages(self, timeout: Optional[float] = None) -> Iterator[WorkerMessage]:
        """Yield messages until (and including) the terminal one.

        Raises:
            BatchJobError: If no job was submitted
            queue.Empty: If a message does not arrive within timeout
        """
        if self._thread is None:
            raise BatchJobError("No batch job submitted")
        while True:
            message = self.messages.get(timeout=timeout)
            yield message
            if message.type in TERMINAL_TYPES:
                return

    def wait(
        self,
        on_progress: Optional[Callable[[int, int, int], None]] = None,
        timeout: Optional[float] = None,
    ) -> BatchResults:
        """Block until the job finishes, forwarding progress.

        Returns:
            BatchResults from the done message

        Raises:
            BatchJobError: If the job failed
            BatchCancelledError: If the job was cancelled
        """
        for message in self.iter_messages(timeout=timeout):
            if message.type == "progress":
                if on_progress:
                    on_progress(message.processed, message.total, message.elapsed_ms)
            elif message.type == "done":
                return message.results
            elif message.type == "error":
                raise BatchJobError(message.error)
            else:
                raise BatchCancelledError("Batch job was cancelled")
        raise BatchJobError("Worker stopped without a terminal message")
