"""batch - Run the scenario engine across many providers and scenarios.

Scope:
- Provider -> market specialty matching and synonym suggestions (matching.py)
- Synchronous driver with chunked progress callbacks (runner.py)
- Background worker with a progress/terminal message queue (worker.py)
- Wide CSV export (export.py)

Constraints:
- Match status and risk level are assigned here, never by the engine
- A batch run is all-or-nothing: cancellation or failure yields no rows

Usage:
    from cfmodel.sdk.batch import BatchJob, BatchWorker

    worker = BatchWorker()
    worker.submit(BatchJob(providers=providers, market_rows=market_rows, scenarios=scenarios))
    results = worker.wait()
"""

from .matching import (
    normalize_specialty_key,
    match_market_row,
    specialty_similarity,
    suggest_specialty_mappings,
)
from .runner import run_batch, derive_risk_level, BatchCancelledError, DEFAULT_CHUNK_SIZE
from .worker import BatchWorker, BatchJobError
from .export import export_batch_csv, batch_to_records
from .schemas import (
    BatchJob,
    BatchResults,
    BatchRowResult,
    MatchMarketResult,
    ProgressMessage,
    DoneMessage,
    ErrorMessage,
    CancelledMessage,
)

__all__ = [
    # Matching
    "normalize_specialty_key",
    "match_market_row",
    "specialty_similarity",
    "suggest_specialty_mappings",
    # Driver
    "run_batch",
    "derive_risk_level",
    "BatchCancelledError",
    "DEFAULT_CHUNK_SIZE",
    # Worker
    "BatchWorker",
    "BatchJobError",
    # Export
    "export_batch_csv",
    "batch_to_records",
    # Schemas
    "BatchJob",
    "BatchResults",
    "BatchRowResult",
    "MatchMarketResult",
    "ProgressMessage",
    "DoneMessage",
    "ErrorMessage",
    "CancelledMessage",
]
