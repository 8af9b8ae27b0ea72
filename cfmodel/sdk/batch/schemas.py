"""Batch-specific schemas.

These schemas are used by the batch driver and depend on core schemas
from cfmodel.sdk.schemas.
"""

from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..config import DEFAULT_CHUNK_SIZE
from ..schemas import BatchScenarioPreset, MarketRow, ProviderRow, ScenarioInputs, ScenarioResults


MarketMatchStatus = Literal["Exact", "Synonym", "Missing"]
BatchRiskLevel = Literal["high", "medium", "low"]
SynonymMap = Dict[str, str]


class MatchMarketResult(BaseModel):
    """How a provider's specialty was matched to a market row."""

    market_row: Optional[MarketRow] = None
    status: MarketMatchStatus = "Missing"
    matched_key: Optional[str] = Field(None, description="Market specialty that matched")


class BatchRowResult(BaseModel):
    """One provider x one scenario."""

    provider_index: int = Field(0, description="Position of the provider in the uploaded file")
    provider_id: str
    provider_name: str
    specialty: str
    division: str
    provider_type: str = ""
    scenario_id: str
    scenario_name: str
    scenario_inputs_snapshot: ScenarioInputs
    results: Optional[ScenarioResults] = Field(None, description="None when no market row matched")
    match_status: MarketMatchStatus
    matched_market_specialty: Optional[str] = None
    warnings: List[str] = Field(default_factory=list)
    risk_level: BatchRiskLevel


class BatchResults(BaseModel):
    """Full output of a batch run."""

    rows: List[BatchRowResult]
    run_at: str = Field(..., description="ISO timestamp of the run")
    scenario_count: int
    provider_count: int


class BatchJob(BaseModel):
    """Everything a background batch run needs, copied at submission."""

    model_config = ConfigDict(extra="forbid")

    providers: List[ProviderRow]
    market_rows: List[MarketRow]
    scenarios: List[BatchScenarioPreset] = Field(default_factory=list)
    synonym_map: SynonymMap = Field(default_factory=dict)
    chunk_size: int = Field(DEFAULT_CHUNK_SIZE, gt=0)


class ProgressMessage(BaseModel):
    """Worker progress; processed is monotonically increasing per job."""

    type: Literal["progress"] = "progress"
    processed: int
    total: int
    elapsed_ms: int


class DoneMessage(BaseModel):
    """Terminal message carrying the complete results."""

    type: Literal["done"] = "done"
    results: BatchResults


class ErrorMessage(BaseModel):
    """Terminal message for a failed job; no partial results."""

    type: Literal["error"] = "error"
    error: str


class CancelledMessage(BaseModel):
    """Terminal message for a cancelled job; in-flight results are discarded."""

    type: Literal["cancelled"] = "cancelled"
