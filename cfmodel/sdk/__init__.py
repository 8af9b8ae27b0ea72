"""cf-model SDK - Core functionality for provider compensation modeling."""

from .config import (
    get_config_dir,
    get_settings_path,
    load_settings,
    save_settings,
    get_setting,
    set_setting,
    get_chunk_size,
    get_synonyms_path,
    load_synonym_map,
    save_synonym_map,
    ConfigError,
    DEFAULT_CHUNK_SIZE,
)

from .schemas import (
    BasePayComponent,
    ProviderRow,
    MarketRow,
    ScenarioInputs,
    ScenarioResults,
    BatchScenarioPreset,
    RiskAssessment,
    GovernanceFlags,
)

from .interpolation import (
    interp_percentile,
    infer_percentile,
    clamp_percentile,
    PercentileResult,
    run_interpolation_self_check,
    InterpolationCheckError,
)

from .compute import compute_scenario

from .scenario import (
    DEFAULT_SCENARIO_INPUTS,
    apply_scenario_patch,
    load_scenarios,
    ScenarioPatchError,
)

from .upload import (
    load_provider_rows,
    load_market_rows,
    to_num,
    UploadError,
)

from .compare import (
    summarize_scenario,
    compare_scenarios,
    ScenarioComparison,
    ScenarioRollup,
    ScenarioNotFoundError,
)

from .optimizer import (
    OptimizerSettings,
    run_optimizer,
    run_cf_sweep,
    imputed_vs_market,
    detect_outliers,
)

from . import batch

__all__ = [
    # Config
    "get_config_dir",
    "get_settings_path",
    "load_settings",
    "save_settings",
    "get_setting",
    "set_setting",
    "get_chunk_size",
    "get_synonyms_path",
    "load_synonym_map",
    "save_synonym_map",
    "ConfigError",
    "DEFAULT_CHUNK_SIZE",
    # Schemas
    "BasePayComponent",
    "ProviderRow",
    "MarketRow",
    "ScenarioInputs",
    "ScenarioResults",
    "BatchScenarioPreset",
    "RiskAssessment",
    "GovernanceFlags",
    # Interpolation
    "interp_percentile",
    "infer_percentile",
    "clamp_percentile",
    "PercentileResult",
    "run_interpolation_self_check",
    "InterpolationCheckError",
    # Engine
    "compute_scenario",
    # Scenarios
    "DEFAULT_SCENARIO_INPUTS",
    "apply_scenario_patch",
    "load_scenarios",
    "ScenarioPatchError",
    # Upload
    "load_provider_rows",
    "load_market_rows",
    "to_num",
    "UploadError",
    # Compare
    "summarize_scenario",
    "compare_scenarios",
    "ScenarioComparison",
    "ScenarioRollup",
    "ScenarioNotFoundError",
    # Optimizer
    "OptimizerSettings",
    "run_optimizer",
    "run_cf_sweep",
    "imputed_vs_market",
    "detect_outliers",
    # Modules
    "batch",
]
