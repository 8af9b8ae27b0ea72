"""Tests for the batch driver, risk levels and CSV export."""

import csv
import io

import pytest

from cfmodel.sdk.batch import (
    BatchCancelledError,
    derive_risk_level,
    export_batch_csv,
    run_batch,
)
from cfmodel.sdk.batch.schemas import BatchResults
from cfmodel.sdk.schemas import (
    BatchScenarioPreset,
    GovernanceFlags,
    MarketRow,
    ProviderRow,
    RiskAssessment,
    ScenarioInputs,
    ScenarioResults,
)


# === FIXTURES ===

def make_market(specialty="Cardiology") -> MarketRow:
    return MarketRow(
        specialty=specialty,
        tcc_25=300000, tcc_50=400000, tcc_75=500000, tcc_90=600000,
        wrvu_25=6000, wrvu_50=7000, wrvu_75=8000, wrvu_90=9000,
        cf_25=40, cf_50=50, cf_75=60, cf_90=70,
    )


def make_providers(n: int, specialty="Cardiology"):
    return [
        ProviderRow(
            provider_id=f"P{i:03d}",
            provider_name=f"Provider {i}",
            specialty=specialty,
            base_salary=350000,
            work_rvus=7000,
            current_cf=50,
        )
        for i in range(n)
    ]


SCENARIOS = [
    BatchScenarioPreset(id="current", name="Current"),
    BatchScenarioPreset(id="raise", name="60th", scenario_inputs=ScenarioInputs(proposed_cf_percentile=60)),
]


def make_results(**overrides) -> ScenarioResults:
    data = dict(
        current_cf=50, modeled_cf=50, current_incentive=0, annual_incentive=0,
        current_tcc=0, modeled_tcc=0, change_in_tcc=0, current_psq_dollars=0, psq_dollars=0,
        total_wrvus=5000, modeled_work_wrvus=5000, modeled_other_wrvus=0, wrvus_above_threshold=0,
        annual_threshold=0, current_tcc_from_file=False,
        imputed_tcc_per_wrvu_ratio_current=0, imputed_tcc_per_wrvu_ratio_modeled=0,
    )
    data.update(overrides)
    return ScenarioResults(**data)


class TestRunBatch:

    def test_rows_per_provider_per_scenario(self):
        results = run_batch(make_providers(3), [make_market()], SCENARIOS)

        assert len(results.rows) == 6
        assert results.provider_count == 3
        assert results.scenario_count == 2
        assert [r.scenario_id for r in results.rows[:2]] == ["current", "raise"]
        assert all(r.match_status == "Exact" for r in results.rows)
        assert results.rows[1].results.modeled_cf == pytest.approx(54)

    def test_empty_scenarios_runs_current(self):
        results = run_batch(make_providers(2), [make_market()], [])
        assert results.scenario_count == 1
        assert {r.scenario_name for r in results.rows} == {"Current"}
        # Inherit-everything scenario reproduces the baseline CF
        assert results.rows[0].results.modeled_cf == 50

    def test_missing_market_rows(self):
        providers = make_providers(1) + make_providers(1, specialty="Dermatology")
        results = run_batch(providers, [make_market()], SCENARIOS)

        missing = [r for r in results.rows if r.match_status == "Missing"]
        assert len(missing) == 2
        for row in missing:
            assert row.results is None
            assert row.risk_level == "high"
            assert "Market missing for specialty: Dermatology" in row.warnings

    def test_synonym_map(self):
        providers = make_providers(1, specialty="Cardiology - Invasive")
        results = run_batch(providers, [make_market()], SCENARIOS, synonym_map={"Cardiology - Invasive": "Cardiology"})
        assert results.rows[0].match_status == "Synonym"
        assert results.rows[0].matched_market_specialty == "Cardiology"

    def test_snapshot_of_inputs(self):
        results = run_batch(make_providers(1), [make_market()], SCENARIOS)
        assert results.rows[1].scenario_inputs_snapshot.proposed_cf_percentile == 60

    def test_progress_monotonic_with_final_call(self):
        calls = []
        run_batch(
            make_providers(7), [make_market()], SCENARIOS,
            on_progress=lambda p, t, ms: calls.append((p, t, ms)),
            chunk_size=4,
        )

        processed = [c[0] for c in calls]
        assert processed == sorted(processed)
        assert len(set(processed)) == len(processed)
        assert calls[-1][0] == calls[-1][1] == 14
        assert all(ms >= 0 for _, _, ms in calls)

    def test_progress_single_final_call_when_chunk_large(self):
        calls = []
        run_batch(make_providers(3), [make_market()], SCENARIOS, on_progress=lambda *a: calls.append(a))
        assert [c[0] for c in calls] == [6]

    def test_no_providers(self):
        calls = []
        results = run_batch([], [make_market()], SCENARIOS, on_progress=lambda *a: calls.append(a))
        assert results.rows == []
        assert calls[-1][:2] == (0, 0)

    def test_cancel(self):
        with pytest.raises(BatchCancelledError):
            run_batch(make_providers(3), [make_market()], SCENARIOS, should_cancel=lambda: True)

    def test_invalid_chunk_size(self):
        with pytest.raises(ValueError):
            run_batch(make_providers(1), [make_market()], SCENARIOS, chunk_size=0)


class TestDeriveRiskLevel:

    def test_low(self):
        assert derive_risk_level(make_results(governance_flags=GovernanceFlags())) == "low"

    def test_medium_on_warnings(self):
        assert derive_risk_level(make_results(warnings=["low wRVUs"])) == "medium"
        assert derive_risk_level(make_results(risk=RiskAssessment(warnings=["off-scale"]))) == "medium"

    def test_high(self):
        assert derive_risk_level(make_results(risk=RiskAssessment(high_risk=["FTE"]))) == "high"
        assert derive_risk_level(make_results(governance_flags=GovernanceFlags(underpay_risk=True))) == "high"
        assert derive_risk_level(make_results(governance_flags=GovernanceFlags(fmv_check_suggested=True))) == "high"


class TestExport:

    def test_csv_one_row_per_result(self):
        providers = make_providers(2) + make_providers(1, specialty="Dermatology")
        results = run_batch(providers, [make_market()], SCENARIOS)

        rows = list(csv.DictReader(io.StringIO(export_batch_csv(results))))

        assert len(rows) == 6
        assert rows[0]["provider_id"] == "P000"
        assert rows[0]["match_status"] == "Exact"
        assert rows[0]["underpay_risk"] in ("Y", "N")
        missing = [r for r in rows if r["match_status"] == "Missing"]
        assert missing and all(r["modeled_tcc"] == "" for r in missing)

    def test_empty(self):
        empty = BatchResults(rows=[], run_at="2026-01-01T00:00:00+00:00", scenario_count=1, provider_count=0)
        assert export_batch_csv(empty) == ""
