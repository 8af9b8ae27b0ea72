"""Tests for the compensation scenario engine.

Tests compute_scenario() end to end with small synthetic providers:
- CF resolution (percentile x factor, override, inherit, no market)
- Threshold and incentive, including negative incentive handling
- wRVU overrides and the work/other split
- PSQ basis and clamping
- Baseline TCC from file vs components
- Percentiles, alignment gaps, governance flags and risk
- Dirty input (None / NaN / inf) never raises
"""

import math

import pytest

from cfmodel.sdk.compute import (
    compute_scenario,
    get_base_pay_total,
    get_clinical_base,
    get_non_clinical_pay,
    num,
    resolve_modeled_wrvus,
    round_cents,
    round_wrvus,
)
from cfmodel.sdk.schemas import BasePayComponent, MarketRow, ProviderRow, ScenarioInputs


# === FIXTURES ===

def make_market(**overrides) -> MarketRow:
    """Market row with round-number bands."""
    data = dict(
        specialty="Cardiology",
        tcc_25=300000, tcc_50=400000, tcc_75=500000, tcc_90=600000,
        wrvu_25=6000, wrvu_50=7000, wrvu_75=8000, wrvu_90=9000,
        cf_25=40, cf_50=50, cf_75=60, cf_90=70,
    )
    data.update(overrides)
    return MarketRow(**data)


def make_provider(**overrides) -> ProviderRow:
    """Full-time provider: $200k base, 5,000 wRVUs, $50 CF."""
    data = dict(
        provider_id="P001",
        provider_name="Dr. Test",
        specialty="Cardiology",
        total_fte=1.0,
        clinical_fte=1.0,
        base_salary=200000,
        work_rvus=5000,
        total_wrvus=5000,
        current_cf=50,
    )
    data.update(overrides)
    return ProviderRow(**data)


class TestConcreteScenarios:
    """Hand-computed scenarios."""

    def test_median_cf_with_modeled_wrvus(self):
        """$200k base, 50th CF = $50, 5,000 wRVUs -> $50k incentive."""
        provider = ProviderRow(base_salary=200000)
        scenario = ScenarioInputs(proposed_cf_percentile=50, modeled_wrvus=5000)

        r = compute_scenario(provider, make_market(), scenario)

        assert r.modeled_cf == pytest.approx(50)
        assert r.annual_threshold == pytest.approx(4000)
        assert r.wrvus_above_threshold == pytest.approx(1000)
        assert r.annual_incentive == pytest.approx(50000)
        assert r.psq_dollars == 0
        assert r.modeled_tcc == pytest.approx(250000)

    def test_override_cf_ignores_percentile(self):
        for pct in (0, 25, 50, 90, 100):
            scenario = ScenarioInputs(cf_source="override", override_cf=55, proposed_cf_percentile=pct)
            r = compute_scenario(make_provider(), make_market(), scenario)
            assert r.modeled_cf == 55

    def test_override_without_value_falls_back_to_percentile(self):
        scenario = ScenarioInputs(cf_source="override", proposed_cf_percentile=75)
        r = compute_scenario(make_provider(), make_market(), scenario)
        assert r.modeled_cf == pytest.approx(60)

    def test_adjustment_factor_applies_to_percentile_cf(self):
        scenario = ScenarioInputs(proposed_cf_percentile=50, cf_adjustment_factor=0.9)
        r = compute_scenario(make_provider(), make_market(), scenario)
        assert r.modeled_cf == pytest.approx(45)

    def test_all_dirty_fields_never_raise(self):
        nan = float("nan")
        provider = ProviderRow(
            total_fte=nan, clinical_fte=nan, base_salary=nan, clinical_fte_salary=None,
            non_clinical_pay=float("inf"), work_rvus=nan, outside_wrvus=None, total_wrvus=nan,
            current_cf=nan, current_threshold=nan, quality_payments=nan, other_incentives=nan,
            current_tcc=nan,
        )

        r = compute_scenario(provider, make_market(), ScenarioInputs())

        for name, value in r.model_dump().items():
            if isinstance(value, float):
                assert math.isfinite(value), name
        assert r.current_tcc == 0
        assert r.modeled_tcc == 0
        assert r.annual_threshold == 0

    def test_huge_override_never_raises(self):
        scenario = ScenarioInputs(modeled_base_pay=1e307, modeled_wrvus=1e307, override_cf=1e307)

        r = compute_scenario(ProviderRow(base_salary=1), make_market(), scenario)

        for name, value in r.model_dump().items():
            if isinstance(value, float):
                assert math.isfinite(value), name

    def test_empty_provider_no_market(self):
        r = compute_scenario(ProviderRow(), None, ScenarioInputs())
        assert r.modeled_tcc == 0
        assert r.tcc_percentile is None
        assert r.governance_flags is None


class TestCFResolution:
    """Where the modeled CF comes from."""

    def test_no_market_uses_current_cf(self):
        scenario = ScenarioInputs(proposed_cf_percentile=90)
        r = compute_scenario(make_provider(current_cf=47.5), None, scenario)
        assert r.modeled_cf == 47.5
        assert r.modeled_tcc_percentile is None
        assert r.wrvu_percentile is None
        assert r.alignment_gap_modeled is None

    def test_no_percentile_inherits_current_cf(self):
        r = compute_scenario(make_provider(current_cf=52), make_market(), ScenarioInputs())
        assert r.modeled_cf == 52

    def test_no_percentile_no_current_cf_uses_median(self):
        r = compute_scenario(make_provider(current_cf=None), make_market(), ScenarioInputs())
        assert r.modeled_cf == pytest.approx(50)

    def test_percentile_clamped(self):
        r = compute_scenario(make_provider(), make_market(), ScenarioInputs(proposed_cf_percentile=250))
        assert r.modeled_cf == pytest.approx(70 + 10 / 15 * 10)


class TestZeroCF:
    """A zero CF never produces NaN or infinity."""

    def test_zero_override_cf(self):
        scenario = ScenarioInputs(cf_source="override", override_cf=0)
        r = compute_scenario(make_provider(), make_market(), scenario)

        assert r.modeled_cf == 0
        assert r.annual_threshold == 0
        assert r.annual_incentive == 0
        assert r.imputed_tcc_per_wrvu_ratio_modeled == 0
        assert r.modeled_tcc == pytest.approx(200000)

    def test_zero_current_cf(self):
        r = compute_scenario(make_provider(current_cf=0), None, ScenarioInputs())
        assert r.current_incentive == 0
        assert r.current_tcc == pytest.approx(200000)


class TestIncentive:
    """Threshold, incentive and negative-incentive exclusion."""

    def test_negative_incentive_reported_but_excluded(self):
        provider = make_provider(quality_payments=5000, other_incentives=2500)
        scenario = ScenarioInputs(proposed_cf_percentile=50, modeled_wrvus=3000, psq_percent=2)

        r = compute_scenario(provider, make_market(), scenario)

        # threshold 4,000; 1,000 short at $50
        assert r.annual_incentive == pytest.approx(-50000)
        assert r.wrvus_above_threshold == 0
        psq = 200000 * 0.02
        assert r.psq_dollars == pytest.approx(psq)
        assert r.modeled_tcc == pytest.approx(200000 + 0 + psq + 5000 + 2500)

    def test_current_threshold_from_file(self):
        provider = make_provider(current_threshold=4500)
        r = compute_scenario(provider, make_market(), ScenarioInputs())
        assert r.current_incentive == pytest.approx((5000 - 4500) * 50)

    def test_clinical_salary_drives_threshold(self):
        provider = make_provider(base_salary=250000, clinical_fte_salary=200000)
        scenario = ScenarioInputs(cf_source="override", override_cf=50)
        r = compute_scenario(provider, make_market(), scenario)
        assert r.annual_threshold == pytest.approx(4000)

    def test_non_clinical_pay_reduces_threshold(self):
        provider = make_provider(base_salary=250000, non_clinical_pay=50000)
        scenario = ScenarioInputs(cf_source="override", override_cf=50)
        r = compute_scenario(provider, make_market(), scenario)
        assert r.annual_threshold == pytest.approx(4000)
        assert r.modeled_tcc == pytest.approx(250000 + 50000)

    def test_modeled_base_pay_override(self):
        scenario = ScenarioInputs(cf_source="override", override_cf=50, modeled_base_pay=150000)
        r = compute_scenario(make_provider(), make_market(), scenario)
        assert r.annual_threshold == pytest.approx(3000)
        assert r.annual_incentive == pytest.approx(100000)
        assert r.modeled_tcc == pytest.approx(250000)

    def test_raising_wrvus_never_lowers_tcc(self):
        previous = None
        for wrvus in range(0, 12000, 500):
            scenario = ScenarioInputs(proposed_cf_percentile=50, modeled_wrvus=wrvus)
            tcc = compute_scenario(make_provider(), make_market(), scenario).modeled_tcc
            if previous is not None:
                assert tcc >= previous
            previous = tcc


class TestWRVUSplit:
    """Work + other always equals total."""

    @pytest.mark.parametrize("scenario", [
        ScenarioInputs(),
        ScenarioInputs(modeled_wrvus=6000),
        ScenarioInputs(modeled_wrvus=6000, modeled_other_wrvus=500),
        ScenarioInputs(modeled_wrvus=100, modeled_other_wrvus=500),
        ScenarioInputs(modeled_work_wrvus=4000),
        ScenarioInputs(modeled_work_wrvus=4000, modeled_other_wrvus=250.555),
        ScenarioInputs(modeled_wrvus=-10),
    ])
    def test_split_invariant(self, scenario):
        provider = make_provider(outside_wrvus=300)
        r = compute_scenario(provider, make_market(), scenario)
        assert r.modeled_other_wrvus <= r.total_wrvus
        assert r.modeled_work_wrvus + r.modeled_other_wrvus == pytest.approx(r.total_wrvus, abs=0.01)
        assert r.modeled_work_wrvus >= 0

    def test_inherits_outside_wrvus(self):
        provider = make_provider(work_rvus=4700, outside_wrvus=300, total_wrvus=5000)
        assert resolve_modeled_wrvus(provider, ScenarioInputs()) == (5000, 4700, 300)

    def test_work_only_override_derives_total(self):
        provider = make_provider(outside_wrvus=300)
        total, work, other = resolve_modeled_wrvus(provider, ScenarioInputs(modeled_work_wrvus=4000))
        assert (total, work, other) == (4300, 4000, 300)

    def test_other_clamped_to_total(self):
        total, work, other = resolve_modeled_wrvus(
            make_provider(), ScenarioInputs(modeled_wrvus=100, modeled_other_wrvus=500)
        )
        assert (total, work, other) == (100, 0, 100)


class TestPSQ:

    def test_psq_on_base_salary(self):
        scenario = ScenarioInputs(proposed_cf_percentile=50, modeled_wrvus=5000, psq_percent=5)
        r = compute_scenario(make_provider(), make_market(), scenario)
        assert r.psq_dollars == pytest.approx(10000)
        assert r.modeled_tcc == pytest.approx(260000)

    def test_psq_on_total_pay(self):
        scenario = ScenarioInputs(
            proposed_cf_percentile=50, modeled_wrvus=5000, psq_percent=10, psq_basis="total_pay"
        )
        r = compute_scenario(make_provider(quality_payments=10000), make_market(), scenario)
        # 200k base + 50k incentive + 10k quality
        assert r.psq_dollars == pytest.approx(26000)

    def test_psq_clamped_to_50(self):
        scenario = ScenarioInputs(psq_percent=80)
        r = compute_scenario(make_provider(), make_market(), scenario)
        assert r.psq_dollars == pytest.approx(100000)

    def test_negative_psq_is_zero(self):
        r = compute_scenario(make_provider(), make_market(), ScenarioInputs(psq_percent=-5))
        assert r.psq_dollars == 0

    def test_current_psq_percent(self):
        r = compute_scenario(make_provider(), None, ScenarioInputs(current_psq_percent=5))
        assert r.current_psq_dollars == pytest.approx(10000)
        # 200k base + 50k incentive + 10k PSQ
        assert r.current_tcc == pytest.approx(260000)


class TestBaselineTCC:
    """Baseline TCC from file vs components."""

    def test_file_tcc_is_used_once(self):
        provider = make_provider(current_tcc=300000, quality_payments=10000)
        r = compute_scenario(provider, make_market(), ScenarioInputs())

        assert r.current_tcc == 300000
        assert r.current_tcc_from_file
        # Components sum to 260,000, so the mismatch is flagged, never reconciled
        assert any("differs" in w for w in r.warnings)

    def test_matching_file_tcc_has_no_warning(self):
        provider = make_provider(current_tcc=250000)
        r = compute_scenario(provider, make_market(), ScenarioInputs())
        assert r.current_tcc_from_file
        assert r.warnings == []

    def test_components_when_no_file_tcc(self):
        provider = make_provider(work_rvus=6000, total_wrvus=6000, quality_payments=5000)
        r = compute_scenario(provider, make_market(), ScenarioInputs())
        assert not r.current_tcc_from_file
        # 200k base + (6000 - 4000) * 50 incentive + 5k quality
        assert r.current_tcc == pytest.approx(305000)

    def test_change_in_tcc(self):
        scenario = ScenarioInputs(cf_source="override", override_cf=60)
        r = compute_scenario(make_provider(), make_market(), scenario)
        assert r.change_in_tcc == pytest.approx(r.modeled_tcc - r.current_tcc)


class TestBasePayComponents:

    def test_components_override_base_salary(self):
        provider = make_provider(
            base_salary=1,
            base_pay_components=[
                BasePayComponent(label="Clinical", amount=180000),
                BasePayComponent(label="Medical Director", amount=20000),
            ],
        )
        assert get_base_pay_total(provider) == 200000
        assert get_non_clinical_pay(provider) == 20000
        assert get_clinical_base(provider) == 180000

    def test_components_without_clinical_label(self):
        provider = make_provider(
            non_clinical_pay=15000,
            base_pay_components=[BasePayComponent(label="Salary", amount=210000)],
        )
        assert get_non_clinical_pay(provider) == 15000
        assert get_clinical_base(provider) == 195000

    def test_component_tcc(self):
        provider = make_provider(
            base_pay_components=[
                BasePayComponent(label="Clinical", amount=180000),
                BasePayComponent(label="Admin", amount=20000),
            ],
        )
        scenario = ScenarioInputs(cf_source="override", override_cf=45)
        r = compute_scenario(provider, make_market(), scenario)
        assert r.annual_threshold == pytest.approx(4000)
        assert r.modeled_tcc == pytest.approx(200000 + 1000 * 45)


class TestMarketPosition:
    """Percentiles, gaps and governance flags."""

    def test_percentiles(self):
        provider = make_provider(work_rvus=7000, total_wrvus=7000, current_tcc=400000)
        r = compute_scenario(provider, make_market(), ScenarioInputs())
        assert r.tcc_percentile == pytest.approx(50)
        assert r.wrvu_percentile == pytest.approx(50)
        assert r.cf_percentile_current == pytest.approx(50)
        assert r.alignment_gap_baseline == pytest.approx(0)

    def test_fte_normalization(self):
        provider = make_provider(
            total_fte=0.5, clinical_fte=0.5, work_rvus=3500, total_wrvus=3500, current_tcc=200000
        )
        r = compute_scenario(provider, make_market(), ScenarioInputs())
        assert r.tcc_percentile == pytest.approx(50)
        assert r.wrvu_percentile == pytest.approx(50)
        assert "Clinical FTE (0.5) < 0.7" in r.risk.high_risk

    def test_underpay_flag(self):
        provider = make_provider(work_rvus=9000, total_wrvus=9000, base_salary=150000)
        scenario = ScenarioInputs(cf_source="override", override_cf=10)
        r = compute_scenario(provider, make_market(), scenario)
        assert r.alignment_gap_modeled < -15
        assert r.governance_flags.underpay_risk
        assert r.governance_flags.cf_below_25

    def test_fmv_flag(self):
        scenario = ScenarioInputs(modeled_base_pay=700000)
        r = compute_scenario(make_provider(), make_market(), scenario)
        assert r.modeled_tcc_percentile > 75
        assert r.governance_flags.fmv_check_suggested
        assert not r.governance_flags.modeled_in_policy_band

    def test_policy_band(self):
        provider = make_provider(base_salary=400000, work_rvus=8000, total_wrvus=8000)
        r = compute_scenario(provider, make_market(), ScenarioInputs())
        assert r.governance_flags.modeled_in_policy_band

    def test_off_scale_warnings(self):
        provider = make_provider(work_rvus=500, total_wrvus=500)
        r = compute_scenario(provider, make_market(), ScenarioInputs())
        assert r.wrvu_percentile == 0
        assert r.wrvu_percentile_below_range
        assert any("wRVU percentile is off-scale" in w for w in r.risk.warnings)
        assert any("low" in w for w in r.warnings)

    def test_percentiles_clamped(self):
        provider = make_provider(current_tcc=5000000)
        r = compute_scenario(provider, make_market(), ScenarioInputs())
        assert r.tcc_percentile == 100
        assert r.tcc_percentile_above_range


class TestPurity:

    def test_identical_inputs_identical_outputs(self):
        provider = make_provider(quality_payments=1234.56)
        scenario = ScenarioInputs(proposed_cf_percentile=65, psq_percent=3)
        first = compute_scenario(provider, make_market(), scenario)
        second = compute_scenario(provider, make_market(), scenario)
        assert first == second

    def test_inputs_not_mutated(self):
        provider = make_provider()
        scenario = ScenarioInputs(modeled_wrvus=6000)
        before = (provider.model_dump(), scenario.model_dump())
        compute_scenario(provider, make_market(), scenario)
        assert (provider.model_dump(), scenario.model_dump()) == before


class TestRounding:

    @pytest.mark.parametrize("value,expected", [
        (1234.565001, 1234.57), (1e307, 0.0), (float("inf"), 0.0), (float("nan"), 0.0),
    ])
    def test_round_cents(self, value, expected):
        assert round_cents(value) == expected

    def test_round_wrvus_huge_value(self):
        assert round_wrvus(1e307) == 0.0


class TestNum:

    @pytest.mark.parametrize("value,expected", [
        (None, 0.0), (float("nan"), 0.0), (float("inf"), 0.0), ("12.5", 12.5), ("junk", 0.0), (True, 0.0), (7, 7.0),
    ])
    def test_num(self, value, expected):
        assert num(value) == expected
