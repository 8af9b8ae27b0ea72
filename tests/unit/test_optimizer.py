"""Tests for the CF optimizer, CF sweep and imputed $/wRVU vs market.

Market curve used throughout (per 1.0 FTE):
    TCC   300k / 400k / 500k / 600k
    wRVU  6,000 / 7,000 / 8,000 / 9,000
    CF    $40 / $50 / $60 / $70
"""

import pytest

from cfmodel.sdk.optimizer import (
    LOW_CLINICAL_FTE,
    MISSING_MARKET,
    OUTLIER,
    OptimizerSettings,
    build_provider_contexts,
    detect_outliers,
    imputed_vs_market,
    optimize_cf_for_specialty,
    run_cf_sweep,
    run_optimizer,
)
from cfmodel.sdk.schemas import MarketRow, ProviderRow


# === FIXTURES ===

def make_market(specialty: str = "Cardiology") -> MarketRow:
    return MarketRow(
        specialty=specialty,
        tcc_25=300000, tcc_50=400000, tcc_75=500000, tcc_90=600000,
        wrvu_25=6000, wrvu_50=7000, wrvu_75=8000, wrvu_90=9000,
        cf_25=40, cf_50=50, cf_75=60, cf_90=70,
    )


def make_provider(i: int = 1, **overrides) -> ProviderRow:
    data = dict(
        provider_id=f"P{i:03d}",
        provider_name=f"Dr. {i}",
        specialty="Cardiology",
        total_fte=1.0,
        clinical_fte=1.0,
        base_salary=300000,
        work_rvus=7000,
        current_cf=40,
    )
    data.update(overrides)
    return ProviderRow(**data)


@pytest.fixture
def underpaid():
    """Four 50th-percentile producers paid at the 25th percentile ($40 CF, no incentive)."""
    return [make_provider(i) for i in range(1, 5)]


class TestDetectOutliers:

    def test_mad_flags_extreme_value(self):
        flags = detect_outliers([10, 12, 11, 13, 14, 15, 16, 17, 18, 100], "mad_z", mad_z_threshold=3.5)
        assert [i for i, f in enumerate(flags) if f] == [9]

    def test_iqr_flags_extreme_value(self):
        flags = detect_outliers([1, 2, 3, 4, 5, 6, 7, 8, 9, 100], "iqr", iqr_k=1.5)
        assert flags[9] is True
        assert not any(flags[:9])

    def test_fewer_than_four_values(self):
        assert detect_outliers([1, 2, 1000], "mad_z") == [False, False, False]

    def test_zero_mad(self):
        assert detect_outliers([5, 5, 5, 5, 50], "mad_z") == [False] * 5


class TestProviderContexts:

    def test_baseline_at_current_cf(self, underpaid):
        contexts = build_provider_contexts(underpaid[:1], [make_market()], OptimizerSettings())

        ctx = contexts[0]
        assert ctx.included
        assert ctx.current_cf == 40
        assert ctx.baseline_tcc == pytest.approx(300000)
        assert ctx.baseline_tcc_percentile == pytest.approx(25)
        assert ctx.wrvu_percentile == pytest.approx(50)
        assert ctx.baseline_gap == pytest.approx(-25)

    def test_missing_cf_uses_market_median(self):
        contexts = build_provider_contexts(
            [make_provider(current_cf=None)], [make_market()], OptimizerSettings()
        )
        assert contexts[0].current_cf == 50

    def test_exclusions(self):
        providers = [
            make_provider(1, specialty="Urology"),
            make_provider(2, clinical_fte=0.3, total_fte=0.3),
            make_provider(3, work_rvus=500),
        ]
        contexts = build_provider_contexts(providers, [make_market()], OptimizerSettings())

        assert contexts[0].exclusion_reasons == [MISSING_MARKET]
        assert contexts[1].exclusion_reasons == [LOW_CLINICAL_FTE]
        assert contexts[2].exclusion_reasons == ["low_wrvu_volume"]

    def test_outliers_excluded_per_specialty(self):
        providers = [make_provider(i, work_rvus=w) for i, w in enumerate([7000, 7100, 6900, 7050, 7200, 30000])]
        settings = OptimizerSettings(outlier_method="mad_z")

        contexts = build_provider_contexts(providers, [make_market()], settings)

        assert [c.exclusion_reasons for c in contexts][:5] == [[]] * 5
        assert contexts[5].exclusion_reasons == [OUTLIER]


class TestOptimizeCFForSpecialty:

    def test_increase_capped_at_market_median(self, underpaid):
        market = make_market()
        contexts = build_provider_contexts(underpaid, [market], OptimizerSettings())

        result = optimize_cf_for_specialty(contexts, market, OptimizerSettings())

        # Best in-bounds CF is $52 (+30%); the 50th percentile cap pulls it to $50
        assert result.included_count == 4
        assert result.current_cf == pytest.approx(40)
        assert result.recommended_cf == pytest.approx(50)
        assert result.recommended_cf_percentile == pytest.approx(50)
        assert result.action == "INCREASE"
        assert result.cf_change_pct == pytest.approx(25)
        assert "cf_capped" in result.flags
        assert "low_sample" not in result.flags
        # $50 CF: (7,000 - 6,000) x 50 = $50k incentive -> $350k TCC -> 37.5th
        assert result.spend_impact == pytest.approx(4 * 50000)
        assert result.mean_baseline_gap == pytest.approx(-25)
        assert result.mean_modeled_gap == pytest.approx(-12.5)
        assert result.error_before == pytest.approx(625)
        assert result.error_after == pytest.approx(156.25)

    def test_decrease_when_overpaid(self):
        # $60 CF on $200k base: $220k incentive -> $420k TCC (55th) for 50th production
        providers = [make_provider(i, base_salary=200000, current_cf=60) for i in range(1, 5)]
        market = make_market()
        settings = OptimizerSettings(max_recommended_cf_percentile=90)
        contexts = build_provider_contexts(providers, [market], settings)

        result = optimize_cf_for_specialty(contexts, market, settings)

        assert result.action == "DECREASE"
        assert result.recommended_cf < 60
        assert result.recommended_cf == pytest.approx(57.3, abs=0.01)
        assert result.spend_impact < 0
        assert abs(result.mean_modeled_gap) < abs(result.mean_baseline_gap)

    def test_hard_cap_blocks_increase(self):
        # $550k base, 25th percentile production: TCC well above the 50th
        providers = [make_provider(i, base_salary=550000, work_rvus=6000, current_cf=50) for i in range(1, 5)]
        market = make_market()
        contexts = build_provider_contexts(providers, [market], OptimizerSettings())

        result = optimize_cf_for_specialty(contexts, market, OptimizerSettings())

        assert result.action == "HOLD"
        assert result.recommended_cf == pytest.approx(50)
        assert result.spend_impact == pytest.approx(0)
        assert any("hard cap" in note for note in result.notes)

    def test_target_percentile_objective(self, underpaid):
        market = make_market()
        settings = OptimizerSettings(objective="target_percentile", target_percentile=25)
        contexts = build_provider_contexts(underpaid, [market], settings)

        result = optimize_cf_for_specialty(contexts, market, settings)

        # Already at the 25th: no candidate does strictly better
        assert result.action == "HOLD"
        assert result.recommended_cf == pytest.approx(40)

    def test_no_included_providers(self):
        market = make_market()
        providers = [make_provider(1, clinical_fte=0.2, total_fte=0.2)]
        contexts = build_provider_contexts(providers, [market], OptimizerSettings())

        result = optimize_cf_for_specialty(contexts, market, OptimizerSettings())

        assert result.action == "NO_RECOMMENDATION"
        assert result.included_count == 0
        assert result.excluded_count == 1
        assert result.recommended_cf == 50

    def test_low_sample_flag(self, underpaid):
        market = make_market()
        contexts = build_provider_contexts(underpaid[:2], [market], OptimizerSettings())

        result = optimize_cf_for_specialty(contexts, market, OptimizerSettings())

        assert "low_sample" in result.flags


class TestRunOptimizer:

    def test_all_specialties(self, underpaid):
        providers = underpaid + [make_provider(9, specialty="Urology"), make_provider(10, specialty="Neuro")]
        markets = [make_market(), make_market("Urology")]
        progress = []

        run = run_optimizer(providers, markets, on_progress=lambda i, n, s: progress.append((i, n, s)))

        assert [r.specialty for r in run.results] == ["Cardiology", "Urology"]
        assert progress == [(0, 2, "Cardiology"), (1, 2, "Urology")]
        assert run.exclusion_counts == {MISSING_MARKET: 1}
        assert run.total_spend_impact == pytest.approx(sum(r.spend_impact for r in run.results))

    def test_specialty_filter_and_synonyms(self, underpaid):
        providers = [make_provider(1, specialty="Cardio")] + underpaid
        markets = [make_market(), make_market("Urology")]

        run = run_optimizer(providers, markets, synonym_map={"cardio": "Cardiology"}, specialty_filter="cardiology")

        assert len(run.results) == 1
        assert run.results[0].included_count == 5


class TestCFSweep:

    def test_rows_per_percentile(self, underpaid):
        sweep = run_cf_sweep(underpaid, [make_market()], cf_percentiles=[25, 50, 90])

        rows = sweep["Cardiology"]
        assert [r.cf for r in rows] == pytest.approx([40, 50, 70])
        assert rows[0].spend_impact == pytest.approx(0)
        assert rows[1].mean_modeled_tcc_percentile == pytest.approx(37.5)
        assert rows[1].gap == pytest.approx(-12.5)
        # $70 CF: threshold 4,286, incentive (7,000 - 4,285.71) x 70 = $190k each
        assert rows[2].total_incentive == pytest.approx(4 * 190000)


class TestImputedVsMarket:

    def test_median_rate_on_market_curve(self):
        providers = [
            make_provider(1, current_cf=50),                   # $350k / 7,000 = $50
            make_provider(2, current_cf=60, work_rvus=8000),   # $480k / 8,000 = $60
            make_provider(3, clinical_fte=0.3, total_fte=0.3),  # excluded: low cFTE
            make_provider(4, specialty="Urology"),              # excluded: no market
        ]

        rows = imputed_vs_market(providers, [make_market()])

        assert len(rows) == 1
        row = rows[0]
        assert row.specialty == "Cardiology"
        assert row.provider_count == 2
        assert row.median_imputed_per_wrvu == pytest.approx(55)
        assert row.median_current_cf == pytest.approx(55)
        assert row.market_ratios[0] == pytest.approx(50)
        assert row.market_ratios[1] == pytest.approx(400000 / 7000)
        # $55 sits 70% of the way from $50 (25th) to $57.14 (50th)
        assert row.percentile == pytest.approx(42.5)
        assert not row.below_range and not row.above_range

    def test_sorted_by_specialty(self):
        providers = [make_provider(1, specialty="Urology"), make_provider(2)]
        rows = imputed_vs_market(providers, [make_market(), make_market("Urology")])
        assert [r.specialty for r in rows] == ["Cardiology", "Urology"]
