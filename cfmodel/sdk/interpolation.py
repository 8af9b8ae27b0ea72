"""Piecewise-linear percentile interpolation against 25/50/75/90 market bands.

Two directions over the same curve:

- interp_percentile: percentile -> value
- infer_percentile: value -> percentile

Inside [p25, p90] the two are exact inverses on a strictly increasing curve.
Outside that range both extrapolate linearly with the nearest segment's
slope (25-50 below, 75-90 above). Anchors are assumed monotonic and are not
validated.
"""

from dataclasses import dataclass
from typing import Sequence


PERCENTILES = (25, 50, 75, 90)


class InterpolationCheckError(Exception):
    """Raised when the interpolation self-check fails."""
    pass


@dataclass(frozen=True)
class PercentileResult:
    """Percentile position of a value on a benchmark curve.

    percentile is unclamped; use clamp_percentile for display and flags.
    """

    percentile: float
    below_range: bool = False
    above_range: bool = False


def clamp_percentile(pct: float) -> float:
    """Clamp a percentile to [0, 100]."""
    return max(0.0, min(100.0, pct))


def interp_percentile(
    target_pct: float,
    p25: float,
    p50: float,
    p75: float,
    p90: float,
) -> float:
    """Return the value at target_pct on the benchmark curve.

    Args:
        target_pct: Percentile position (callers clamp to 0-100)
        p25, p50, p75, p90: Benchmark anchor values

    Returns:
        Interpolated (or extrapolated) value
    """
    values = (p25, p50, p75, p90)

    if target_pct <= 25:
        if target_pct < 25:
            value_at_0 = 2 * p25 - p50
            return value_at_0 + (target_pct / 25) * (p25 - value_at_0)
        return p25

    if target_pct >= 90:
        if target_pct > 90:
            return p90 + ((target_pct - 90) / 15) * (p90 - p75)
        return p90

    for i in range(len(PERCENTILES) - 1):
        pct_low, pct_high = PERCENTILES[i], PERCENTILES[i + 1]
        if pct_low <= target_pct <= pct_high:
            frac = (target_pct - pct_low) / (pct_high - pct_low)
            return values[i] + frac * (values[i + 1] - values[i])

    # Only reached for a NaN target_pct
    return p90


def infer_percentile(
    value: float,
    p25: float,
    p50: float,
    p75: float,
    p90: float,
) -> PercentileResult:
    """Estimate the percentile a value occupies on the benchmark curve.

    Zero-width segments never divide by zero; they resolve to the segment's
    fixed percentile endpoint.

    Args:
        value: Dollar (or wRVU, or $/wRVU) amount to place on the curve
        p25, p50, p75, p90: Benchmark anchor values

    Returns:
        PercentileResult with below_range/above_range set outside [p25, p90]
    """
    if value <= p25:
        if value == p25:
            return PercentileResult(25.0)
        slope = (p50 - p25) / 25
        percentile = 25 + (value - p25) / slope if slope != 0 else 25.0
        return PercentileResult(percentile, below_range=True)

    if value >= p90:
        if value == p90:
            return PercentileResult(90.0)
        slope = (p90 - p75) / 15
        percentile = 90 + (value - p90) / slope if slope != 0 else 90.0
        return PercentileResult(percentile, above_range=True)

    values = (p25, p50, p75, p90)
    for i in range(len(PERCENTILES) - 1):
        pct_low, pct_high = PERCENTILES[i], PERCENTILES[i + 1]
        value_low, value_high = values[i], values[i + 1]
        if value_low <= value <= value_high:
            if value_high == value_low:
                return PercentileResult(float(pct_low))
            frac = (value - value_low) / (value_high - value_low)
            return PercentileResult(pct_low + frac * (pct_high - pct_low))

    # Only reached for a NaN value; any value strictly inside (p25, p90)
    # is crossed by some ascending segment
    return PercentileResult(90.0)


def interp_bands(target_pct: float, bands: Sequence[float]) -> float:
    """interp_percentile over a (p25, p50, p75, p90) tuple."""
    return interp_percentile(target_pct, *bands)


def infer_bands(value: float, bands: Sequence[float]) -> PercentileResult:
    """infer_percentile over a (p25, p50, p75, p90) tuple."""
    return infer_percentile(value, *bands)


def run_interpolation_self_check(tolerance: float = 0.02) -> None:
    """Boundary and round-trip sanity check on a fixed curve.

    Raises:
        InterpolationCheckError: On the first failed assertion
    """
    curve = (100.0, 150.0, 200.0, 250.0)

    def check(actual: float, expected: float, msg: str) -> None:
        if abs(actual - expected) > tolerance:
            raise InterpolationCheckError(f"{msg}: expected ~{expected}, got {actual}")

    for pct, anchor in zip(PERCENTILES, curve):
        check(interp_bands(pct, curve), anchor, f"interp({pct}) should equal p{pct}")

    for pct in (40, 60, 80):
        back = infer_bands(interp_bands(pct, curve), curve).percentile
        check(back, pct, f"infer(interp({pct})) should be ~{pct}")

    if not infer_bands(50, curve).below_range:
        raise InterpolationCheckError("Value 50 < p25 should set below_range")
    if not infer_bands(300, curve).above_range:
        raise InterpolationCheckError("Value 300 > p90 should set above_range")
