"""Statistical analysis for A/B test experiments.

Provides the two-proportion z-test, confidence intervals for conversion
rates, a simplified per-metric test and sample size calculation. All
p-values use the Abramowitz-Stegun rational approximation of the normal
CDF so results match across implementations.
"""

import math
from dataclasses import dataclass
from typing import Any

Z_SCORE_95 = 1.96
Z_SCORE_99 = 2.58
Z_BETA_80 = 0.84

# Abramowitz & Stegun 26.2.17
_P = 0.2316419
_D = 0.3989423
_A = (0.3193815, -0.3565638, 1.781478, -1.821256, 1.330274)


@dataclass
class ConfidenceInterval:
    """Two-sided interval for a proportion, clamped to [0, 1]."""

    lower: float
    upper: float

    def to_dict(self) -> dict[str, float]:
        """Convert to dictionary."""
        return {"lower": self.lower, "upper": self.upper}


@dataclass
class SignificanceResult:
    """Result of the control vs treatment z-test."""

    is_significant: bool
    p_value: float
    confidence_level: float
    improvement: float  # Percent over control
    z_score: float = 0.0
    winning_variant: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "is_significant": self.is_significant,
            "p_value": self.p_value,
            "confidence_level": self.confidence_level,
            "improvement": self.improvement,
            "z_score": self.z_score,
            "winning_variant": self.winning_variant,
        }


@dataclass
class MetricTestResult:
    """Result of the per-metric test."""

    test_type: str
    p_value: float
    is_significant: bool

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "test_type": self.test_type,
            "p_value": self.p_value,
            "is_significant": self.is_significant,
        }


def normal_cdf(z: float) -> float:
    """Standard normal CDF, rational approximation (max error ~1e-7)."""
    t = 1 / (1 + _P * abs(z))
    d = _D * math.exp(-z * z / 2)
    tail = d * t * (_A[0] + t * (_A[1] + t * (_A[2] + t * (_A[3] + t * _A[4]))))
    return 1 - tail if z >= 0 else tail


def as_fraction(confidence_level: float) -> float:
    """Accept 95 or 0.95 style confidence levels, return the fraction."""
    return confidence_level / 100 if confidence_level > 1 else confidence_level


def z_score_for(confidence_level: float) -> float:
    """Critical z for a two-sided test: 2.58 from 99% up, 1.96 otherwise."""
    return Z_SCORE_99 if as_fraction(confidence_level) >= 0.99 else Z_SCORE_95


def calculate_confidence_interval(
    proportion: float,
    sample_size: int,
    confidence_level: float = 95,
) -> ConfidenceInterval:
    """Normal-approximation interval for a conversion rate.

    An empty sample yields [0, 0].
    """
    if sample_size <= 0:
        return ConfidenceInterval(lower=0.0, upper=0.0)

    variance = max(proportion * (1 - proportion), 0.0)
    margin = z_score_for(confidence_level) * math.sqrt(variance / sample_size)

    return ConfidenceInterval(
        lower=min(max(proportion - margin, 0.0), 1.0),
        upper=max(min(proportion + margin, 1.0), 0.0),
    )


def run_two_proportion_test(
    control_conversions: float,
    control_n: int,
    treatment_conversions: float,
    treatment_n: int,
    confidence_level: float = 95,
    treatment_id: str | None = None,
) -> SignificanceResult:
    """Pooled two-proportion z-test of treatment against control.

    Args:
        control_conversions: Conversions in control.
        control_n: Subjects in control.
        treatment_conversions: Conversions in treatment.
        treatment_n: Subjects in treatment.
        confidence_level: 95 or 99 (percentage or fraction).
        treatment_id: Reported as winner when significant and better.

    Returns:
        Significance result. Degenerate input (an empty group or zero
        pooled variance) gives z=0, p=1, not significant.
    """
    p_control = control_conversions / control_n if control_n > 0 else 0.0
    p_treatment = treatment_conversions / treatment_n if treatment_n > 0 else 0.0
    improvement = (p_treatment - p_control) / p_control * 100 if p_control > 0 else 0.0

    se = 0.0
    if control_n > 0 and treatment_n > 0:
        p_pooled = (control_conversions + treatment_conversions) / (control_n + treatment_n)
        variance = p_pooled * (1 - p_pooled) * (1 / control_n + 1 / treatment_n)
        se = math.sqrt(variance) if variance > 0 else 0.0

    if se == 0:
        return SignificanceResult(
            is_significant=False,
            p_value=1.0,
            confidence_level=confidence_level,
            improvement=improvement,
        )

    z_score = abs(p_treatment - p_control) / se
    p_value = 2 * (1 - normal_cdf(z_score))
    is_significant = z_score > z_score_for(confidence_level)

    return SignificanceResult(
        is_significant=is_significant,
        p_value=p_value,
        confidence_level=confidence_level,
        improvement=improvement,
        z_score=z_score,
        winning_variant=(
            treatment_id if is_significant and p_treatment > p_control else None
        ),
    )


def run_metric_test(
    samples: list[tuple[float, int]],
    alpha: float = 0.05,
) -> MetricTestResult:
    """Simplified two-sample test on aggregated metric values.

    Args:
        samples: (value, sample_size) per variant, control first.
        alpha: Significance threshold.

    Returns:
        ``none`` test with p=1 unless exactly two samples are given.
    """
    if len(samples) != 2:
        return MetricTestResult(test_type="none", p_value=1.0, is_significant=False)

    (control_value, control_n), (treatment_value, treatment_n) = samples

    diff = abs(treatment_value - control_value)
    total_n = control_n + treatment_n
    ratio = (control_value + treatment_value) / total_n if total_n > 0 else 0.0
    pooled_se = math.sqrt(ratio) if ratio > 0 else 0.0

    t_stat = diff / pooled_se if pooled_se > 0 else 0.0
    p_value = 2 * (1 - normal_cdf(t_stat))

    return MetricTestResult(
        test_type="t-test",
        p_value=p_value,
        is_significant=p_value < alpha,
    )


def calculate_required_sample_size(
    baseline_rate: float,
    minimum_detectable_effect: float,
    confidence: float = 0.95,
    power: float = 0.8,
) -> int:
    """Subjects needed per variant to detect a relative lift.

    ``z_beta`` is fixed at 0.84 (80% power); ``power`` is recorded for
    callers but does not change the result.

    Args:
        baseline_rate: Control conversion rate in (0, 1).
        minimum_detectable_effect: Relative lift, e.g. 0.10 for +10%.
        confidence: 0.95/0.99 or 95/99.
        power: Statistical power.

    Raises:
        ValueError: If the rate is outside (0, 1) or the effect is zero.
    """
    if not 0 < baseline_rate < 1:
        raise ValueError(f"Baseline rate must be in (0, 1), got {baseline_rate}")
    if minimum_detectable_effect == 0:
        raise ValueError("Minimum detectable effect must be non-zero")

    z_alpha = z_score_for(confidence)
    z_beta = Z_BETA_80

    p1 = baseline_rate
    p2 = baseline_rate * (1 + minimum_detectable_effect)

    numerator = (z_alpha + z_beta) ** 2 * (p1 * (1 - p1) + p2 * (1 - p2))
    denominator = (p2 - p1) ** 2

    return math.ceil(numerator / denominator)
