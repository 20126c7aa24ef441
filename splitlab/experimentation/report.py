"""Markdown rendering of experiment results."""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from splitlab.experimentation.analyzer import ExperimentResults


def _pct(value: float) -> str:
    return f"{value * 100:.2f}%"


def render_report(results: "ExperimentResults") -> str:
    """Render analysis results as a Markdown report."""
    significance = results.statistical_significance
    start = results.start_date.strftime("%Y-%m-%d") if results.start_date else "not started"

    lines = [
        f"# Experiment Report: {results.experiment_name}",
        "",
        "## Overview",
        f"- **Status**: {results.status}",
        f"- **Start Date**: {start}",
    ]
    if results.end_date:
        lines.append(f"- **End Date**: {results.end_date.strftime('%Y-%m-%d')}")
    lines += [
        f"- **Total Users**: {results.total_users}",
        "",
        "## Variants Performance",
    ]

    confidence = f"{significance.confidence_level:g}%"
    for variant in results.variants:
        ci = variant.confidence_interval
        title = f"{variant.variant_name} (control)" if variant.is_control else variant.variant_name
        lines += [
            "",
            f"### {title}",
            f"- **Users**: {variant.users}",
            f"- **Conversions**: {variant.conversions}",
            f"- **Conversion Rate**: {_pct(variant.conversion_rate)}",
            f"- **Revenue**: ${variant.revenue:.2f}",
            f"- **ARPU**: ${variant.average_revenue_per_user:.2f}",
            f"- **{confidence} CI**: [{_pct(ci.lower)}, {_pct(ci.upper)}]",
        ]

    lines += [
        "",
        "## Statistical Significance",
        f"- **Is Significant**: {'Yes' if significance.is_significant else 'No'}",
        f"- **P-Value**: {significance.p_value:.4f}",
        f"- **Confidence Level**: {confidence}",
        f"- **Improvement**: {significance.improvement:.2f}%",
    ]
    if significance.winning_variant:
        winner = results.get_variant(significance.winning_variant)
        name = winner.variant_name if winner else significance.winning_variant
        lines.append(f"- **Winner**: {name}")

    lines += ["", "## Metrics Analysis"]
    for metric in results.metrics:
        lines += ["", f"### {metric.metric_name} ({metric.type})"]
        for value in metric.variants:
            variant = results.get_variant(value.variant_id)
            name = variant.variant_name if variant else value.variant_id
            lines.append(f"- **{name}**: {value.value:.2f} (n={value.sample_size})")
        test = metric.statistical_test
        lines += [
            f"- **Test**: {test.test_type}",
            f"- **P-Value**: {test.p_value:.4f}",
            f"- **Significant**: {'Yes' if test.is_significant else 'No'}",
        ]

    return "\n".join(lines) + "\n"
