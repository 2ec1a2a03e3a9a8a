"""Rich output formatting for the Plumage CLI."""

from __future__ import annotations

from rich.console import Console
from rich.table import Table

from plumage.learning import PatternAnalytics, PositionAdjustedFeature

# NOTE: JSON output bypasses this console (see helpers.emit_json).
console = Console()


def confidence_color(value: float) -> str:
    """Color for a confidence score."""
    if value >= 0.8:
        return "green"
    if value >= 0.5:
        return "yellow"
    return "red"


def create_top_features_table(analytics: PatternAnalytics) -> Table:
    table = Table(title="Top Features", show_header=True, header_style="bold")
    table.add_column("Feature", style="cyan")
    table.add_column("Observations", justify="right")
    table.add_column("Confidence", justify="right")
    for feature in analytics.top_features:
        color = confidence_color(feature.confidence)
        table.add_row(
            feature.feature,
            str(feature.observations),
            f"[{color}]{feature.confidence:.2f}[/{color}]",
        )
    return table


def create_species_table(analytics: PatternAnalytics) -> Table:
    table = Table(title="Species Breakdown", show_header=True, header_style="bold")
    table.add_column("Species", style="cyan")
    table.add_column("Annotations", justify="right")
    table.add_column("Features", justify="right")
    for species in analytics.species_breakdown:
        table.add_row(species.species, str(species.annotations), str(species.features))
    return table


def create_adjustments_table(species: str, adjusted: list[PositionAdjustedFeature]) -> Table:
    table = Table(title=f"Position Adjustments: {species}", show_header=True, header_style="bold")
    table.add_column("Feature", style="cyan")
    table.add_column("dx", justify="right")
    table.add_column("dy", justify="right")
    table.add_column("dWidth", justify="right")
    table.add_column("dHeight", justify="right")
    table.add_column("Corrections", justify="right")
    for item in adjusted:
        delta = item.adjustment
        if delta is None:
            table.add_row(item.feature, "-", "-", "-", "-", "[dim]0[/dim]")
            continue
        table.add_row(
            item.feature,
            f"{delta.dx:.2f}",
            f"{delta.dy:.2f}",
            f"{delta.d_width:.2f}",
            f"{delta.d_height:.2f}",
            str(item.based_on_corrections),
        )
    return table
