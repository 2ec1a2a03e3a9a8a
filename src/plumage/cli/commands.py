"""Plumage CLI commands for inspecting learned patterns.

All commands restore the persisted session read-only; none of them learn.
"""

from __future__ import annotations

import json as json_lib
from pathlib import Path

import typer
from rich.markup import escape

from plumage.core.errors import AnnotationValidationError

from .helpers import emit_json, open_learner
from .output import (
    confidence_color,
    console,
    create_adjustments_table,
    create_species_table,
    create_top_features_table,
)

CONFIG_OPTION = typer.Option(
    None,
    "--config",
    "-c",
    help="Path to YAML engine config",
    envvar="PLUMAGE_CONFIG",
    exists=True,
    dir_okay=False,
)

JSON_OPTION = typer.Option(
    False,
    "--json",
    "-j",
    help="Output as JSON for machine parsing",
)


def stats(
    config: Path | None = CONFIG_OPTION,
    json_output: bool = JSON_OPTION,
) -> None:
    """Show a summary of learned patterns.

    Examples:
        plumage stats
        plumage stats --json
    """
    learner = open_learner(config, json_output)
    analytics = learner.get_analytics()

    if json_output:
        emit_json(analytics.to_dict())
        return

    console.print("[bold]Learned Pattern Statistics[/bold]\n")
    console.print(f"  Patterns: [yellow]{analytics.total_patterns}[/yellow]")
    console.print(f"  Species tracked: [cyan]{analytics.species_tracked}[/cyan]")
    if analytics.total_patterns == 0:
        console.print("\n[dim]No patterns learned yet.[/dim]")
        return
    console.print()
    console.print(create_top_features_table(analytics))
    console.print(create_species_table(analytics))


def export(
    output: Path | None = typer.Option(
        None,
        "--output",
        "-o",
        help="Write the export to this file instead of stdout",
        dir_okay=False,
    ),
    config: Path | None = CONFIG_OPTION,
    json_output: bool = JSON_OPTION,
) -> None:
    """Export all patterns with per-species statistics as JSON.

    Examples:
        plumage export > patterns.json
        plumage export --output backup.json
    """
    learner = open_learner(config, json_output or output is None)
    data = learner.export_patterns().to_dict()

    if output is None:
        emit_json(data)
        return

    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(json_lib.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")
    if json_output:
        emit_json({"output": str(output), "patterns": len(data["patterns"])})
    else:
        console.print(f"[green]Exported {len(data['patterns'])} patterns to {output}[/green]")


def recommend(
    species: str = typer.Argument(..., help="Species name, e.g. 'Cardenal Rojo'"),
    limit: int = typer.Option(10, "--limit", "-n", min=0, help="Maximum features to list"),
    config: Path | None = CONFIG_OPTION,
    json_output: bool = JSON_OPTION,
) -> None:
    """List the features most worth annotating for a species."""
    learner = open_learner(config, json_output)
    features = learner.get_recommended_features(species, limit)

    if json_output:
        emit_json({"species": species, "features": features})
        return

    if not features:
        console.print(f"[dim]No learned features for {escape(species)}.[/dim]")
        return
    console.print(f"[bold]Recommended features for {escape(species)}[/bold]")
    for rank, feature in enumerate(features, start=1):
        console.print(f"  {rank}. [cyan]{escape(feature)}[/cyan]")


def adjustments(
    species: str = typer.Argument(..., help="Species name"),
    features: list[str] = typer.Argument(..., help="Feature names to look up"),
    config: Path | None = CONFIG_OPTION,
    json_output: bool = JSON_OPTION,
) -> None:
    """Show learned position corrections for features of a species."""
    learner = open_learner(config, json_output)
    adjusted = learner.get_position_adjusted_features(species, features)

    if json_output:
        emit_json({"species": species, "features": [a.to_dict() for a in adjusted]})
        return

    console.print(create_adjustments_table(species, adjusted))


def enhance(
    species: str = typer.Argument(..., help="Species name"),
    prompt: str = typer.Argument(..., help="Base generation prompt"),
    feature: list[str] = typer.Option(
        [],
        "--feature",
        "-f",
        help="Target feature (repeatable)",
    ),
    config: Path | None = CONFIG_OPTION,
    json_output: bool = JSON_OPTION,
) -> None:
    """Print a prompt enhanced with learned guidance."""
    learner = open_learner(config, json_output)
    enhanced = learner.enhance_prompt(prompt, species=species, target_features=feature)

    if json_output:
        emit_json({
            "species": species,
            "prompt": enhanced,
            "enhanced": enhanced != prompt,
        })
        return

    typer.echo(enhanced)


def evaluate(
    species: str = typer.Argument(..., help="Species name"),
    annotation_json: str = typer.Argument(..., help="Annotation as a JSON object"),
    config: Path | None = CONFIG_OPTION,
    json_output: bool = JSON_OPTION,
) -> None:
    """Score an annotation against the learned pattern for its feature.

    Example:
        plumage evaluate "Cardenal Rojo" '{"spanishTerm": "el pico", "confidence": 0.9}'
    """
    try:
        payload = json_lib.loads(annotation_json)
    except json_lib.JSONDecodeError as e:
        console.print(f"[red]Invalid annotation JSON:[/red] {escape(str(e))}")
        raise typer.Exit(1) from None

    learner = open_learner(config, json_output)
    try:
        metrics = learner.evaluate_annotation_quality(payload, species)
    except AnnotationValidationError as e:
        console.print(f"[red]Invalid annotation:[/red] {escape(str(e))}")
        raise typer.Exit(1) from None

    if json_output:
        emit_json(metrics.to_dict())
        return

    for label, value in (
        ("Confidence", metrics.confidence),
        ("Bounding box", metrics.bounding_box_quality),
        ("Prompt effectiveness", metrics.prompt_effectiveness),
        ("Overall", metrics.overall_quality),
    ):
        color = confidence_color(value)
        console.print(f"  {label}: [{color}]{value:.2f}[/{color}]")
