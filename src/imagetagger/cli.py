"""ImageTagger CLI entry point.

Commands:
    tag     Tag a single image
    serve   Run the HTTP API
"""

from __future__ import annotations

import json
import logging
import sys

import click

from imagetagger.config import get_settings
from imagetagger.errors import PredictError, TaggerError
from imagetagger.ml.model_manager import MODEL_REGISTRY, OnnxModelManager
from imagetagger.ml.preprocessing import open_image
from imagetagger.ml.tagger import Tagger, TaggingResult


def _format_result(result: TaggingResult) -> str:
    rating = "-" if result.rating is None else f"{result.rating[0]} ({result.rating[1]:.3f})"
    characters = ", ".join(f"{name} ({score:.3f})" for name, score in result.character)
    return "\n".join(
        [
            f"Tags: {result.caption}",
            f"Rating: {rating}",
            f"Characters: {characters}",
        ]
    )


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
def main(debug: bool) -> None:
    """Tag images with WD tagger models."""
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


@main.command()
@click.argument("image", type=click.Path(dir_okay=False))
@click.option("-o", "--output", type=click.Path(dir_okay=False), help="Write the caption to this file")
@click.option("--model", type=click.Choice(sorted(MODEL_REGISTRY)), help="Tagger model to use")
@click.option("--general-threshold", type=click.FloatRange(0.0, 1.0), help="Fixed general tag cutoff")
@click.option("--general-mcut", is_flag=True, help="Pick the general cutoff with MCut")
@click.option("--character-threshold", type=click.FloatRange(0.0, 1.0), help="Fixed character tag cutoff")
@click.option("--character-mcut", is_flag=True, help="Pick the character cutoff with MCut")
@click.option("--json", "as_json", is_flag=True, help="Print the full result as JSON")
def tag(
    image: str,
    output: str | None,
    model: str | None,
    general_threshold: float | None,
    general_mcut: bool,
    character_threshold: float | None,
    character_mcut: bool,
    as_json: bool,
) -> None:
    """Tag IMAGE and print or save the result."""
    settings = get_settings()
    try:
        tagger = Tagger(OnnxModelManager(settings, model_name=model))
    except KeyError as exc:
        click.echo(f"Failed to tag '{image}': {exc.args[0]}", err=True)
        sys.exit(1)

    try:
        img = open_image(image, max_pixels=settings.max_image_pixels)
        result = tagger.predict(
            img,
            general_threshold=settings.general_threshold if general_threshold is None else general_threshold,
            general_mcut=general_mcut or settings.general_mcut,
            character_threshold=settings.character_threshold if character_threshold is None else character_threshold,
            character_mcut=character_mcut or settings.character_mcut,
        )
    except PredictError as exc:
        click.echo(f"Failed to tag '{image}': {exc}", err=True)
        sys.exit(1)
    except TaggerError as exc:
        click.echo(f"Failed to open image '{image}': {exc}", err=True)
        sys.exit(1)

    if output is not None:
        try:
            with open(output, "w", encoding="utf-8") as handle:
                handle.write(result.caption)
        except OSError as exc:
            click.echo(f"Failed to write to {output}: {exc}", err=True)
            sys.exit(1)
        return

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
    else:
        click.echo(_format_result(result))


@main.command()
@click.option("--host", help="Bind address (default from IMAGETAGGER_HOST)")
@click.option("--port", type=int, help="Bind port (default from IMAGETAGGER_PORT)")
def serve(host: str | None, port: int | None) -> None:
    """Run the HTTP API with uvicorn."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "imagetagger.main:app",
        host=host or settings.host,
        port=port or settings.port,
    )


if __name__ == "__main__":
    main()
