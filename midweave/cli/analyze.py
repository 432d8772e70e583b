"""
Analysis Command
----------------

Run the AI captioning service over a local image and print the result.
"""
import asyncio
import json
from pathlib import Path

import click

from midweave.ai import ImageAnalyzer
from midweave.core.exceptions import MidweaveError
from midweave.core.logging_manager import handle_cli_error
from . import get_config, get_logger


@click.command()
@click.argument("image", type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def analyze(ctx, image):
    """Caption IMAGE and print the analysis JSON."""
    try:
        config = get_config(ctx)
        analyzer = ImageAnalyzer(config.analyzer, logger=get_logger(ctx))
        path = Path(image)
        analysis = asyncio.run(analyzer.analyze(path.read_bytes(), path.name))
        click.echo(json.dumps(analysis.to_dict(), indent=2, ensure_ascii=False))

    except MidweaveError as e:
        handle_cli_error(ctx, e, "analyze", {"image": image})
