"""Command line entry point for flattening images."""

import asyncio
import dataclasses
import logging
import sys
from pathlib import Path
from typing import NoReturn, Optional

import typer

from .core.types import COPIER_CHOICES, FlattenConfig, RuntimeConfig
from .exceptions import (
    ArchiveError,
    CopyFailedError,
    FlattenError,
    ImageBuildError,
    LayerChainError,
    RuntimeAPIError,
    WhiteoutResolutionError,
)
from .flatten import flatten_image

# Failing stage reported for each error type, most specific first
STAGES = (
    (RuntimeAPIError, "fetch layer history"),
    (LayerChainError, "build layer chain"),
    (CopyFailedError, "sync layers"),
    (WhiteoutResolutionError, "delete whiteouts"),
    (ArchiveError, "archive contents"),
    (ImageBuildError, "build new image"),
)


def failing_stage(error: FlattenError) -> str:
    """Name the pipeline stage an error came from."""
    for error_type, stage in STAGES:
        if isinstance(error, error_type):
            return stage
    return "flatten image"


def exit_with_error(message: str, exit_code: int = 1) -> NoReturn:
    """Exit the program with an error message."""
    typer.echo(f"Error: {message}", err=True)
    sys.exit(exit_code)


typer_app = typer.Typer(add_completion=False)


@typer_app.command()
def cli(
    image: str = typer.Argument(..., help="Image to flatten."),
    tag: str = typer.Option(
        ..., "-t", "--tag", help="Tag name of the new flattened image."
    ),
    graph_root: Optional[Path] = typer.Option(
        None, "--graph-root", help="Directory holding layer contents."
    ),
    scratch_root: Optional[Path] = typer.Option(
        None, "--scratch-root", help="Directory for scratch trees and build contexts."
    ),
    copier: Optional[str] = typer.Option(
        None, "--copier", help=f"Layer copier: {' or '.join(COPIER_CHOICES)}."
    ),
    sudo: bool = typer.Option(False, "--sudo", help="Run rsync and docker via sudo."),
    keep_scratch: bool = typer.Option(
        False, "--keep-scratch", help="Keep the merged tree and build context."
    ),
    verbose: bool = typer.Option(False, "-v", "--verbose", help="Log every layer."),
) -> None:
    """Flatten IMAGE into a single-layer image tagged TAG."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    overrides = {
        "graph_root": graph_root,
        "scratch_root": scratch_root,
        "copier": copier,
        "use_sudo": sudo or None,
        "keep_scratch": keep_scratch or None,
    }
    try:
        config = dataclasses.replace(
            FlattenConfig.from_env(),
            **{key: value for key, value in overrides.items() if value is not None},
        )
    except ValueError as e:
        exit_with_error(str(e), 2)

    typer.echo(f"===> Flattening image: {image} into tag: {tag}")
    try:
        final = asyncio.run(
            flatten_image(
                image,
                tag,
                runtime_config=RuntimeConfig.from_env(),
                flatten_config=config,
            )
        )
    except FlattenError as e:
        exit_with_error(f"Failed to {failing_stage(e)}: {e}")

    typer.echo(f"Base image: {final.base}")
    typer.echo("===> Finished")


def main() -> None:
    """Run the CLI."""
    typer_app()


if __name__ == "__main__":
    main()
