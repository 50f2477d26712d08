import logging
from pathlib import Path
from typing import Optional

import typer

from .core.errors import VoxelSegError
from .pipeline.run import process_volume
from .settings import Settings

app = typer.Typer(add_completion=False)


def setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(filename)s:%(lineno)d | %(funcName)s() | %(message)s",
    )


@app.command()
def run(
    config: Path = typer.Option(..., "--config", "-c", help="Path to config.yaml"),
    output_dir: Optional[Path] = typer.Option(None, "--output-dir", "-o", help="Overrides data.output_dir"),
    tolerance: Optional[float] = typer.Option(None, "--tolerance", "-t", help="Overrides watershed.peak_tolerance"),
):
    cfg = Settings.from_yaml(config)
    if tolerance is not None:
        cfg.watershed.peak_tolerance = tolerance
    setup_logging(cfg.runtime.log_level)
    log = logging.getLogger("voxelseg")

    try:
        res = process_volume(cfg, out_dir=output_dir)
    except VoxelSegError as e:
        log.error("Segmentation of %s failed: %s", cfg.data.input_path, e)
        raise typer.Exit(code=1)

    typer.echo(f"{res.n_labels} labels -> {res.artifacts['labels_path']}")


@app.command()
def version():
    from . import __version__

    typer.echo(__version__)


if __name__ == "__main__":
    app()
