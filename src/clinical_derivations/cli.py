"""Typer CLI running the DS, ADSL and AE reporting scripts with run logs."""

from pathlib import Path
from typing import Callable, Optional

import typer

from .config import AppConfig, get_config
from .io import convert_blanks_to_na, read_table
from .logging_utils import configure_logging, set_run_id
from .reporting.ae_plots import plot_severity_by_arm, plot_top_aes, severity_counts, top_ae_frequencies
from .reporting.ae_summary import build_ae_summary, write_ae_summary_html
from .run_log import capture_run
from .standards.adam.adsl import create_adsl
from .standards.sdtm.ds import create_ds_domain
from .validation.pandera_models import ADAEModel

app = typer.Typer(help="SDTM/ADaM derivations and adverse-event reporting")


def _setup(output_dir: Optional[Path]) -> AppConfig:
    cfg = get_config()
    if output_dir is not None:
        cfg = cfg.model_copy(update={"paths": cfg.paths.model_copy(update={"output_dir": str(output_dir)})})
    configure_logging(
        level=cfg.logging.level,
        json_output=cfg.logging.json_output,
        scrub_values=cfg.logging.scrub_values,
    )
    set_run_id()
    return cfg


def _run(cfg: AppConfig, step: str, title: str, action: Callable[[], str]) -> None:
    log_path = cfg.output_path(f"{step}_log.txt")
    try:
        with capture_run(log_path, title=title):
            message = action()
            print(message)
    except Exception as exc:
        typer.echo(f"{step} failed: {exc} (see {log_path})", err=True)
        raise typer.Exit(code=1)


def _ds(cfg: AppConfig, raw_dir: Optional[Path], ct_spec: Optional[Path]) -> str:
    out = create_ds_domain(
        raw_dir=raw_dir or cfg.paths.raw_dir,
        ct_spec_path=ct_spec or cfg.paths.ct_spec,
        output_path=cfg.output_path(cfg.output.ds_csv),
    )
    return f"DS domain written to {out}"


def _adsl(cfg: AppConfig, sdtm_dir: Optional[Path]) -> str:
    out = create_adsl(
        sdtm_dir=sdtm_dir or cfg.paths.sdtm_dir,
        output_path=cfg.output_path(cfg.output.adsl_csv),
    )
    return f"ADSL written to {out}"


def _read_adae(base: Path):
    adae = convert_blanks_to_na(read_table(base / "adae.csv", name="ADAE"))
    return ADAEModel.validate(adae)


def _ae_table(cfg: AppConfig, adam_dir: Optional[Path]) -> str:
    base = Path(adam_dir or cfg.paths.adam_dir)
    adae = _read_adae(base)
    adsl = read_table(base / "adsl.csv", name="ADSL")
    summary = build_ae_summary(adae, adsl)
    print(summary.formatted().to_string())
    out = write_ae_summary_html(summary, cfg.output_path(cfg.output.ae_table_html))
    return f"AE summary table written to {out}"


def _ae_plots(cfg: AppConfig, adam_dir: Optional[Path]) -> str:
    base = Path(adam_dir or cfg.paths.adam_dir)
    adae = _read_adae(base)
    size = dict(width=cfg.output.width, height=cfg.output.height, dpi=cfg.output.dpi)
    plot_1 = plot_severity_by_arm(severity_counts(adae), cfg.output_path(cfg.output.plot_severity_png), **size)
    frequencies = top_ae_frequencies(adae, n=10)
    print(frequencies.to_string(index=False))
    plot_2 = plot_top_aes(frequencies, cfg.output_path(cfg.output.plot_top_ae_png), **size)
    return f"Figures written to {plot_1} and {plot_2}"


@app.command()
def ds(
    raw_dir: Optional[Path] = typer.Option(None, help="Directory holding ds_raw.csv"),
    ct_spec: Optional[Path] = typer.Option(None, help="Controlled terminology CSV"),
    output_dir: Optional[Path] = typer.Option(None, help="Output directory"),
) -> None:
    """Create the SDTM DS domain from raw disposition data."""
    cfg = _setup(output_dir)
    _run(cfg, "create_ds_domain", "SDTM DS domain creation", lambda: _ds(cfg, raw_dir, ct_spec))


@app.command()
def adsl(
    sdtm_dir: Optional[Path] = typer.Option(None, help="Directory holding dm/ds/ex/ae/vs CSVs"),
    output_dir: Optional[Path] = typer.Option(None, help="Output directory"),
) -> None:
    """Derive the ADaM subject-level dataset."""
    cfg = _setup(output_dir)
    _run(cfg, "create_adsl", "ADaM ADSL creation", lambda: _adsl(cfg, sdtm_dir))


@app.command("ae-table")
def ae_table(
    adam_dir: Optional[Path] = typer.Option(None, help="Directory holding adae.csv and adsl.csv"),
    output_dir: Optional[Path] = typer.Option(None, help="Output directory"),
) -> None:
    """Render the TEAE summary table to HTML."""
    cfg = _setup(output_dir)
    _run(cfg, "create_ae_summary_table", "TEAE summary table", lambda: _ae_table(cfg, adam_dir))


@app.command("ae-plots")
def ae_plots(
    adam_dir: Optional[Path] = typer.Option(None, help="Directory holding adae.csv"),
    output_dir: Optional[Path] = typer.Option(None, help="Output directory"),
) -> None:
    """Render the AE severity and top-10 AE figures."""
    cfg = _setup(output_dir)
    _run(cfg, "create_visualizations", "AE visualizations", lambda: _ae_plots(cfg, adam_dir))


@app.command("all")
def run_all(
    output_dir: Optional[Path] = typer.Option(None, help="Output directory"),
) -> None:
    """Run every script with configured inputs."""
    cfg = _setup(output_dir)
    _run(cfg, "create_ds_domain", "SDTM DS domain creation", lambda: _ds(cfg, None, None))
    _run(cfg, "create_adsl", "ADaM ADSL creation", lambda: _adsl(cfg, None))
    _run(cfg, "create_ae_summary_table", "TEAE summary table", lambda: _ae_table(cfg, None))
    _run(cfg, "create_visualizations", "AE visualizations", lambda: _ae_plots(cfg, None))
    typer.echo(f"All outputs written to {cfg.paths.output_dir}")


def main() -> None:
    app()


if __name__ == "__main__":  # pragma: no cover
    main()
