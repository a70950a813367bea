"""Run evidence: mirror console output of a derivation run into a text log."""
from __future__ import annotations

import logging
import platform
import sys
import traceback
from contextlib import contextmanager, redirect_stdout
from datetime import datetime, timezone
from importlib import metadata
from pathlib import Path
from typing import Iterator, List, TextIO

SESSION_PACKAGES = (
    "clinical-derivations",
    "pandas",
    "numpy",
    "pandera",
    "pydantic",
    "structlog",
    "scipy",
    "matplotlib",
    "Markdown",
    "typer",
)


class _Tee:
    """Write-through stream duplicating output to several targets."""

    def __init__(self, *streams: TextIO) -> None:
        self._streams = streams

    def write(self, data: str) -> int:
        for stream in self._streams:
            stream.write(data)
        return len(data)

    def flush(self) -> None:
        for stream in self._streams:
            stream.flush()


def session_info() -> List[str]:
    lines = [
        f"Python {sys.version.split()[0]} ({platform.python_implementation()})",
        f"Platform: {platform.platform()}",
        f"Started (UTC): {datetime.now(timezone.utc).isoformat()}",
        "",
        "Packages:",
    ]
    for name in SESSION_PACKAGES:
        try:
            version = metadata.version(name)
        except metadata.PackageNotFoundError:
            version = "not installed"
        lines.append(f"  {name} {version}")
    return lines


@contextmanager
def capture_run(log_path: str | Path, title: str = "") -> Iterator[Path]:
    """Tee stdout and log records into `log_path` for the duration of a run.

    Output still reaches the console. A failing run leaves its traceback in the
    log and the exception propagates.
    """
    path = Path(log_path)
    path.parent.mkdir(parents=True, exist_ok=True)

    with open(path, "w", encoding="utf-8") as fh:
        file_handler = logging.StreamHandler(fh)
        file_handler.setFormatter(logging.Formatter("%(message)s"))
        root = logging.getLogger()
        root.addHandler(file_handler)
        try:
            with redirect_stdout(_Tee(sys.stdout, fh)):
                print("Starting Script")
                if title:
                    print(title)
                print("\n\n--- SESSION INFO ---")
                print("\n".join(session_info()))
                print()
                try:
                    yield path
                except Exception:
                    print("Script failed:")
                    print(traceback.format_exc())
                    raise
                print("Script finished successfully.")
        finally:
            root.removeHandler(file_handler)
