from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass
from pathlib import Path

from .config import Settings
from .locator import locate_files
from .rasterizer import RasterOptions, rasterize
from .renderer import MermaidRenderer, RenderOptions, diagram_id, launch_renderer

log = logging.getLogger(__name__)

RendererFactory = Callable[[RenderOptions, str], AbstractAsyncContextManager[MermaidRenderer]]


@dataclass
class ConversionResult:
    source: Path
    output: Path | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class BatchSummary:
    succeeded: int = 0
    failed: int = 0

    @property
    def total(self) -> int:
        return self.succeeded + self.failed

    def add(self, result: ConversionResult) -> None:
        if result.ok:
            self.succeeded += 1
        else:
            self.failed += 1

    def exit_code(self, fail_on_error: bool = False) -> int:
        """Process status for this run; per-file failures count only on request."""
        return 1 if fail_on_error and self.failed else 0


def output_path_for(source: Path, output_dir: Path) -> Path:
    """``<output_dir>/<source basename>.png``; input subdirectories are flattened."""
    return output_dir / Path(source.name).with_suffix(".png")


def _display(path: Path, cwd: Path) -> str:
    try:
        return os.path.relpath(path, cwd)
    except ValueError:
        # different drive on Windows
        return str(path)


class BatchConverter:
    """Converts located files one after another with a single renderer."""

    def __init__(self, settings: Settings, renderer: MermaidRenderer, cwd: Path):
        self.settings = settings
        self.renderer = renderer
        self.cwd = cwd
        self.raster_options: RasterOptions = settings.raster_options()
        self._output_ready = False

    def _ensure_output_dir(self) -> None:
        if self._output_ready:
            return
        # failure here is fatal for the run, not for the file
        self.settings.output_dir.mkdir(parents=True, exist_ok=True)
        self._output_ready = True

    async def _to_png(self, source: Path) -> bytes:
        code = await asyncio.to_thread(source.read_text, encoding="utf-8")
        svg = await self.renderer.render(code, diagram_id(source))
        return await asyncio.to_thread(rasterize, svg, self.raster_options)

    def _failed(self, source: Path, exc: Exception) -> ConversionResult:
        result = ConversionResult(source, error=str(exc) or type(exc).__name__)
        log.error("✗ Failed: %s: %s", result.source, result.error, exc_info=exc)
        return result

    async def convert(self, source: Path) -> ConversionResult:
        try:
            png = await self._to_png(source)
        except Exception as exc:
            return self._failed(source, exc)

        out = output_path_for(source, self.settings.output_dir)
        self._ensure_output_dir()
        try:
            await asyncio.to_thread(out.write_bytes, png)
        except OSError as exc:
            return self._failed(source, exc)

        result = ConversionResult(source, output=out)
        log.info("✓ %s → %s", _display(result.source, self.cwd), _display(result.output, self.cwd))
        return result


async def run_batch(
    settings: Settings,
    *,
    renderer_factory: RendererFactory = launch_renderer,
    cwd: Path | None = None,
) -> BatchSummary:
    """Render every file matched by ``settings.input_pattern`` to PNG.

    Per-file problems are logged and counted. Pattern errors, renderer start-up
    failures and an output directory that cannot be created propagate.
    """
    cwd = (cwd or Path.cwd()).resolve()
    summary = BatchSummary()

    files = locate_files(settings.input_pattern, include_hidden=settings.include_hidden, cwd=cwd)
    if not files:
        log.info("No Mermaid files matched pattern: %s", settings.input_pattern)
        return summary

    log.info("Rendering %d Mermaid file(s) to PNG (no browser window)...", len(files))
    async with renderer_factory(settings.render_options(), settings.mermaid_js) as renderer:
        converter = BatchConverter(settings, renderer, cwd)
        for source in files:
            summary.add(await converter.convert(source))

    log.info("Done. Success: %d, Failed: %d", summary.succeeded, summary.failed)
    return summary
