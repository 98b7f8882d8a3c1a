from __future__ import annotations

from dataclasses import dataclass

import cairosvg

PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"

_TRANSPARENT = {"", "none", "transparent"}


class RasterizeError(RuntimeError):
    """SVG text could not be turned into a PNG."""


@dataclass(frozen=True)
class RasterOptions:
    background: str | None = "white"
    output_width: int | None = None
    scale: float = 1.0

    @property
    def background_color(self) -> str | None:
        if self.background is None or self.background.strip().lower() in _TRANSPARENT:
            return None
        return self.background.strip()


def rasterize(svg: str, options: RasterOptions | None = None) -> bytes:
    """Rasterize SVG markup to PNG bytes.

    The image keeps the SVG's own size unless ``output_width`` is set, in which
    case the height follows the aspect ratio. Text is drawn with whatever fonts
    fontconfig finds on the host.
    """
    options = options or RasterOptions()
    try:
        png = cairosvg.svg2png(
            bytestring=svg.encode("utf-8"),
            background_color=options.background_color,
            output_width=options.output_width,
            scale=options.scale,
        )
    except Exception as exc:
        # cairosvg surfaces parser and drawing failures as assorted exception types
        raise RasterizeError(f"Cannot rasterize SVG: {exc}") from exc

    if not png or not png.startswith(PNG_SIGNATURE):
        raise RasterizeError("Rasterizer returned no PNG data")
    return png
