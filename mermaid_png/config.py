import os
from pathlib import Path

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from .rasterizer import RasterOptions
from .renderer import RenderOptions

DEFAULT_INPUT_PATTERN = "diagrams/**/*.mmd"
DEFAULT_OUTPUT_DIR = "diagrams"
DEFAULT_THEME = "default"
DEFAULT_FONT_FAMILY = "Arial, sans-serif"
DEFAULT_MERMAID_JS = "https://cdn.jsdelivr.net/npm/mermaid@11/dist/mermaid.min.js"
LOCAL_MERMAID_JS = Path("node_modules", "mermaid", "dist", "mermaid.min.js")

THEMES = frozenset({"default", "neutral", "dark", "forest", "base"})

_TRUE = {"1", "true", "yes", "y"}


class ConfigError(RuntimeError):
    """Raised when the environment holds an unusable setting."""


def _parse_bool(raw: str | None) -> bool:
    return (raw or "").strip().lower() in _TRUE


def _parse_int(name: str, raw: str | None) -> int | None:
    raw = (raw or "").strip()
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from None


def _parse_float(name: str, raw: str | None) -> float | None:
    raw = (raw or "").strip()
    if not raw:
        return None
    try:
        return float(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from None


def _is_url(value: str) -> bool:
    return value.startswith(("http://", "https://"))


def default_mermaid_js(cwd: Path | None = None) -> str:
    """A locally installed bundle (`npm install mermaid`) if present, else the CDN URL."""
    local = (cwd or Path.cwd()) / LOCAL_MERMAID_JS
    if local.is_file():
        return str(local.resolve())
    return DEFAULT_MERMAID_JS


class Settings(BaseModel):
    model_config = ConfigDict(frozen=True)

    input_pattern: str = DEFAULT_INPUT_PATTERN
    output_dir: Path = Path(DEFAULT_OUTPUT_DIR)
    theme: str = DEFAULT_THEME
    font_family: str = DEFAULT_FONT_FAMILY
    mermaid_js: str = DEFAULT_MERMAID_JS
    include_hidden: bool = False
    # Rasterizer
    background: str = "white"
    output_width: int | None = None
    output_scale: float = 1.0
    # Exit status
    fail_on_error: bool = False
    # Logging
    log_file: Path | None = None
    log_level: str = "INFO"
    log_max_bytes: int = 5 * 1024 * 1024
    log_backups: int = 5

    @field_validator("input_pattern", mode="before")
    @classmethod
    def _strip_pattern(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("input pattern must not be empty")
        return v

    @field_validator("output_dir", mode="before")
    @classmethod
    def _ensure_path(cls, v: Path | str) -> Path:
        return Path(v).expanduser().resolve()

    @field_validator("theme", mode="before")
    @classmethod
    def _known_theme(cls, v: str) -> str:
        v = (v or DEFAULT_THEME).strip().lower()
        if v not in THEMES:
            raise ValueError(f"unknown theme {v!r}, expected one of {sorted(THEMES)}")
        return v

    @field_validator("mermaid_js", mode="before")
    @classmethod
    def _mermaid_source(cls, v: str) -> str:
        v = (v or DEFAULT_MERMAID_JS).strip()
        if _is_url(v):
            return v
        path = Path(v).expanduser().resolve()
        if not path.is_file():
            raise ValueError(f"Mermaid library not found at {path}")
        return str(path)

    @field_validator("output_width")
    @classmethod
    def _positive_width(cls, v: int | None) -> int | None:
        if v is not None and v <= 0:
            raise ValueError("output width must be positive")
        return v

    @field_validator("output_scale")
    @classmethod
    def _positive_scale(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("output scale must be positive")
        return v

    @field_validator("log_level", mode="before")
    @classmethod
    def _upper_level(cls, v: str) -> str:
        return (v or "INFO").upper()

    @field_validator("log_file", mode="before")
    @classmethod
    def _ensure_log_path(cls, v: str | Path | None) -> Path | None:
        if not v:
            return None
        return Path(v).expanduser().resolve()

    def render_options(self) -> RenderOptions:
        return RenderOptions(theme=self.theme, font_family=self.font_family)

    def raster_options(self) -> RasterOptions:
        return RasterOptions(
            background=self.background,
            output_width=self.output_width,
            scale=self.output_scale,
        )


def load_settings() -> Settings:
    """Build settings from the process environment.

    Every key is optional. Raises ConfigError on values that cannot be used.
    """
    output_width = _parse_int("OUTPUT_WIDTH", os.getenv("OUTPUT_WIDTH"))
    output_scale = _parse_float("OUTPUT_SCALE", os.getenv("OUTPUT_SCALE"))
    log_max_bytes = _parse_int("LOG_MAX_BYTES", os.getenv("LOG_MAX_BYTES"))
    log_backups = _parse_int("LOG_BACKUPS", os.getenv("LOG_BACKUPS"))

    try:
        return Settings(
            input_pattern=os.getenv("INPUT_PATTERN") or DEFAULT_INPUT_PATTERN,
            output_dir=os.getenv("OUTPUT_DIR") or DEFAULT_OUTPUT_DIR,
            theme=os.getenv("MERMAID_THEME") or DEFAULT_THEME,
            font_family=os.getenv("MERMAID_FONT_FAMILY") or DEFAULT_FONT_FAMILY,
            mermaid_js=os.getenv("MERMAID_JS") or default_mermaid_js(),
            include_hidden=_parse_bool(os.getenv("INCLUDE_HIDDEN")),
            background=os.getenv("BACKGROUND_COLOR", "white").strip(),
            output_width=output_width,
            output_scale=1.0 if output_scale is None else output_scale,
            fail_on_error=_parse_bool(os.getenv("FAIL_ON_ERROR")),
            log_file=os.getenv("LOG_FILE", "").strip() or None,
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_max_bytes=5 * 1024 * 1024 if log_max_bytes is None else log_max_bytes,
            log_backups=5 if log_backups is None else log_backups,
        )
    except ValidationError as exc:
        raise ConfigError(str(exc)) from exc
