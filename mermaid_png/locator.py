from __future__ import annotations

import logging
import os
import re
from pathlib import Path

log = logging.getLogger(__name__)

_MAGIC = re.compile(r"[*?\[]")


class LocatorError(RuntimeError):
    """The input pattern could not be expanded at all."""


def split_pattern(pattern: str, cwd: Path | None = None) -> tuple[Path, str]:
    """Split a glob into its literal base directory and the relative remainder.

    ``diagrams/**/*.mmd`` becomes ``(<cwd>/diagrams, "**/*.mmd")``. A pattern
    without metacharacters is split into its parent and its last component.
    """
    raw = os.path.expanduser(pattern.strip())
    if not raw:
        raise LocatorError("Empty input pattern")
    parts = Path(raw).parts

    literal: list[str] = []
    for part in parts:
        if _MAGIC.search(part):
            break
        literal.append(part)
    if len(literal) == len(parts):
        # plain path: match the file itself
        literal.pop()
    rest = parts[len(literal):]

    base = Path(*literal) if literal else Path(".")
    if not base.is_absolute():
        base = (cwd or Path.cwd()) / base
    return base.resolve(), "/".join(rest)


def _is_hidden(path: Path, base: Path) -> bool:
    return any(
        part.startswith(".") and part not in (".", "..")
        for part in path.relative_to(base).parts
    )


def _check_pattern(pattern: str, rest: str) -> str:
    parts = rest.split("/")
    for part in parts:
        if "**" in part and part != "**":
            raise LocatorError(f"Invalid input pattern {pattern!r}: '**' must be a whole path component")
    if parts[-1] == "**":
        # a trailing ** means every file below
        parts.append("*")
    return "/".join(parts)


def locate_files(
    pattern: str,
    *,
    include_hidden: bool = False,
    cwd: Path | None = None,
) -> list[Path]:
    """Return the files matching ``pattern`` as sorted, unique absolute paths.

    Matching is case-insensitive and ``**`` spans directories. Directories are
    never returned; hidden entries only when ``include_hidden`` is set. A base
    directory that does not exist simply matches nothing.
    """
    base, rest = split_pattern(pattern, cwd)
    if not rest:
        raise LocatorError(f"Invalid input pattern: {pattern!r}")
    rest = _check_pattern(pattern, rest)
    if not base.exists():
        log.debug("Base directory %s does not exist", base)
        return []
    if not base.is_dir():
        raise LocatorError(f"Not a directory: {base}")
    if not os.access(base, os.R_OK | os.X_OK):
        raise LocatorError(f"Cannot read directory: {base}")

    try:
        matches = base.glob(rest, case_sensitive=False)
        found = {
            p.resolve()
            for p in matches
            if p.is_file() and (include_hidden or not _is_hidden(p, base))
        }
    except ValueError as exc:
        raise LocatorError(f"Invalid input pattern {pattern!r}: {exc}") from exc
    except OSError as exc:
        raise LocatorError(f"Cannot scan {base}: {exc}") from exc

    return sorted(found)
