from __future__ import annotations

import asyncio
import logging
import sys
from logging.handlers import RotatingFileHandler

from dotenv import load_dotenv

from .batch import run_batch
from .config import ConfigError, Settings, load_settings

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def _configure_logging(settings: Settings) -> None:
    # Console always; optional rotating file
    level = getattr(logging, settings.log_level, logging.INFO)
    logging.basicConfig(level=level, format=LOG_FORMAT)
    if settings.log_file:
        try:
            settings.log_file.parent.mkdir(parents=True, exist_ok=True)
            fh = RotatingFileHandler(
                settings.log_file,
                maxBytes=settings.log_max_bytes,
                backupCount=settings.log_backups,
                encoding="utf-8",
            )
            fh.setLevel(level)
            fh.setFormatter(logging.Formatter(LOG_FORMAT))
            logging.getLogger().addHandler(fh)
        except Exception:
            logging.exception("Failed to set up file logging")


async def main(settings: Settings) -> int:
    logging.info("Converting %s into %s (theme %s)", settings.input_pattern, settings.output_dir, settings.theme)
    summary = await run_batch(settings)
    return summary.exit_code(settings.fail_on_error)


def cli() -> int:
    # Load .env if present
    load_dotenv()

    try:
        settings = load_settings()
    except ConfigError as exc:
        logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)
        logging.error("Invalid configuration: %s", exc)
        return 1

    _configure_logging(settings)
    try:
        return asyncio.run(main(settings))
    except KeyboardInterrupt:
        return 130
    except Exception:
        logging.exception("Batch run failed")
        return 1


if __name__ == "__main__":
    sys.exit(cli())
