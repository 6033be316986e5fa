"""Shared helpers for CLI command modules."""

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, NoReturn

import typer
from pydantic import ValidationError as PydanticValidationError

from flashdeck.application.config import AppConfig, resolve_config
from flashdeck.application.factory import get_card_store
from flashdeck.domain.errors import FlashdeckError
from flashdeck.infrastructure.adapters.file_store import FileCardStore

logger = logging.getLogger(__name__)


def _resolve_with_overrides(**overrides: Any) -> AppConfig:
    try:
        return resolve_config({k: v for k, v in overrides.items() if v is not None})
    except PydanticValidationError as e:
        logger.debug("Invalid configuration", exc_info=e)
        for err in e.errors():
            field = ".".join(str(part) for part in err["loc"]) or "config"
            typer.secho(f"Invalid configuration: {field}: {err['msg']}", fg="red", err=True)
        raise typer.Exit(2) from None


def _file_store(config: AppConfig) -> FileCardStore:
    store = get_card_store(config)
    if not isinstance(store, FileCardStore):
        typer.secho(
            f"Deck and card management needs the file backend (current: {config.backend}).",
            fg="red",
        )
        raise typer.Exit(2)
    return store


def fail(error: FlashdeckError) -> NoReturn:
    """Report a domain error and exit non-zero."""
    logger.debug("Command failed", exc_info=error)
    typer.secho(f"Error: {error}", fg="red", err=True)
    raise typer.Exit(1)


def configure_logging(verbose: int) -> None:
    if verbose >= 2:
        level = logging.DEBUG
    elif verbose == 1:
        level = logging.INFO
    else:
        level = logging.WARNING
    logging.getLogger().setLevel(level)


def attach_file_log(config: AppConfig) -> Path:
    """Mirror log records into <log_dir>/flashdeck.log (rotated at ~1 MB)."""
    root = logging.getLogger()
    for handler in list(root.handlers):
        if isinstance(handler, RotatingFileHandler):
            root.removeHandler(handler)
            handler.close()

    config.log_dir.mkdir(parents=True, exist_ok=True)
    log_file = config.log_dir / "flashdeck.log"
    handler = RotatingFileHandler(log_file, maxBytes=1_000_000, backupCount=3, encoding="utf-8")
    handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s"))
    root.addHandler(handler)
    return log_file
