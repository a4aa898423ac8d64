"""File-backed substrate store with per-file serialisation of mutations."""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Dict, List, Optional

from ..utils.fs import atomic_write_text
from .templates import get_template
from .types import (
    SUBSTRATE_FILE_SPECS,
    SubstrateConfig,
    SubstrateFileContent,
    SubstrateFileType,
    WriteMode,
)

__all__ = [
    "SubstrateError",
    "SubstrateFileNotFoundError",
    "SubstrateStore",
    "initialize_substrate",
    "utc_now",
]

LOGGER = logging.getLogger(__name__)


def utc_now() -> datetime:
    """Return a timezone-aware UTC timestamp."""
    return datetime.now(timezone.utc)


class SubstrateError(RuntimeError):
    """Base error raised for substrate I/O failures."""


class SubstrateFileNotFoundError(SubstrateError):
    """Raised when a substrate file does not exist on disk."""


class SubstrateStore:
    """Read, overwrite and append substrate markdown files.

    Callers are responsible for permission checks; this class only enforces
    each file's write mode and keeps two writers off the same file at once.
    """

    def __init__(self, config: SubstrateConfig, *, clock: Optional[Callable[[], datetime]] = None) -> None:
        self._config = config
        self._clock = clock or utc_now
        self._locks: Dict[SubstrateFileType, threading.Lock] = {
            file_type: threading.Lock() for file_type in SubstrateFileType
        }

    @property
    def config(self) -> SubstrateConfig:
        return self._config

    def path_for(self, file_type: SubstrateFileType) -> Path:
        return self._config.get_file_path(file_type)

    def exists(self, file_type: SubstrateFileType) -> bool:
        return self.path_for(file_type).exists()

    def read(self, file_type: SubstrateFileType) -> SubstrateFileContent:
        path = self.path_for(file_type)
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError as error:
            raise SubstrateFileNotFoundError(f"Substrate file not found: {path}") from error
        except OSError as error:
            raise SubstrateError(f"Failed to read {path}: {error}") from error
        return SubstrateFileContent(file_type=file_type, path=path, raw_markdown=raw)

    def write(self, file_type: SubstrateFileType, content: str) -> None:
        spec = SUBSTRATE_FILE_SPECS[file_type]
        if spec.write_mode is WriteMode.APPEND:
            raise SubstrateError(f"Cannot overwrite append-only file {file_type.value}; use append()")
        path = self.path_for(file_type)
        with self._locks[file_type]:
            try:
                atomic_write_text(path, content)
            except OSError as error:
                raise SubstrateError(f"Failed to write {path}: {error}") from error
        LOGGER.debug("Wrote %s (%d chars)", spec.file_name, len(content))

    def append(self, file_type: SubstrateFileType, entry: str) -> None:
        spec = SUBSTRATE_FILE_SPECS[file_type]
        if spec.write_mode is not WriteMode.APPEND:
            raise SubstrateError(f"Cannot append to overwrite-mode file {file_type.value}; use write()")
        path = self.path_for(file_type)
        line = f"[{self._clock().isoformat()}] {entry}\n"
        with self._locks[file_type]:
            try:
                path.parent.mkdir(parents=True, exist_ok=True)
                with path.open("a", encoding="utf-8") as handle:
                    handle.write(line)
            except OSError as error:
                raise SubstrateError(f"Failed to append to {path}: {error}") from error


def initialize_substrate(config: SubstrateConfig) -> List[SubstrateFileType]:
    """Create any missing substrate files from templates; existing files are left alone."""
    created: List[SubstrateFileType] = []
    config.base_path.mkdir(parents=True, exist_ok=True)
    for file_type in SubstrateFileType:
        path = config.get_file_path(file_type)
        if path.exists():
            continue
        atomic_write_text(path, get_template(file_type))
        created.append(file_type)
    if created:
        LOGGER.info("Initialised %d substrate file(s) in %s", len(created), config.base_path)
    return created
