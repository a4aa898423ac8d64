"""Markdown substrate shared by the roles."""

from .store import SubstrateError, SubstrateFileNotFoundError, SubstrateStore, initialize_substrate
from .templates import get_template
from .types import (
    SUBSTRATE_FILE_SPECS,
    SubstrateConfig,
    SubstrateFileContent,
    SubstrateFileSpec,
    SubstrateFileType,
    WriteMode,
)

__all__ = [
    "SUBSTRATE_FILE_SPECS",
    "SubstrateConfig",
    "SubstrateError",
    "SubstrateFileContent",
    "SubstrateFileNotFoundError",
    "SubstrateFileSpec",
    "SubstrateFileType",
    "SubstrateStore",
    "WriteMode",
    "get_template",
    "initialize_substrate",
]
