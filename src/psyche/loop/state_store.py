"""Persisted loop bookkeeping that survives restarts."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ..utils.fs import atomic_write_text

__all__ = ["LoopStateStore", "PersistedLoopState"]

LOGGER = logging.getLogger(__name__)


class PersistedLoopState(BaseModel):
    model_config = ConfigDict(extra="ignore")

    cycle_number: int = Field(default=0, ge=0)
    last_cycle_at: Optional[datetime] = None
    rate_limit_until: Optional[datetime] = None

    @field_validator("last_cycle_at", "rate_limit_until")
    @classmethod
    def assume_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        # Hand-edited timestamps may omit the offset.
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


class LoopStateStore:
    """Flat JSON file holding the cycle counter and any rate-limit window."""

    def __init__(self, path: Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> PersistedLoopState:
        """Return the saved state, or a fresh one when the file is absent or unreadable."""
        try:
            raw = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return PersistedLoopState()
        except OSError as error:
            LOGGER.warning("Loop state could not be read from %s: %s", self._path, error)
            return PersistedLoopState()

        try:
            return PersistedLoopState.model_validate(json.loads(raw))
        except (json.JSONDecodeError, ValidationError) as error:
            LOGGER.warning("Loop state in %s is invalid, starting fresh: %s", self._path, error)
            return PersistedLoopState()

    def save(self, state: PersistedLoopState) -> None:
        atomic_write_text(self._path, state.model_dump_json(indent=2))
