"""On-disk storage of state checkpoints."""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path

import pydantic

from .errors import ConfigurationError, NotFoundError
from .state import State

logger = logging.getLogger(__name__)

CHECKPOINT_ID_FORMAT = "%Y%m%d_%H%M%S"
CHECKPOINT_SUFFIX = ".json"


def checkpoint_id_for(moment: datetime) -> str:
    """Return the checkpoint id for ``moment``; ids sort chronologically."""

    return moment.strftime(CHECKPOINT_ID_FORMAT)


class CheckpointStore:
    """Stores one JSON snapshot of ``State`` per checkpoint id.

    Ids have second granularity, so writing two checkpoints within the same
    second replaces the first snapshot with the second.
    """

    def __init__(self, directory: Path) -> None:
        self.directory = directory

    def path_for(self, checkpoint_id: str) -> Path:
        return self.directory / f"{checkpoint_id}{CHECKPOINT_SUFFIX}"

    def exists(self, checkpoint_id: str) -> bool:
        return self.path_for(checkpoint_id).is_file()

    def write(self, checkpoint_id: str, state: State) -> Path:
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self.path_for(checkpoint_id)
        if path.exists():
            logger.debug("Checkpoint %s already exists and will be overwritten", checkpoint_id)
        path.write_text(state.model_dump_json(indent=2))
        return path

    def read(self, checkpoint_id: str) -> State:
        path = self.path_for(checkpoint_id)
        if not path.is_file():
            raise NotFoundError(f"Checkpoint not found: {checkpoint_id}")
        try:
            return State.model_validate_json(path.read_bytes())
        except pydantic.ValidationError as exc:
            raise ConfigurationError(f"Checkpoint {checkpoint_id} is corrupt: {exc}") from exc

    def ids(self) -> list[str]:
        """Return checkpoint ids, newest first."""

        if not self.directory.is_dir():
            return []
        return sorted(
            (path.stem for path in self.directory.glob(f"*{CHECKPOINT_SUFFIX}") if path.is_file()),
            reverse=True,
        )

    def delete(self, checkpoint_id: str) -> None:
        self.path_for(checkpoint_id).unlink(missing_ok=True)
