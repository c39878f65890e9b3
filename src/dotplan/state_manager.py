"""State persistence, checkpoints and rollback."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Mapping

import pydantic

from .checkpoints import CheckpointStore, checkpoint_id_for
from .models import LinkRecord
from .paths import expand_path
from .state import Clock, DotfileRecord, ProgramRecord, State, local_now

logger = logging.getLogger(__name__)

DEFAULT_STATE_DIR = "~/.dotplan"
STATE_FILENAME = "state.json"
CHECKPOINTS_DIRNAME = "checkpoints"
DEFAULT_KEEP_CHECKPOINTS = 10


class StateManager:
    """Owns the live ``State`` and its checkpoints.

    Rolling back only replaces the recorded state. Files, links and packages
    changed before the failure stay as they are on disk.
    """

    def __init__(self, state_dir: Path | str | None = None, *, clock: Clock = local_now) -> None:
        self.state_dir = expand_path(state_dir or DEFAULT_STATE_DIR)
        self.state_file = self.state_dir / STATE_FILENAME
        self.checkpoints = CheckpointStore(self.state_dir / CHECKPOINTS_DIRNAME)
        self._clock = clock
        self.state = self._load_state()

    # ------------------------------------------------------------------
    # Checkpoints

    def create_checkpoint(self) -> str:
        checkpoint_id = checkpoint_id_for(self._clock())
        self.checkpoints.write(checkpoint_id, self.state)
        logger.info("Created checkpoint %s", checkpoint_id)
        return checkpoint_id

    def rollback_to(self, checkpoint_id: str) -> None:
        self.state = self.checkpoints.read(checkpoint_id)
        self.save_state()
        logger.info("Rolled back to checkpoint %s", checkpoint_id)

    def list_checkpoints(self) -> list[str]:
        return self.checkpoints.ids()

    def cleanup_checkpoints(self, keep: int = DEFAULT_KEEP_CHECKPOINTS) -> list[str]:
        """Delete all but the ``keep`` newest checkpoints and return the removed ids."""

        if keep < 0:
            raise ValueError("keep must not be negative")

        removed = self.list_checkpoints()[keep:]
        for checkpoint_id in removed:
            self.checkpoints.delete(checkpoint_id)
            logger.info("Removed old checkpoint %s", checkpoint_id)
        return removed

    # ------------------------------------------------------------------
    # State

    def save_state(self) -> None:
        self.state_dir.mkdir(parents=True, exist_ok=True)
        self.state_file.write_text(self.state.model_dump_json(indent=2))

    def current_state(self) -> State:
        return self.state

    def update_package_state(self, manager: str, installed: list[str]) -> None:
        self.state.set_packages(manager, installed, now=self._clock())

    def update_program_state(self, program: str, configuration: Mapping[str, Any]) -> None:
        self.state.set_program(program, configuration, now=self._clock())

    def update_dotfile_state(self, record: LinkRecord) -> None:
        self.state.set_dotfile(record, now=self._clock())

    def remove_dotfile_state(self, name: str) -> bool:
        return self.state.drop_dotfile(name, now=self._clock())

    def get_package_state(self, manager: str) -> list[str]:
        return list(self.state.package_managers.get(manager, []))

    def get_program_state(self, program: str) -> ProgramRecord | None:
        return self.state.programs.get(program)

    def get_dotfile_state(self, name: str) -> DotfileRecord | None:
        return self.state.dotfiles.get(name)

    def state_summary(self) -> dict[str, Any]:
        return {
            "packages": {name: len(packages) for name, packages in self.state.package_managers.items()},
            "programs": sorted(self.state.programs),
            "dotfiles": sorted(self.state.dotfiles),
            "last_updated": self.state.last_updated,
            "checkpoints_count": len(self.list_checkpoints()),
        }

    # ------------------------------------------------------------------
    # Internal helpers

    def _load_state(self) -> State:
        if not self.state_file.exists():
            return State.default(self._clock)

        try:
            return State.model_validate_json(self.state_file.read_bytes())
        except pydantic.ValidationError as exc:
            logger.warning("Invalid state file %s, starting from a fresh state: %s", self.state_file, exc)
            return State.default(self._clock)
