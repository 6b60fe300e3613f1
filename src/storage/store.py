"""On-disk state store.

Layout under the state directory:
    bootloader-state.json   State aggregate
    vars/                   create-env working files ({name}-state.json, ...)
    terraform/              credential files referenced by terraform inputs

One orchestrator process per state directory is assumed; there is no locking.
"""

import json
import logging
import os
import shutil
import tempfile
from pathlib import Path

from errors import StateError
from storage.state import STATE_VERSION, State

logger = logging.getLogger(__name__)

STATE_FILE = 'bootloader-state.json'


class StateStore:
    """Reads and writes the State aggregate for one environment."""

    def __init__(self, state_dir: Path):
        self.state_dir = Path(state_dir)

    @property
    def path(self) -> Path:
        return self.state_dir / STATE_FILE

    def get(self) -> State:
        """Load state, or return an empty State when none was saved yet."""
        if not self.path.exists():
            return State()
        try:
            with open(self.path, encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise StateError(f"Cannot read state file {self.path}: {e}") from e
        if not isinstance(data, dict):
            raise StateError(f"State file {self.path} must contain a JSON object")

        version = data.get('version', STATE_VERSION)
        if version > STATE_VERSION:
            raise StateError(
                f"State file {self.path} has version {version}; "
                f"this driver supports up to {STATE_VERSION}"
            )
        logger.debug(f"Loaded state from {self.path}")
        return State.from_dict(data)

    def set(self, state: State) -> Path:
        """Write state atomically. An empty state removes the environment."""
        if state.is_empty():
            self._clear()
            return self.path

        self.state_dir.mkdir(parents=True, exist_ok=True)
        state.version = STATE_VERSION
        fd, tmp = tempfile.mkstemp(prefix='.state-', suffix='.json', dir=self.state_dir)
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(state.to_dict(), f, indent=2, sort_keys=True)
            os.chmod(tmp, 0o600)
            os.replace(tmp, self.path)
        except BaseException:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise
        logger.debug(f"Saved state to {self.path}")
        return self.path

    def _clear(self) -> None:
        if self.path.exists():
            self.path.unlink()
            logger.info(f"Removed state file {self.path}")
        for sub in ('vars', 'terraform'):
            d = self.state_dir / sub
            if d.exists():
                shutil.rmtree(d)

    def get_vars_dir(self) -> Path:
        """Working directory for create-env/delete-env files."""
        d = self.state_dir / 'vars'
        d.mkdir(parents=True, exist_ok=True)
        return d

    def get_terraform_dir(self) -> Path:
        """Directory for files referenced by terraform inputs."""
        d = self.state_dir / 'terraform'
        d.mkdir(parents=True, exist_ok=True)
        return d
