"""
Persistence of deployment state under a lab directory.

Layout, relative to the lab::

    .lama/switches.json   {"<switch name>": "<switch id>", ...}
    .lama/vms.json        ["<vm id>", ...]
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from .config import LabConfig
from .exceptions import PersistenceError
from .models import DeploymentState


logger = logging.getLogger(__name__)


class DeploymentStateStore:
    """Reads and writes the DeploymentState of one lab."""

    def __init__(self, lab_path: Union[str, Path], config: Optional[LabConfig] = None):
        self.lab_path = Path(lab_path)
        self.config = config or LabConfig()

    @property
    def state_dir(self) -> Path:
        return self.lab_path / self.config.state_dir_name

    @property
    def switches_path(self) -> Path:
        return self.state_dir / self.config.switches_file

    @property
    def vms_path(self) -> Path:
        return self.state_dir / self.config.vms_file

    def save(self, state: DeploymentState) -> None:
        """
        Write the state, replacing whatever a previous deploy left.

        Raises:
            PersistenceError: If the state folder or files cannot be written
        """
        try:
            self.state_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise PersistenceError(
                f"Failed to create state folder: {e}",
                file_path=str(self.state_dir)
            ) from e

        self._write_json(self.switches_path, state.switches)
        self._write_json(self.vms_path, state.vm_ids)
        logger.debug(
            f"Saved deployment state to {self.state_dir}",
            extra={'switch_count': len(state.switches), 'vm_count': len(state.vm_ids)}
        )

    def load(self) -> Optional[DeploymentState]:
        """
        Read the state back.

        Returns:
            The persisted state, or None if nothing was ever saved

        Raises:
            PersistenceError: If a state file exists but cannot be read
        """
        switches = self.load_switches()
        vm_ids = self.load_vm_ids()
        if switches is None and vm_ids is None:
            return None
        return DeploymentState(switches=switches or {}, vm_ids=vm_ids or [])

    def load_switches(self) -> Optional[Dict[str, str]]:
        """Persisted switch map, or None if the switches file is absent."""
        data = self._read_json(self.switches_path)
        if data is None:
            return None
        if not isinstance(data, dict):
            raise PersistenceError(
                "Switches file must contain a JSON object",
                file_path=str(self.switches_path)
            )
        return {str(name): str(switch_id) for name, switch_id in data.items()}

    def load_vm_ids(self) -> Optional[List[str]]:
        """Persisted VM ids, or None if the VMs file is absent."""
        data = self._read_json(self.vms_path)
        if data is None:
            return None
        if not isinstance(data, list):
            raise PersistenceError(
                "VMs file must contain a JSON array",
                file_path=str(self.vms_path)
            )
        return [str(vm_id) for vm_id in data]

    @staticmethod
    def _write_json(path: Path, data: Any) -> None:
        try:
            with open(path, 'w', encoding='utf-8') as f:
                json.dump(data, f, indent=2)
        except (OSError, TypeError) as e:
            raise PersistenceError(
                f"Failed to write {path.name}: {e}",
                file_path=str(path)
            ) from e

    @staticmethod
    def _read_json(path: Path) -> Any:
        if not path.is_file():
            return None
        try:
            with open(path, 'r', encoding='utf-8') as f:
                return json.load(f)
        except (OSError, ValueError) as e:
            raise PersistenceError(
                f"Failed to read {path.name}: {e}",
                file_path=str(path)
            ) from e
