"""
Switch registry shared by all VM imports of one deploy run.
"""

import logging
from typing import Dict

from .exceptions import HypervisorTransportError, SwitchCreateError
from .hypervisor import HypervisorControl
from .models import SwitchKind


logger = logging.getLogger(__name__)


class SwitchRegistry:
    """
    Maps switch names to the ids of switches created during a run.

    The first ``resolve`` of a name creates a Private switch; every later
    ``resolve`` of that name returns the cached id. Not safe for concurrent
    callers: a deploy run mutates it from a single thread.
    """

    kind = SwitchKind.PRIVATE

    def __init__(self, hypervisor: HypervisorControl):
        self.hypervisor = hypervisor
        self._switches: Dict[str, str] = {}

    def __contains__(self, name: str) -> bool:
        return name in self._switches

    def __len__(self) -> int:
        return len(self._switches)

    def resolve(self, name: str, vm_name: str = "") -> str:
        """
        Return the id of the switch called ``name``, creating it on first use.

        Args:
            name: Switch name
            vm_name: Name of the VM asking, for progress output only

        Raises:
            SwitchCreateError: If the switch cannot be created
        """
        if name in self._switches:
            return self._switches[name]

        prefix = f"==> {vm_name}: " if vm_name else "==> "
        logger.info(f"{prefix}Creating switch '{name}'...")
        try:
            switch_id = self.hypervisor.create_switch(name, self.kind)
        except HypervisorTransportError as e:
            raise SwitchCreateError(
                f"Failed to create switch '{name}': {e.message}",
                switch_name=name,
                details=dict(e.details)
            ) from e

        logger.info(f"{prefix}Switch '{name}' created (ID: {switch_id})", extra={'switch_id': switch_id})
        self._switches[name] = switch_id
        return switch_id

    def snapshot(self) -> Dict[str, str]:
        """Copy of the name to id map."""
        return dict(self._switches)
