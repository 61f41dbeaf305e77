"""
Teardown coordinator.

Stops and deletes the VMs of a deployed lab, keeping each bundle's config
intact, then deletes the switches the deploy recorded.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Union

from .backup import ConfigBackup
from .config import LabSDKConfig
from .exceptions import InvalidLabPathError
from .hypervisor import HypervisorControl
from .logging import logging_context
from .scanner import BundleScanner
from .state import DeploymentStateStore


@dataclass
class TeardownReport:
    """What a drop run did. "Not found" entries are expected on repeated drops."""

    stopped_vms: List[str] = field(default_factory=list)
    deleted_vms: List[str] = field(default_factory=list)
    missing_vms: List[str] = field(default_factory=list)
    deleted_switches: List[str] = field(default_factory=list)
    missing_switches: List[str] = field(default_factory=list)
    switch_state_found: bool = False


class TeardownCoordinator:
    """
    Drops a deployed lab.

    VMs are found by re-scanning the lab's bundles, not from the persisted
    VM list, since bundles may have been re-imported since the last deploy.
    """

    def __init__(self, hypervisor: HypervisorControl, config: Optional[LabSDKConfig] = None):
        self.hypervisor = hypervisor
        self.config = config or LabSDKConfig()
        self.logger = logging.getLogger(__name__)

        self.scanner = BundleScanner(self.config.lab)

    def teardown(self, lab_path: Union[str, Path]) -> TeardownReport:
        """
        Stop and delete the lab's VMs, then the recorded switches.

        Args:
            lab_path: Lab directory

        Returns:
            TeardownReport of what was deleted and what was already gone

        Raises:
            InvalidLabPathError: If lab_path is not a directory
            AmbiguousBundleError: If a bundle holds several config files
            HypervisorTransportError: If a hypervisor call fails
            PersistenceError: If a state file exists but cannot be read
        """
        lab_path = Path(lab_path)
        if not lab_path.is_dir():
            raise InvalidLabPathError(
                f"Path '{lab_path}' does not exist",
                lab_path=str(lab_path)
            )

        report = TeardownReport()
        with logging_context(logger=self.logger, operation=f"drop of {lab_path}"):
            store = DeploymentStateStore(lab_path, self.config.lab)
            self._recover_interrupted(lab_path)

            discovered = []
            for bundle in self.scanner.scan(lab_path):
                vm_id = self.scanner.vm_id(bundle)
                if vm_id is None:
                    self.logger.debug(f"Skipping {bundle.folder_name}: config file is not named after a VM id")
                    continue
                discovered.append(vm_id)
                self._drop_vm(vm_id, bundle.path, report)

            self._warn_untracked(store, discovered)

            switches = store.load_switches()
            if switches is not None:
                report.switch_state_found = True
                # TODO: skip switches still attached to VMs outside this lab
                # (Get-VMNetworkAdapter -All) before deleting them.
                for name, switch_id in switches.items():
                    self._drop_switch(name, switch_id, report)

        return report

    def _drop_vm(self, vm_id: str, bundle_path: Path, report: TeardownReport) -> None:
        self.logger.info(f"==> Stopping VM {vm_id}...")
        if self.hypervisor.stop_vm(vm_id):
            report.stopped_vms.append(vm_id)
        else:
            self.logger.info(f"==> VM {vm_id} not found")

        # Remove-VM deletes the bundle's config directory along with the VM
        with ConfigBackup(bundle_path, self.config.lab):
            deleted = self.hypervisor.delete_vm(vm_id)

        if deleted:
            report.deleted_vms.append(vm_id)
            self.logger.info(f"==> Deleting VM {vm_id}... deleted")
        else:
            report.missing_vms.append(vm_id)
            self.logger.info(f"==> Deleting VM {vm_id}... not found")

    def _recover_interrupted(self, lab_path: Path) -> None:
        # A drop that died between delete and restore leaves only the backup
        for entry in lab_path.iterdir():
            if not entry.is_dir():
                continue
            backup = ConfigBackup(entry, self.config.lab)
            if backup.backup_dir.is_dir() and not backup.config_dir.exists():
                self.logger.warning(f"Restoring config of {entry.name} left by an interrupted drop")
                backup.restore()

    def _drop_switch(self, name: str, switch_id: str, report: TeardownReport) -> None:
        if self.hypervisor.delete_switch(switch_id):
            report.deleted_switches.append(name)
            self.logger.info(f"==> Deleting switch {name}... deleted")
        else:
            report.missing_switches.append(name)
            self.logger.info(f"==> Deleting switch {name}... not found")

    def _warn_untracked(self, store: DeploymentStateStore, discovered: List[str]) -> None:
        recorded = store.load_vm_ids() or []
        seen = {vm_id.lower() for vm_id in discovered}
        leftover = [vm_id for vm_id in recorded if vm_id.lower() not in seen]
        if leftover:
            self.logger.warning(
                f"{len(leftover)} VMs recorded by the last deploy have no bundle on disk "
                f"and were left alone: {', '.join(leftover)}"
            )
