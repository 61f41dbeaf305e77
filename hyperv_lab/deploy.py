"""
Deployment coordinator.

Imports every bundle of a lab through one shared switch registry and records
what was created so that ``drop`` can undo it.
"""

import logging
from pathlib import Path
from typing import Optional, Union

from .config import LabSDKConfig
from .exceptions import InvalidLabPathError, LabAlreadyDeployedError
from .hypervisor import HypervisorControl
from .importer import VMImportPipeline
from .logging import logging_context
from .models import DeploymentState, RenamePolicy
from .scanner import BundleScanner
from .state import DeploymentStateStore
from .switches import SwitchRegistry


class DeploymentCoordinator:
    """
    Deploys a lab directory onto the hypervisor.

    Bundles are processed one at a time in scan order. The first failure
    aborts the run: VMs imported before it are left as they are and no state
    is written.
    """

    def __init__(self, hypervisor: HypervisorControl, config: Optional[LabSDKConfig] = None):
        """
        Initialize the deployment coordinator.

        Args:
            hypervisor: Hypervisor control interface
            config: SDK configuration, defaults used when None
        """
        self.hypervisor = hypervisor
        self.config = config or LabSDKConfig()
        self.logger = logging.getLogger(__name__)

        self.scanner = BundleScanner(self.config.lab)
        self.pipeline = VMImportPipeline(hypervisor)

    def deploy(self, lab_path: Union[str, Path], rename: Optional[RenamePolicy] = None) -> DeploymentState:
        """
        Import, connect and start every VM of a lab.

        Args:
            lab_path: Lab directory
            rename: Renaming applied to each imported VM

        Returns:
            The switches created and the VM ids imported. Empty, and not
            persisted, when the lab holds no bundles.

        Raises:
            InvalidLabPathError: If lab_path is not a directory
            AmbiguousBundleError: If a bundle holds several config files
            LabAlreadyDeployedError: If existing-deployment checks are on and
                VMs from the previous deploy are still present
            ImportFailureError, SwitchCreateError, AdapterConnectError,
            StartFailureError: If a bundle fails to come up
            PersistenceError: If the state cannot be written
        """
        lab_path = Path(lab_path)
        if not lab_path.is_dir():
            raise InvalidLabPathError(
                f"Path '{lab_path}' does not exist",
                lab_path=str(lab_path)
            )

        with logging_context(logger=self.logger, operation=f"deploy of {lab_path}"):
            store = DeploymentStateStore(lab_path, self.config.lab)
            if self.config.lab.check_existing_deployment:
                self._ensure_not_deployed(lab_path, store)

            bundles = self.scanner.scan(lab_path)
            if not bundles:
                self.logger.info("Found 0 VMs in lab. Nothing to deploy")
                return DeploymentState()
            self.logger.info(f"Found {len(bundles)} VMs in lab")

            registry = SwitchRegistry(self.hypervisor)
            vm_ids = []
            for bundle in bundles:
                vm = self.pipeline.import_one(bundle, rename, registry)
                vm_ids.append(vm.id)

            state = DeploymentState(switches=registry.snapshot(), vm_ids=vm_ids)
            store.save(state)

            self.logger.info(
                "Lab deployed successfully",
                extra={'vm_count': len(vm_ids), 'switch_count': len(state.switches)}
            )
            return state

    def _ensure_not_deployed(self, lab_path: Path, store: DeploymentStateStore) -> None:
        previous_ids = store.load_vm_ids()
        if not previous_ids:
            return

        live_ids = {vm.id.lower() for vm in self.hypervisor.list_vms()}
        still_live = [vm_id for vm_id in previous_ids if vm_id.lower() in live_ids]
        if still_live:
            raise LabAlreadyDeployedError(
                f"Lab '{lab_path}' is already deployed ({len(still_live)} VMs still present). "
                "Drop it first",
                lab_path=str(lab_path),
                live_vm_ids=still_live
            )
