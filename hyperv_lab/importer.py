"""
VM import pipeline.

Drives one bundle through import, adapter reconciliation, adapter connection
and start. Each step depends on the previous one; nothing is rolled back when
a later step fails.
"""

import logging
from typing import Optional

from .exceptions import (
    AdapterConnectError,
    HypervisorTransportError,
    ImportFailureError,
    StartFailureError,
)
from .hypervisor import EXIT_NO_COMPAT_REPORT, EXIT_UNRESOLVED_INCOMPATIBILITIES, HypervisorControl
from .models import ImportedVm, LabBundle, RenamePolicy
from .switches import SwitchRegistry


logger = logging.getLogger(__name__)

_IMPORT_FAILURE_REASONS = {
    EXIT_NO_COMPAT_REPORT: "failed to generate compatibility report",
    EXIT_UNRESOLVED_INCOMPATIBILITIES: "unresolved incompatibilities",
}


class VMImportPipeline:
    """
    Imports a single VM bundle and brings it up on the lab's switches.

    The switch registry is passed in so that switch reuse spans every bundle
    of a deploy, not just the adapters of one VM.
    """

    def __init__(self, hypervisor: HypervisorControl):
        self.hypervisor = hypervisor

    def import_one(
        self,
        bundle: LabBundle,
        rename: Optional[RenamePolicy],
        registry: SwitchRegistry
    ) -> ImportedVm:
        """
        Import, reconnect and start one VM.

        Args:
            bundle: Bundle to import
            rename: Renaming applied after import, or None to keep the name
            registry: Switch registry of the current deploy run

        Returns:
            The imported VM with every adapter it reported

        Raises:
            ImportFailureError: If the import fails
            SwitchCreateError: If a required switch cannot be created
            AdapterConnectError: If an adapter cannot be connected
            StartFailureError: If the VM cannot be started
        """
        vm = self._import(bundle, rename)

        for adapter in vm.adapters:
            if not adapter.switch_name:
                logger.debug(f"==> {vm.name}: Adapter {adapter.adapter_id} is not connected, skipping")
                continue
            switch_id = registry.resolve(adapter.switch_name, vm_name=vm.name)

            logger.info(f"==> {vm.name}: Connecting to switch '{adapter.switch_name}'...")
            try:
                self.hypervisor.connect_adapter(vm.id, adapter.adapter_id, switch_id)
            except HypervisorTransportError as e:
                raise AdapterConnectError(
                    f"VM {vm.id} was imported but adapter {adapter.adapter_id} could not be "
                    f"connected to switch '{adapter.switch_name}': {e.message}",
                    vm_id=vm.id,
                    adapter_id=adapter.adapter_id,
                    switch_name=adapter.switch_name,
                    details=dict(e.details)
                ) from e

        logger.info(f"==> {vm.name}: Starting VM...")
        try:
            found = self.hypervisor.start_vm(vm.id)
        except HypervisorTransportError as e:
            raise StartFailureError(
                f"Failed to start VM {vm.id}: {e.message}",
                vm_id=vm.id,
                details=dict(e.details)
            ) from e
        if not found:
            raise StartFailureError(
                f"VM {vm.id} disappeared between import and start",
                vm_id=vm.id
            )

        logger.info(f"==> {vm.name}: Started", extra={'vm_id': vm.id})
        return vm

    def _import(self, bundle: LabBundle, rename: Optional[RenamePolicy]) -> ImportedVm:
        logger.info(f"Importing VM {bundle.folder_name}...")
        try:
            vm = self.hypervisor.import_vm(bundle.path, rename)
        except HypervisorTransportError as e:
            reason = _IMPORT_FAILURE_REASONS.get(e.exit_code, e.message)
            raise ImportFailureError(
                f"Failed to import VM from '{bundle.path}': {reason}",
                bundle_path=str(bundle.path),
                details=dict(e.details)
            ) from e

        logger.info(
            f"Imported VM {bundle.folder_name} as '{vm.name}' (ID: {vm.id})",
            extra={'vm_id': vm.id, 'adapter_count': len(vm.adapters)}
        )
        return vm
