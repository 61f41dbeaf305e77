"""
Pytest configuration and shared fixtures for lab SDK tests.

This module provides a recording in-memory hypervisor and helpers that build
lab directories on disk, shared across all test modules in the suite.
"""

import shutil
import uuid
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

import pytest

from hyperv_lab.hypervisor import HypervisorControl
from hyperv_lab.models import AdapterStatus, ImportedVm, RenameKind, RenamePolicy, SwitchKind, Vm, VmHandle


class FakeHypervisor(HypervisorControl):
    """
    In-memory hypervisor recording every call.

    Bundles are registered with the adapters an import of them reports.
    ``fail`` maps an operation name (optionally ``"op:key"``) to the error
    the next matching call raises. Deleting a VM removes its bundle's config
    directory, like Remove-VM does for VMs imported in place. Importing
    renames the bundle's config files after the new VM id.
    """

    def __init__(self):
        self.calls: List[Tuple] = []
        self.bundles: Dict[str, Tuple[str, List[Tuple[str, bool]]]] = {}
        self.vms: Dict[str, dict] = {}
        self.switches: Dict[str, str] = {}
        self.fail: Dict[str, Exception] = {}
        self.start_returns_found = True

    def register_bundle(self, bundle_path: Union[str, Path], vm_name: str,
                        adapters: Optional[List[Tuple[str, bool]]] = None) -> None:
        self.bundles[str(bundle_path)] = (vm_name, adapters or [])

    def add_vm(self, vm_id: str, name: str, bundle_path: Optional[Path] = None) -> None:
        self.vms[vm_id] = {'name': name, 'bundle_path': bundle_path, 'running': True}

    def calls_to(self, operation: str) -> List[Tuple]:
        return [call for call in self.calls if call[0] == operation]

    def _maybe_fail(self, operation: str, key: str = "") -> None:
        for name in (f"{operation}:{key}", operation):
            if name in self.fail:
                raise self.fail.pop(name)

    def list_vms(self) -> List[Vm]:
        self.calls.append(("list_vms",))
        self._maybe_fail("list_vms")
        return [Vm(id=vm_id, name=vm['name']) for vm_id, vm in self.vms.items()]

    def import_vm(self, bundle_path, rename: Optional[RenamePolicy] = None) -> ImportedVm:
        bundle_path = Path(bundle_path)
        self.calls.append(("import_vm", str(bundle_path), rename))
        self._maybe_fail("import_vm", bundle_path.name)

        original_name, adapters = self.bundles[str(bundle_path)]
        name = original_name
        if rename is not None and rename.kind is RenameKind.NEW_NAME:
            name = rename.value
        elif rename is not None and rename.kind is RenameKind.ADD_PREFIX:
            name = f"{rename.value}_{original_name}"
        vm_id = str(uuid.uuid4())
        self.vms[vm_id] = {'name': name, 'bundle_path': bundle_path, 'running': False}

        # In-place import leaves the config under the new id
        config_dir = bundle_path / "Virtual Machines"
        if config_dir.is_dir():
            for path in list(config_dir.iterdir()):
                path.rename(config_dir / f"{vm_id.upper()}{path.suffix}")
        return ImportedVm(
            handle=VmHandle(id=vm_id, name=name),
            adapters=[
                AdapterStatus(adapter_id=f"{vm_id}\\adapter-{i}", switch_name=switch, is_missing=missing)
                for i, (switch, missing) in enumerate(adapters)
            ],
        )

    def start_vm(self, vm_id: str) -> bool:
        self.calls.append(("start_vm", vm_id))
        self._maybe_fail("start_vm", vm_id)
        if not self.start_returns_found or vm_id not in self.vms:
            return False
        self.vms[vm_id]['running'] = True
        return True

    def stop_vm(self, vm_id: str) -> bool:
        self.calls.append(("stop_vm", vm_id))
        self._maybe_fail("stop_vm", vm_id)
        if vm_id not in self.vms:
            return False
        self.vms[vm_id]['running'] = False
        return True

    def delete_vm(self, vm_id: str) -> bool:
        self.calls.append(("delete_vm", vm_id))
        self._maybe_fail("delete_vm", vm_id)
        vm = self.vms.pop(vm_id, None)
        if vm is None:
            return False
        if vm['bundle_path'] is not None:
            shutil.rmtree(Path(vm['bundle_path']) / "Virtual Machines", ignore_errors=True)
        return True

    def create_switch(self, name: str, kind: SwitchKind) -> str:
        self.calls.append(("create_switch", name, kind))
        self._maybe_fail("create_switch", name)
        switch_id = str(uuid.uuid4())
        self.switches[switch_id] = name
        return switch_id

    def delete_switch(self, switch_id: str) -> bool:
        self.calls.append(("delete_switch", switch_id))
        self._maybe_fail("delete_switch", switch_id)
        return self.switches.pop(switch_id, None) is not None

    def connect_adapter(self, vm_id: str, adapter_id: str, switch_id: str) -> None:
        self.calls.append(("connect_adapter", vm_id, adapter_id, switch_id))
        self._maybe_fail("connect_adapter", vm_id)


def make_bundle(lab_path: Path, folder_name: str, vm_id: Optional[str] = None,
                config_files: int = 1) -> Path:
    """
    Create a bundle directory the way an exported Hyper-V VM looks on disk.

    Returns:
        The bundle directory
    """
    bundle = lab_path / folder_name
    config_dir = bundle / "Virtual Machines"
    config_dir.mkdir(parents=True)
    (bundle / "Virtual Hard Disks").mkdir()
    (bundle / "Virtual Hard Disks" / "disk.vhdx").write_bytes(b"\x00disk")

    for i in range(config_files):
        file_id = vm_id if (vm_id and i == 0) else str(uuid.uuid4()).upper()
        (config_dir / f"{file_id}.vmcx").write_bytes(f"config-{folder_name}-{i}".encode())
        (config_dir / f"{file_id}.vmgs").write_bytes(b"guest-state")
    return bundle


@pytest.fixture
def hypervisor() -> FakeHypervisor:
    """Provide a fresh recording hypervisor."""
    return FakeHypervisor()


@pytest.fixture
def lab_dir(tmp_path: Path) -> Path:
    """Provide an empty lab directory."""
    lab = tmp_path / "demo"
    lab.mkdir()
    return lab


@pytest.fixture
def demo_lab(lab_dir: Path, hypervisor: FakeHypervisor) -> Path:
    """
    Provide the two-VM demo lab.

    ``vm1`` needs switch LAN1; ``vm2`` needs LAN1 and LAN2.
    """
    vm1 = make_bundle(lab_dir, "vm1")
    vm2 = make_bundle(lab_dir, "vm2")
    hypervisor.register_bundle(vm1, "vm1", [("LAN1", True)])
    hypervisor.register_bundle(vm2, "vm2", [("LAN1", True), ("LAN2", True)])
    return lab_dir


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests (fast, isolated)"
    )


def pytest_collection_modifyitems(config, items):
    """Mark tests based on their location."""
    for item in items:
        if "unit" in str(item.path):
            item.add_marker(pytest.mark.unit)


@pytest.fixture
def bundle_factory():
    """Provide the bundle builder to tests."""
    return make_bundle
