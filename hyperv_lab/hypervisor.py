"""
Hyper-V control interface.

``HypervisorControl`` is the blocking facade the deploy and teardown
workflows talk to. ``PowerShellHypervisor`` implements it by running one
PowerShell script per call and reading a JSON document from its stdout.
"""

import json
import logging
import subprocess
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, List, Optional, Union

from .config import HypervisorConfig
from .exceptions import HypervisorTransportError
from .models import (
    AdapterStatus,
    ImportedVm,
    RenameKind,
    RenamePolicy,
    SwitchKind,
    Vm,
    VmHandle,
)


logger = logging.getLogger(__name__)

# Compare-VM message id for "Could not find Ethernet switch '<name>'."
MISSING_SWITCH_MESSAGE_ID = 33012

EXIT_NO_COMPAT_REPORT = 3
EXIT_UNRESOLVED_INCOMPATIBILITIES = 4


class HypervisorControl(ABC):
    """
    Abstract interface for hypervisor operations.

    Every call blocks until the hypervisor has finished. Failures to reach
    the hypervisor or to run an operation raise HypervisorTransportError.
    Operations on a single object return False when that object does not
    exist instead of raising.
    """

    @abstractmethod
    def list_vms(self) -> List[Vm]:
        """List all VMs on the host."""

    @abstractmethod
    def import_vm(self, bundle_path: Union[str, Path], rename: Optional[RenamePolicy] = None) -> ImportedVm:
        """Import a bundle in place under a newly generated VM id."""

    @abstractmethod
    def start_vm(self, vm_id: str) -> bool:
        """Start a VM. Returns False if it does not exist."""

    @abstractmethod
    def stop_vm(self, vm_id: str) -> bool:
        """Stop a VM. Returns False if it does not exist."""

    @abstractmethod
    def delete_vm(self, vm_id: str) -> bool:
        """Remove a VM. Returns False if it does not exist."""

    @abstractmethod
    def create_switch(self, name: str, kind: SwitchKind) -> str:
        """Create a virtual switch and return its id."""

    @abstractmethod
    def delete_switch(self, switch_id: str) -> bool:
        """Remove a virtual switch. Returns False if it does not exist."""

    @abstractmethod
    def connect_adapter(self, vm_id: str, adapter_id: str, switch_id: str) -> None:
        """Connect one network adapter of a VM to a switch."""


def ps_quote(value: Any) -> str:
    """Render a value as a single-quoted PowerShell string literal."""
    return "'" + str(value).replace("'", "''") + "'"


def truncate_output(text: Optional[str], limit: int) -> str:
    """Trim captured output for error reports; blank output becomes '<empty>'."""
    text = (text or "")[:limit]
    return text if text.strip() else "<empty>"


_IMPORT_SCRIPT = r"""$ErrorActionPreference = "Stop";
$path = {path};
$virtual_disks_path = Join-Path $path "Virtual Hard Disks";
$config_file_path = Get-ChildItem -Path $path -Filter *.vmcx -Recurse -ErrorAction SilentlyContinue | Select-Object -First 1 | ForEach-Object {{ $_.FullName }};
$report = Compare-VM -Path $config_file_path -VirtualMachinePath $path -VhdDestinationPath $virtual_disks_path -GenerateNewId -Copy;
if ($null -eq $report) {{
    Write-Output "Failed to generate compatibility report";
    exit {exit_no_report};
}}
$missing = @{{}};
foreach ($incompatibility in $report.Incompatibilities) {{
    if ($incompatibility.MessageId -eq {missing_switch_id}) {{
        $switch_name = $incompatibility.Message -replace "^Could not find Ethernet switch '(.*)'\.$", '$1';
        $missing[$incompatibility.Source.Name + "|" + $incompatibility.Source.MacAddress] = $switch_name;
        $incompatibility.Source | Disconnect-VMNetworkAdapter;
    }}
}}
$expected = @($report.VM.NetworkAdapters | ForEach-Object {{
    $key = $_.Name + "|" + $_.MacAddress;
    if ($missing.ContainsKey($key)) {{ @{{ SwitchName = $missing[$key]; IsMissing = $true }} }}
    else {{ @{{ SwitchName = $_.SwitchName; IsMissing = $false }} }}
}});
$report = Compare-VM -CompatibilityReport $report;
if ($report.Incompatibilities.Length -gt 0) {{
    Write-Output "Failed to resolve all incompatibilities";
    $report.Incompatibilities | ForEach-Object {{ Write-Output $_.Message }};
    exit {exit_unresolved};
}}
$vm = Import-VM -CompatibilityReport $report;
{rename}
$adapters = @(Get-VMNetworkAdapter -VM $vm);
$statuses = @();
for ($i = 0; $i -lt $adapters.Count; $i++) {{
    $statuses += @{{ AdapterId = $adapters[$i].Id; SwitchName = $expected[$i].SwitchName; IsMissing = $expected[$i].IsMissing }};
}}
ConvertTo-Json -Depth 4 -InputObject @{{ VmId = $vm.Id.ToString(); VmName = $vm.Name; Adapters = $statuses }}"""

_VM_ACTION_SCRIPT = r"""$ErrorActionPreference = "Stop";
$vm = Get-VM -Id {vm_id} -ErrorAction SilentlyContinue;
if ($null -eq $vm) {{ ConvertTo-Json -InputObject @{{ Found = $false }}; exit 0 }}
{action};
ConvertTo-Json -InputObject @{{ Found = $true }}"""


class PowerShellHypervisor(HypervisorControl):
    """
    Hyper-V control through the PowerShell Hyper-V module.

    Each call spawns ``powershell -NoProfile -NonInteractive -Command``
    with a generated script and waits for it to exit.
    """

    def __init__(self, config: Optional[HypervisorConfig] = None):
        self.config = config or HypervisorConfig()
        self.logger = logging.getLogger(__name__)

    def list_vms(self) -> List[Vm]:
        script = (
            '$ErrorActionPreference = "Stop";'
            'ConvertTo-Json -InputObject @(Get-VM | ForEach-Object '
            '{ @{ Id = $_.Id.ToString(); Name = $_.Name } })'
        )
        data = self._run("list_vms", script)
        if isinstance(data, dict):
            data = [data]
        return [Vm(id=str(item["Id"]), name=item["Name"]) for item in data or []]

    def import_vm(self, bundle_path: Union[str, Path], rename: Optional[RenamePolicy] = None) -> ImportedVm:
        bundle_path = Path(bundle_path)
        if not bundle_path.is_dir():
            raise HypervisorTransportError(
                f"Path does not point to a valid directory: {bundle_path}",
                operation="import_vm"
            )

        script = _IMPORT_SCRIPT.format(
            path=ps_quote(bundle_path),
            exit_no_report=EXIT_NO_COMPAT_REPORT,
            exit_unresolved=EXIT_UNRESOLVED_INCOMPATIBILITIES,
            missing_switch_id=MISSING_SWITCH_MESSAGE_ID,
            rename=self._rename_statement(rename),
        )
        data = self._run("import_vm", script)

        try:
            adapters = data.get("Adapters") or []
            if isinstance(adapters, dict):
                adapters = [adapters]
            return ImportedVm(
                handle=VmHandle(id=str(data["VmId"]), name=data["VmName"]),
                adapters=[
                    AdapterStatus(
                        adapter_id=str(a["AdapterId"]),
                        switch_name=a.get("SwitchName") or "",
                        is_missing=bool(a.get("IsMissing")),
                    )
                    for a in adapters
                ],
            )
        except (AttributeError, KeyError, TypeError) as e:
            raise HypervisorTransportError(
                f"Unexpected import output: {e}",
                operation="import_vm"
            ) from e

    def start_vm(self, vm_id: str) -> bool:
        return self._vm_action("start_vm", vm_id, "Start-VM -VM $vm")

    def stop_vm(self, vm_id: str) -> bool:
        return self._vm_action("stop_vm", vm_id, "Stop-VM -VM $vm -Force")

    def delete_vm(self, vm_id: str) -> bool:
        return self._vm_action("delete_vm", vm_id, "Remove-VM -VM $vm -Force")

    def create_switch(self, name: str, kind: SwitchKind) -> str:
        script = (
            '$ErrorActionPreference = "Stop";'
            f'$switch = New-VMSwitch -Name {ps_quote(name)} -SwitchType {SwitchKind(kind).value};'
            'ConvertTo-Json -InputObject @{ Id = $switch.Id.ToString() }'
        )
        data = self._run("create_switch", script)
        try:
            return str(data["Id"])
        except (KeyError, TypeError) as e:
            raise HypervisorTransportError(
                f"Unexpected create_switch output: {e}",
                operation="create_switch"
            ) from e

    def delete_switch(self, switch_id: str) -> bool:
        script = (
            '$ErrorActionPreference = "Stop";'
            f'$switch = Get-VMSwitch -Id {ps_quote(switch_id)} -ErrorAction SilentlyContinue;'
            'if ($null -eq $switch) { ConvertTo-Json -InputObject @{ Found = $false }; exit 0 }'
            'Remove-VMSwitch -VMSwitch $switch -Force;'
            'ConvertTo-Json -InputObject @{ Found = $true }'
        )
        return self._found(self._run("delete_switch", script), "delete_switch")

    def connect_adapter(self, vm_id: str, adapter_id: str, switch_id: str) -> None:
        script = (
            '$ErrorActionPreference = "Stop";'
            f'$switch = Get-VMSwitch -Id {ps_quote(switch_id)};'
            f'$adapter = Get-VM -Id {ps_quote(vm_id)} | Get-VMNetworkAdapter '
            f'| Where-Object {{ $_.Id -eq {ps_quote(adapter_id)} }};'
            'if ($null -eq $adapter) { Write-Output "Network adapter not found"; exit 1 }'
            'Connect-VMNetworkAdapter -VMNetworkAdapter $adapter -VMSwitch $switch;'
            'ConvertTo-Json -InputObject @{ Connected = $true }'
        )
        self._run("connect_adapter", script)

    def _vm_action(self, operation: str, vm_id: str, action: str) -> bool:
        script = _VM_ACTION_SCRIPT.format(vm_id=ps_quote(vm_id), action=action)
        return self._found(self._run(operation, script), operation)

    @staticmethod
    def _found(data: Any, operation: str) -> bool:
        if not isinstance(data, dict) or "Found" not in data:
            raise HypervisorTransportError(
                f"Unexpected {operation} output: {data!r}",
                operation=operation
            )
        return bool(data["Found"])

    @staticmethod
    def _rename_statement(rename: Optional[RenamePolicy]) -> str:
        if rename is None or rename.kind is RenameKind.NONE:
            return ""
        if rename.kind is RenameKind.ADD_PREFIX:
            new_name = f"({ps_quote(rename.value + '_')} + $vm.Name)"
        else:
            new_name = ps_quote(rename.value)
        return f"Rename-VM -VM $vm -NewName {new_name}; $vm = Get-VM -Id $vm.Id;"

    def _run(self, operation: str, script: str) -> Any:
        """
        Run a script and decode the JSON it prints.

        Raises:
            HypervisorTransportError: If the process cannot run, fails, times
                out, or prints something other than JSON
        """
        command = [
            self.config.powershell_path,
            "-NoProfile",
            "-NonInteractive",
            "-Command",
            script,
        ]
        limit = self.config.max_diagnostic_chars
        self.logger.debug(f"Running PowerShell for {operation}")

        try:
            proc = subprocess.run(
                command,
                capture_output=True,
                text=True,
                timeout=self.config.command_timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise HypervisorTransportError(
                f"PowerShell timed out after {self.config.command_timeout}s during {operation}",
                operation=operation,
                stdout=truncate_output(_as_text(e.stdout), limit),
                stderr=truncate_output(_as_text(e.stderr), limit),
            ) from e
        except OSError as e:
            raise HypervisorTransportError(
                f"Failed to spawn PowerShell process: {e}",
                operation=operation
            ) from e

        if proc.returncode != 0:
            stdout = truncate_output(proc.stdout, limit)
            stderr = truncate_output(proc.stderr, limit)
            raise HypervisorTransportError(
                f"PowerShell returned failure exit code: {proc.returncode}.\n"
                f"Stdout: {stdout}\nStderr: {stderr}",
                operation=operation,
                exit_code=proc.returncode,
                stdout=stdout,
                stderr=stderr,
            )

        try:
            return json.loads(proc.stdout) if proc.stdout.strip() else None
        except json.JSONDecodeError as e:
            raise HypervisorTransportError(
                f"Failed to parse PowerShell output: {e}",
                operation=operation,
                exit_code=proc.returncode,
                stdout=truncate_output(proc.stdout, limit),
            ) from e


def _as_text(output: Any) -> str:
    if isinstance(output, bytes):
        return output.decode(errors="replace")
    return output or ""
