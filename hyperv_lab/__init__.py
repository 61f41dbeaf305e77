"""
Hyper-V lab SDK - deploy and drop labs of Hyper-V virtual machines

A lab is a directory of exported VM bundles. Deploying a lab imports every
bundle under a new VM id, connects its network adapters to Private switches
created on demand, starts the VMs and records what it created. Dropping a lab
stops and deletes those VMs and switches while keeping the bundles intact
for the next deploy.

Key Components:
- Bundle Scanner: finds importable VM bundles in a lab directory
- Switch Registry: creates each switch name at most once per deploy
- VM Import Pipeline: import, reconcile adapters, connect, start
- Deployment Coordinator: runs the pipeline over a lab and persists state
- Teardown Coordinator: stops and deletes VMs and switches of a lab
"""

from .config import LabSDKConfig, HypervisorConfig, LabConfig, LoggingConfig
from .deploy import DeploymentCoordinator
from .teardown import TeardownCoordinator, TeardownReport
from .importer import VMImportPipeline
from .scanner import BundleScanner
from .switches import SwitchRegistry
from .state import DeploymentStateStore
from .backup import ConfigBackup
from .hypervisor import HypervisorControl, PowerShellHypervisor
from .models import (
    AdapterStatus,
    DeploymentState,
    ImportedVm,
    LabBundle,
    RenamePolicy,
    SwitchKind,
    Vm,
    VmHandle,
)
from .exceptions import (
    LabSDKException,
    InvalidLabPathError,
    AmbiguousBundleError,
    ImportFailureError,
    AdapterConnectError,
    StartFailureError,
    SwitchCreateError,
    PersistenceError,
    HypervisorTransportError,
    LabAlreadyDeployedError,
    ConfigurationError,
)

__version__ = "0.3.0"

__all__ = [
    # Core Components
    "DeploymentCoordinator",
    "TeardownCoordinator",
    "VMImportPipeline",
    "BundleScanner",
    "SwitchRegistry",
    "DeploymentStateStore",
    "ConfigBackup",
    "HypervisorControl",
    "PowerShellHypervisor",

    # Configuration
    "LabSDKConfig",
    "HypervisorConfig",
    "LabConfig",
    "LoggingConfig",

    # Data Models
    "AdapterStatus",
    "DeploymentState",
    "ImportedVm",
    "LabBundle",
    "RenamePolicy",
    "SwitchKind",
    "TeardownReport",
    "Vm",
    "VmHandle",

    # Exceptions
    "LabSDKException",
    "InvalidLabPathError",
    "AmbiguousBundleError",
    "ImportFailureError",
    "AdapterConnectError",
    "StartFailureError",
    "SwitchCreateError",
    "PersistenceError",
    "HypervisorTransportError",
    "LabAlreadyDeployedError",
    "ConfigurationError",
]
