"""
Data models for lab deployment.

Plain records passed between the scanner, the import pipeline, the
coordinators and the hypervisor control interface.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional


class SwitchKind(str, Enum):
    """Hyper-V virtual switch types."""
    PRIVATE = "Private"
    INTERNAL = "Internal"
    EXTERNAL = "External"


class RenameKind(str, Enum):
    """How an imported VM gets its name."""
    NONE = "none"
    NEW_NAME = "new_name"
    ADD_PREFIX = "add_prefix"


@dataclass(frozen=True)
class RenamePolicy:
    """
    Renaming applied to a VM right after import.

    Use the ``none``, ``new_name`` and ``add_prefix`` constructors rather
    than building one by hand.
    """

    kind: RenameKind = RenameKind.NONE
    value: Optional[str] = None

    def __post_init__(self) -> None:
        if self.kind is not RenameKind.NONE and not self.value:
            raise ValueError(f"Rename policy '{self.kind.value}' requires a value")

    @classmethod
    def none(cls) -> 'RenamePolicy':
        return cls()

    @classmethod
    def new_name(cls, name: str) -> 'RenamePolicy':
        return cls(RenameKind.NEW_NAME, name)

    @classmethod
    def add_prefix(cls, prefix: str) -> 'RenamePolicy':
        return cls(RenameKind.ADD_PREFIX, prefix)


@dataclass(frozen=True)
class LabBundle:
    """A directory holding one exportable VM's configuration and disks."""

    path: Path
    folder_name: str
    config_file: Optional[Path] = None


@dataclass(frozen=True)
class VmHandle:
    """Identity of a VM created by an import; ``id`` is never reused."""

    id: str
    name: str


@dataclass
class Vm:
    """A VM as listed by the hypervisor."""

    id: str
    name: str


@dataclass(frozen=True)
class AdapterStatus:
    """
    A network adapter reported after import.

    ``is_missing`` is True when the adapter's original switch does not exist
    on this host; ``switch_name`` is always the name the adapter expects.
    """

    adapter_id: str
    switch_name: str
    is_missing: bool = False


@dataclass
class ImportedVm:
    """Result of importing one bundle."""

    handle: VmHandle
    adapters: List[AdapterStatus] = field(default_factory=list)

    @property
    def id(self) -> str:
        return self.handle.id

    @property
    def name(self) -> str:
        return self.handle.name


@dataclass
class DeploymentState:
    """
    What a deploy created: switch name to switch id, and VM ids in import order.

    Written once at the end of a successful deploy and read back by drop.
    """

    switches: Dict[str, str] = field(default_factory=dict)
    vm_ids: List[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.switches and not self.vm_ids
