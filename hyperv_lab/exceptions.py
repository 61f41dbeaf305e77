"""
Custom exceptions for the Hyper-V lab SDK.

This module defines all custom exceptions used throughout the SDK, providing
clear error reporting for lab scanning, VM import, switch reconciliation,
state persistence and hypervisor transport failures.
"""

from typing import Optional, Dict, Any


class LabSDKException(Exception):
    """
    Base exception for all lab SDK errors.

    This is the root exception class that all other SDK exceptions inherit from.
    It provides common functionality for error reporting and debugging.
    """

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ) -> None:
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}

    def __str__(self) -> str:
        if self.error_code:
            return f"[{self.error_code}] {self.message}"
        return self.message

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for serialization."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "error_code": self.error_code,
            "details": self.details
        }


class InvalidLabPathError(LabSDKException):
    """Raised when a lab path does not point to an existing directory."""

    def __init__(self, message: str, lab_path: Optional[str] = None, **kwargs) -> None:
        details = kwargs.get('details', {})
        if lab_path:
            details['lab_path'] = lab_path

        super().__init__(
            message=message,
            error_code=kwargs.get('error_code', 'INVALID_LAB_PATH'),
            details=details
        )
        self.lab_path = lab_path


class AmbiguousBundleError(LabSDKException):
    """
    Raised when a bundle directory holds more than one VM config file.

    The scan is aborted as a whole: a bundle with several config files means
    the lab has been tampered with and there is no safe way to pick one.
    """

    def __init__(
        self,
        message: str,
        bundle_path: Optional[str] = None,
        config_files: Optional[list] = None,
        **kwargs
    ) -> None:
        details = kwargs.get('details', {})
        if bundle_path:
            details['bundle_path'] = bundle_path
        if config_files:
            details['config_files'] = config_files

        super().__init__(
            message=message,
            error_code=kwargs.get('error_code', 'AMBIGUOUS_BUNDLE'),
            details=details
        )
        self.bundle_path = bundle_path
        self.config_files = config_files or []


class HypervisorTransportError(LabSDKException):
    """
    Raised when a hypervisor control call could not complete.

    This exception is thrown by the hypervisor transport when:
    - The PowerShell process cannot be spawned
    - The process exits with a failure code
    - The call times out
    - The output cannot be parsed

    Captured stdout and stderr are kept (truncated) for diagnostics.
    """

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        exit_code: Optional[int] = None,
        stdout: Optional[str] = None,
        stderr: Optional[str] = None,
        **kwargs
    ) -> None:
        details = kwargs.get('details', {})
        if operation:
            details['operation'] = operation
        if exit_code is not None:
            details['exit_code'] = exit_code
        if stdout is not None:
            details['stdout'] = stdout
        if stderr is not None:
            details['stderr'] = stderr

        super().__init__(
            message=message,
            error_code=kwargs.get('error_code', 'HYPERVISOR_TRANSPORT_FAILED'),
            details=details
        )
        self.operation = operation
        self.exit_code = exit_code
        self.stdout = stdout
        self.stderr = stderr


class ImportFailureError(LabSDKException):
    """
    Raised when a VM bundle cannot be imported.

    This exception is thrown when:
    - The compatibility report cannot be generated
    - Incompatibilities other than a missing switch remain unresolved
    - The import itself fails
    """

    def __init__(
        self,
        message: str,
        bundle_path: Optional[str] = None,
        **kwargs
    ) -> None:
        details = kwargs.get('details', {})
        if bundle_path:
            details['bundle_path'] = bundle_path

        super().__init__(
            message=message,
            error_code=kwargs.get('error_code', 'VM_IMPORT_FAILED'),
            details=details
        )
        self.bundle_path = bundle_path


class AdapterConnectError(LabSDKException):
    """
    Raised when an imported VM's network adapter cannot be connected.

    The VM stays imported but misconfigured; the VM id is carried so an
    operator can find it.
    """

    def __init__(
        self,
        message: str,
        vm_id: Optional[str] = None,
        adapter_id: Optional[str] = None,
        switch_name: Optional[str] = None,
        **kwargs
    ) -> None:
        details = kwargs.get('details', {})
        if vm_id:
            details['vm_id'] = vm_id
        if adapter_id:
            details['adapter_id'] = adapter_id
        if switch_name:
            details['switch_name'] = switch_name

        super().__init__(
            message=message,
            error_code=kwargs.get('error_code', 'ADAPTER_CONNECT_FAILED'),
            details=details
        )
        self.vm_id = vm_id
        self.adapter_id = adapter_id
        self.switch_name = switch_name


class StartFailureError(LabSDKException):
    """Raised when an imported VM cannot be started or vanished before start."""

    def __init__(self, message: str, vm_id: Optional[str] = None, **kwargs) -> None:
        details = kwargs.get('details', {})
        if vm_id:
            details['vm_id'] = vm_id

        super().__init__(
            message=message,
            error_code=kwargs.get('error_code', 'VM_START_FAILED'),
            details=details
        )
        self.vm_id = vm_id


class SwitchCreateError(LabSDKException):
    """Raised when a virtual switch cannot be created."""

    def __init__(self, message: str, switch_name: Optional[str] = None, **kwargs) -> None:
        details = kwargs.get('details', {})
        if switch_name:
            details['switch_name'] = switch_name

        super().__init__(
            message=message,
            error_code=kwargs.get('error_code', 'SWITCH_CREATE_FAILED'),
            details=details
        )
        self.switch_name = switch_name


class PersistenceError(LabSDKException):
    """
    Raised when deployment state cannot be read or written.

    This exception is thrown when:
    - The state folder cannot be created
    - A state file cannot be written
    - A state file exists but is unreadable or malformed
    """

    def __init__(self, message: str, file_path: Optional[str] = None, **kwargs) -> None:
        details = kwargs.get('details', {})
        if file_path:
            details['file_path'] = file_path

        super().__init__(
            message=message,
            error_code=kwargs.get('error_code', 'STATE_PERSISTENCE_FAILED'),
            details=details
        )
        self.file_path = file_path


class LabAlreadyDeployedError(LabSDKException):
    """Raised when VMs recorded by a previous deploy are still present on the host."""

    def __init__(
        self,
        message: str,
        lab_path: Optional[str] = None,
        live_vm_ids: Optional[list] = None,
        **kwargs
    ) -> None:
        details = kwargs.get('details', {})
        if lab_path:
            details['lab_path'] = lab_path
        if live_vm_ids:
            details['live_vm_ids'] = live_vm_ids

        super().__init__(
            message=message,
            error_code=kwargs.get('error_code', 'LAB_ALREADY_DEPLOYED'),
            details=details
        )
        self.lab_path = lab_path
        self.live_vm_ids = live_vm_ids or []


class ConfigurationError(LabSDKException):
    """
    Raised when configuration validation fails.

    This exception is thrown when:
    - Required configuration parameters are missing
    - Configuration values are invalid
    - A configuration file cannot be read or parsed
    """

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        config_value: Optional[Any] = None,
        **kwargs
    ) -> None:
        details = kwargs.get('details', {})
        if config_key:
            details['config_key'] = config_key
        if config_value is not None:
            details['config_value'] = str(config_value)

        super().__init__(
            message=message,
            error_code=kwargs.get('error_code', 'CONFIGURATION_ERROR'),
            details=details
        )
        self.config_key = config_key
        self.config_value = config_value
