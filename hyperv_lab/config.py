"""
Configuration management for the Hyper-V lab SDK.

This module provides configuration classes with validation for the SDK,
covering the PowerShell transport used to reach Hyper-V, the on-disk layout
of labs and their persisted state, and logging.
"""

import os
from dataclasses import dataclass, field, asdict
from typing import Dict, Any, Optional, Union
from pathlib import Path
import yaml
from dotenv import load_dotenv

from .exceptions import ConfigurationError


ENV_PREFIX = "HYPERV_LAB_"


@dataclass
class HypervisorConfig:
    """
    Hypervisor transport settings.

    Controls how PowerShell is launched and how much captured output is kept
    when a call fails.
    """

    powershell_path: str = "powershell"
    command_timeout: Optional[int] = None  # seconds, None blocks until done
    max_diagnostic_chars: int = 1000

    def __post_init__(self) -> None:
        """Validate hypervisor configuration after initialization."""
        if not self.powershell_path:
            raise ConfigurationError(
                "powershell_path must not be empty",
                config_key="powershell_path"
            )

        if self.command_timeout is not None:
            self.command_timeout = int(self.command_timeout)
            if self.command_timeout <= 0:
                raise ConfigurationError(
                    "command_timeout must be a positive number of seconds",
                    config_key="command_timeout",
                    config_value=self.command_timeout
                )

        self.max_diagnostic_chars = int(self.max_diagnostic_chars)
        if self.max_diagnostic_chars < 0:
            raise ConfigurationError(
                "max_diagnostic_chars must not be negative",
                config_key="max_diagnostic_chars",
                config_value=self.max_diagnostic_chars
            )


@dataclass
class LabConfig:
    """
    Lab layout settings.

    Names the folders and files the scanner, the state store and the config
    backup look for inside a lab directory.
    """

    # Persisted deployment state, relative to the lab directory
    state_dir_name: str = ".lama"
    switches_file: str = "switches.json"
    vms_file: str = "vms.json"

    # Bundle layout, relative to each bundle directory
    vm_config_dir_name: str = "Virtual Machines"
    config_file_extension: str = ".vmcx"
    backup_dir_name: str = ".lama"

    check_existing_deployment: bool = False

    def __post_init__(self) -> None:
        """Validate lab layout configuration after initialization."""
        for key in ("state_dir_name", "switches_file", "vms_file",
                    "vm_config_dir_name", "backup_dir_name"):
            value = getattr(self, key)
            if not value or os.sep in value or "/" in value:
                raise ConfigurationError(
                    f"{key} must be a plain file or folder name",
                    config_key=key,
                    config_value=value
                )

        if self.backup_dir_name == self.vm_config_dir_name:
            raise ConfigurationError(
                "backup_dir_name must differ from vm_config_dir_name",
                config_key="backup_dir_name",
                config_value=self.backup_dir_name
            )

        if not self.config_file_extension.startswith("."):
            self.config_file_extension = "." + self.config_file_extension

        if isinstance(self.check_existing_deployment, str):
            self.check_existing_deployment = _parse_bool(
                self.check_existing_deployment, "check_existing_deployment"
            )


@dataclass
class LoggingConfig:
    """
    Logging configuration settings.

    Defines log levels, output destinations and formatting for the progress
    and diagnostic output of deploy and drop runs.
    """

    level: str = "INFO"
    format: str = "text"  # json or text
    output: str = "console"  # console, file, or both
    file_path: Optional[str] = None
    max_file_size: str = "10MB"
    backup_count: int = 5
    include_caller_info: bool = False

    def __post_init__(self) -> None:
        """Validate logging configuration after initialization."""
        self.level = self.level.upper()
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if self.level not in valid_levels:
            raise ConfigurationError(
                f"Log level must be one of {valid_levels}",
                config_key="level",
                config_value=self.level
            )

        if self.format not in ("json", "text"):
            raise ConfigurationError(
                "Log format must be 'json' or 'text'",
                config_key="format",
                config_value=self.format
            )

        if self.output not in ("console", "file", "both"):
            raise ConfigurationError(
                "Log output must be 'console', 'file' or 'both'",
                config_key="output",
                config_value=self.output
            )

        if self.output in ("file", "both") and not self.file_path:
            raise ConfigurationError(
                "file_path is required when output includes 'file'",
                config_key="file_path"
            )

        self.backup_count = int(self.backup_count)
        if isinstance(self.include_caller_info, str):
            self.include_caller_info = _parse_bool(self.include_caller_info, "include_caller_info")


@dataclass
class LabSDKConfig:
    """
    Main configuration class for the lab SDK.

    Combines all configuration sections and provides methods for loading
    configuration from files, environment variables, and validation.
    """

    hypervisor: HypervisorConfig = field(default_factory=HypervisorConfig)
    lab: LabConfig = field(default_factory=LabConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_file(cls, config_path: Union[str, Path]) -> 'LabSDKConfig':
        """
        Load configuration from YAML file.

        Args:
            config_path: Path to YAML configuration file

        Returns:
            LabSDKConfig instance with loaded configuration

        Raises:
            ConfigurationError: If file cannot be read or parsed
        """
        path = Path(config_path)
        if not path.is_file():
            raise ConfigurationError(
                f"Configuration file not found: {config_path}",
                config_key="config_path",
                config_value=str(config_path)
            )

        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(
                f"Failed to parse YAML configuration: {e}",
                config_key="yaml_parsing"
            ) from e
        except OSError as e:
            raise ConfigurationError(
                f"Failed to load configuration file: {e}",
                config_key="file_loading"
            ) from e

        return cls.from_dict(data or {})

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'LabSDKConfig':
        """
        Create configuration from dictionary.

        Missing sections fall back to their defaults; unknown keys inside a
        section are rejected.

        Args:
            data: Configuration dictionary

        Returns:
            LabSDKConfig instance
        """
        if not isinstance(data, dict):
            raise ConfigurationError(
                "Configuration must be a mapping of sections",
                config_key="root"
            )

        sections = {
            'hypervisor': HypervisorConfig,
            'lab': LabConfig,
            'logging': LoggingConfig,
        }
        kwargs = {}
        for name, section_cls in sections.items():
            section_data = data.get(name) or {}
            try:
                kwargs[name] = section_cls(**section_data)
            except TypeError as e:
                raise ConfigurationError(
                    f"Invalid '{name}' configuration: {e}",
                    config_key=name
                ) from e

        return cls(**kwargs)

    @classmethod
    def from_dotenv(cls, dotenv_path: Optional[Union[str, Path]] = None) -> 'LabSDKConfig':
        """
        Load configuration from .env file.

        Args:
            dotenv_path: Path to .env file. If None, looks for .env in current directory

        Returns:
            LabSDKConfig instance with .env-based configuration

        Raises:
            ConfigurationError: If the file cannot be found
        """
        if dotenv_path is None:
            dotenv_path = Path.cwd() / '.env'
        else:
            dotenv_path = Path(dotenv_path)

        if not dotenv_path.exists():
            raise ConfigurationError(
                f".env file not found: {dotenv_path}",
                config_key="dotenv_path",
                config_value=str(dotenv_path)
            )

        load_dotenv(dotenv_path)

        return cls.from_environment()

    @classmethod
    def from_environment(cls) -> 'LabSDKConfig':
        """
        Create configuration from environment variables.

        Environment variables should be prefixed with 'HYPERV_LAB_'
        and use double underscores for nested configuration.

        Examples:
            HYPERV_LAB_HYPERVISOR__COMMAND_TIMEOUT=600
            HYPERV_LAB_LAB__STATE_DIR_NAME=.lab-state
            HYPERV_LAB_LOGGING__LEVEL=DEBUG

        Returns:
            LabSDKConfig instance with environment-based configuration
        """
        data: Dict[str, Dict[str, str]] = {}

        for key, value in os.environ.items():
            if key.startswith(ENV_PREFIX):
                config_key = key[len(ENV_PREFIX):]
                if '__' in config_key:
                    section, name = config_key.split('__', 1)
                    data.setdefault(section.lower(), {})[name.lower()] = value

        return cls.from_dict(data)

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert configuration to dictionary.

        Returns:
            Dictionary representation of configuration
        """
        return {
            'hypervisor': asdict(self.hypervisor),
            'lab': asdict(self.lab),
            'logging': asdict(self.logging),
        }


def _parse_bool(value: str, key: str) -> bool:
    lowered = value.strip().lower()
    if lowered in ("1", "true", "yes", "on"):
        return True
    if lowered in ("0", "false", "no", "off"):
        return False
    raise ConfigurationError(
        f"{key} must be a boolean",
        config_key=key,
        config_value=value
    )
