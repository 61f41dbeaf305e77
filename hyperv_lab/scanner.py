"""
Bundle discovery for lab directories.

A bundle is an immediate subdirectory of the lab whose config folder
("Virtual Machines" by default) holds exactly one VM config file.
"""

import logging
import uuid
from pathlib import Path
from typing import List, Optional, Union

from .config import LabConfig
from .exceptions import AmbiguousBundleError, InvalidLabPathError
from .models import LabBundle


logger = logging.getLogger(__name__)


class BundleScanner:
    """Finds importable VM bundles in a lab directory."""

    def __init__(self, config: Optional[LabConfig] = None):
        self.config = config or LabConfig()

    def scan(self, lab_path: Union[str, Path]) -> List[LabBundle]:
        """
        List the VM bundles of a lab.

        Bundles come back in directory iteration order, which is OS defined.

        Args:
            lab_path: Lab directory

        Returns:
            One LabBundle per subdirectory holding a single config file

        Raises:
            InvalidLabPathError: If lab_path is not a directory
            AmbiguousBundleError: If any subdirectory holds several config files
        """
        lab_path = Path(lab_path)
        if not lab_path.is_dir():
            raise InvalidLabPathError(
                f"Path '{lab_path}' does not exist",
                lab_path=str(lab_path)
            )

        bundles = []
        for entry in lab_path.iterdir():
            if not entry.is_dir():
                continue
            config_file = self.config_file(entry)
            if config_file is None:
                logger.debug(f"Skipping {entry}: no VM config file")
                continue
            bundles.append(LabBundle(path=entry, folder_name=entry.name, config_file=config_file))

        return bundles

    def config_file(self, bundle_path: Union[str, Path]) -> Optional[Path]:
        """
        Return the single config file of a bundle directory, or None if it has none.

        Raises:
            AmbiguousBundleError: If more than one config file is present
        """
        paths = self._config_file_paths(Path(bundle_path))
        if len(paths) > 1:
            raise AmbiguousBundleError(
                f"More than one {self.config.config_file_extension} file found in '{bundle_path}'",
                bundle_path=str(bundle_path),
                config_files=[p.name for p in paths]
            )
        return paths[0] if paths else None

    def vm_id(self, bundle: LabBundle) -> Optional[str]:
        """
        Map a bundle to the VM id encoded in its config file name.

        Hyper-V names config files after the VM id, so ``<id>.vmcx`` gives
        the id of the VM created from this bundle. Returns None when the
        file name is not a UUID.
        """
        config_file = bundle.config_file or self.config_file(bundle.path)
        if config_file is None:
            return None
        try:
            return str(uuid.UUID(config_file.stem))
        except ValueError:
            return None

    def _config_file_paths(self, bundle_path: Path) -> List[Path]:
        config_dir = bundle_path / self.config.vm_config_dir_name
        if not config_dir.is_dir():
            return []

        extension = self.config.config_file_extension.lower()
        return [
            path for path in config_dir.iterdir()
            if path.is_file() and path.suffix.lower() == extension
        ]
