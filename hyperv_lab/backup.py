"""
Backup and restore of a bundle's VM config directory.

Deleting a VM that was imported in place also deletes its config directory,
which is the bundle's own "Virtual Machines" folder. The config is copied to
a hidden folder in the bundle before the delete and copied back afterwards,
so the lab can be deployed again.
"""

import logging
import shutil
from pathlib import Path
from typing import Optional, Union

from .config import LabConfig


logger = logging.getLogger(__name__)


def remove_dir_contents(directory: Path) -> None:
    """Delete everything inside ``directory``, keeping the directory itself."""
    if not directory.exists():
        return
    for path in directory.iterdir():
        if path.is_dir() and not path.is_symlink():
            shutil.rmtree(path)
        else:
            path.unlink()


def copy_dir_contents(src_dir: Path, dest_dir: Path) -> bool:
    """
    Replace the contents of ``dest_dir`` with a copy of the contents of ``src_dir``.

    ``dest_dir`` is created when missing and emptied when present. Nothing
    happens if ``src_dir`` is not a directory.

    Returns:
        True if anything was copied over
    """
    if not src_dir.is_dir():
        return False

    if dest_dir.is_dir():
        remove_dir_contents(dest_dir)
    else:
        dest_dir.mkdir(parents=True)

    for path in src_dir.iterdir():
        target = dest_dir / path.name
        if path.is_dir():
            shutil.copytree(path, target)
        else:
            shutil.copy2(path, target)
    return True


class ConfigBackup:
    """
    Snapshot of one bundle's config directory, scoped to one teardown step.

    Used as a context manager, the backup is taken on entry and restored on
    exit, whether or not the body raised.
    """

    def __init__(self, bundle_path: Union[str, Path], config: Optional[LabConfig] = None):
        self.config = config or LabConfig()
        self.bundle_path = Path(bundle_path)
        self.config_dir = self.bundle_path / self.config.vm_config_dir_name
        self.backup_dir = self.bundle_path / self.config.backup_dir_name

    def back_up(self) -> None:
        """Copy the config directory into the backup folder, dropping stale backups."""
        if copy_dir_contents(self.config_dir, self.backup_dir):
            logger.debug(f"Backed up {self.config_dir} to {self.backup_dir}")

    def restore(self) -> None:
        """Copy the backup into the (recreated) config directory and remove the backup."""
        if not self.backup_dir.is_dir():
            return
        copy_dir_contents(self.backup_dir, self.config_dir)
        shutil.rmtree(self.backup_dir)
        logger.debug(f"Restored {self.config_dir} from backup")

    def __enter__(self) -> 'ConfigBackup':
        self.back_up()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.restore()
