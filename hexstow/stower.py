"""Drop directories whose files are moved into a :class:`~hexstow.hexstow.FileManager`."""

import logging
import pathlib
import threading

from .hexstow import DEFAULT_HASH_ALGORITHM, FileManager
from .log import WriteLoggedObjectManager, new_plain_text_write_log

logger = logging.getLogger(__name__)

DEFAULT_STOW_DIR = 'stow'


class FileStower():
    """Moves files dropped into stow directories into a file store, logging
    each write.

    Args:
        root (str): Root directory of the file store.
        extension (str): File name extension of stored files.
        algorithm (str, optional): Hash algorithm. Defaults to ``md5``.
        stow_dirs (list, optional): Directories to sweep. Defaults to
            ``root/stow``, created if missing.
    """

    def __init__(self, root, extension, algorithm=DEFAULT_HASH_ALGORITHM, stow_dirs=None, **kwargs):
        self.file_manager = FileManager(root=root, extension=extension, algorithm=algorithm,
                                        move_on_write=True, **kwargs)
        self.manager = WriteLoggedObjectManager(self.file_manager,
                                                new_plain_text_write_log(self.file_manager))
        self.stow_dirs = []
        if stow_dirs is None:
            self.add_default_stow_directory()
        else:
            for stow_dir in stow_dirs:
                self.add_stow_directory(stow_dir)

    @property
    def default_stow_directory(self):
        return self.file_manager.root / DEFAULT_STOW_DIR

    def add_default_stow_directory(self):
        stow_dir = self.default_stow_directory
        stow_dir.mkdir(parents=True, exist_ok=True)
        return self.add_stow_directory(stow_dir)

    def add_stow_directory(self, stow_dir):
        """Return ``False`` if `stow_dir` was already added."""
        stow_dir = pathlib.Path(stow_dir).resolve()
        if not stow_dir.is_dir():
            raise ValueError('not a directory: {0}'.format(stow_dir))
        if stow_dir in self.stow_dirs:
            return False
        self.stow_dirs.append(stow_dir)
        return True

    def remove_stow_directory(self, stow_dir):
        stow_dir = pathlib.Path(stow_dir).resolve()
        if stow_dir not in self.stow_dirs:
            return False
        self.stow_dirs.remove(stow_dir)
        return True

    def stow(self, path):
        """Write the file at `path` to the store, removing it from `path`.

        Returns:
            str: The file's identifier.
        """
        path = pathlib.Path(path)
        hexstr = self.manager.write(path)
        # already stored files are validated, not moved
        if path.exists():
            path.unlink()
        logger.info('stowed %s as %s', path, hexstr)
        return hexstr

    def sweep(self):
        """Stow every regular file now in the stow directories.

        Empty files are left in place.

        Returns:
            list: The identifiers of the stowed files.
        """
        hexes = []
        for stow_dir in self.stow_dirs:
            for path in sorted(stow_dir.iterdir()):
                if path.is_symlink() or not path.is_file():
                    continue
                if path.stat().st_size == 0:
                    logger.warning('skipping empty file %s', path)
                    continue
                hexes.append(self.stow(path))
        return hexes

    def watch(self, interval=1.0, stop_event=None, on_sweep=None):
        """Sweep every `interval` seconds until `stop_event` is set.

        `on_sweep`, if given, is called with the identifiers of each sweep.
        """
        if stop_event is None:
            stop_event = threading.Event()
        while not stop_event.is_set():
            hexes = self.sweep()
            if on_sweep is not None:
                on_sweep(hexes)
            stop_event.wait(interval)

    def close(self):
        self.manager.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()
