"""Module for the HexPath class: where hex-named files live on disk."""

import logging
import os
import pathlib

import attr

from .errors import CorruptionError, NotFoundError, RelocationError
from .hexes import FilenameScheme, canonicalize_hex, is_lowercase_hex, normalize_extension

logger = logging.getLogger(__name__)

MIN_FILES_PER_DIR = 256


def _resolve(root):
    return pathlib.Path(root).expanduser().resolve()


@attr.s(auto_attribs=True, frozen=True)
class HexPath():
    """Maps hex identifiers to files under a directory tree that branches
    one byte (two hex characters) at a time as directories fill up.

    A file for identifier ``0c10f5`` may live at ``root/0c10f5.ext``,
    ``root/0c/10f5.ext`` or ``root/0c/10/f5.ext`` depending on how crowded
    the directories were when it was written. Files are never relocated
    automatically, so lookups search every depth along the identifier's
    path (see :meth:`find`).

    Attributes:
        root (str): Directory path used as root of storage space. Created if
            it doesn't exist.
        extension (str): File name extension of stored files. A leading dot
            is added if missing.
        max_files_per_dir (int, optional): Entry count at which a directory
            branches. Must be at least ``256``. Defaults to ``256``.
        dmode (int, optional): Directory mode permission to set for
            subdirectories. Defaults to ``0o755``.
    """
    root: pathlib.Path = attr.ib(converter=_resolve)
    extension: str = attr.ib(converter=normalize_extension)
    max_files_per_dir: int = attr.ib(default=MIN_FILES_PER_DIR)
    dmode: int = 0o755
    scheme: FilenameScheme = attr.ib(init=False, repr=False, eq=False)

    @max_files_per_dir.validator
    def _check_max_files_per_dir(self, attribute, value):
        if value < MIN_FILES_PER_DIR:
            raise ValueError('max_files_per_dir: {0} < {1}'.format(value, MIN_FILES_PER_DIR))

    @scheme.default
    def _default_scheme(self):
        return FilenameScheme(extension=self.extension)

    def __attrs_post_init__(self):
        if not self.root.is_dir():
            if self.root.exists():
                raise ValueError('not a directory: {0}'.format(self.root))
            self.root.mkdir(mode=self.dmode, parents=True, exist_ok=True)
            logger.debug('created root directory %s', self.root)

    def find(self, hexstr):
        """Return the path of the file for `hexstr`, or ``None`` if there is none.

        Raises:
            ValueError: If `hexstr` is not hex.
            CorruptionError: If a shard name or the matched name is not of
                the expected kind (directory / file).
        """
        hexstr = canonicalize_hex(hexstr)
        hdir, subhex = self._descend(hexstr)

        # the deepest shard need not hold the file: it may have been written
        # before the shard existed, so walk back up toward the root
        while True:
            path = hdir / self.scheme.to_filename(subhex)
            if path.exists():
                return self._ensure_file(path)
            if subhex == hexstr:
                return None
            subhex = hdir.name + subhex
            hdir = hdir.parent

    def suggest(self, hexstr, make_parent_dir=False):
        """Return the path a new file for `hexstr` should be written to.

        The file may or may not exist. If the deepest existing directory on
        the identifier's path holds ``max_files_per_dir`` entries or more, one
        more level is proposed (and created, if `make_parent_dir`).
        """
        hexstr = canonicalize_hex(hexstr)
        hdir, subhex = self._descend(hexstr)

        if len(subhex) > 2 and len(os.listdir(hdir)) >= self.max_files_per_dir:
            hdir = hdir / subhex[:2]
            subhex = subhex[2:]
            if make_parent_dir:
                self._makedir(hdir)

        return hdir / self.scheme.to_filename(subhex)

    def optimize(self, target):
        """Move an existing file to where :meth:`suggest` would now put it.

        Args:
            target (mixed): Hex identifier (str) or path of a stored file.

        Returns:
            path: The file's (possibly new) location.

        Raises:
            NotFoundError: If there is no file for the hex identifier.
            RelocationError: If the file can't be moved.
        """
        if isinstance(target, os.PathLike):
            path = pathlib.Path(target)
            if not path.is_file():
                raise ValueError('file does not exist: {0}'.format(path))
            return self._optimize(path, self.to_hex(path))

        path = self.find(target)
        if path is None:
            raise NotFoundError('not found: {0}'.format(target))
        return self._optimize(path, canonicalize_hex(target))

    def find_and_optimize(self, hexstr):
        """Like :meth:`optimize` but return ``None`` if there's no such file."""
        path = self.find(hexstr)
        if path is None:
            return None
        return self._optimize(path, canonicalize_hex(hexstr))

    def to_hex(self, path):
        """Reconstruct the hex identifier of a file from its path.

        Raises:
            ValueError: If the file name doesn't follow the naming scheme or
                the path is not under :attr:`root`.
            CorruptionError: If an ancestor directory is not a hex shard.
        """
        path = _resolve(path)
        if self.root not in path.parents:
            raise ValueError('unmanaged path: {0} not under {1}'.format(path, self.root))
        tail = self.scheme.to_identifier(path.name)
        if not is_lowercase_hex(tail):
            raise ValueError('not a hex file name: {0}'.format(path))

        shards = []
        hdir = path.parent
        while hdir != self.root:
            if len(hdir.name) != 2 or not is_lowercase_hex(hdir.name):
                raise CorruptionError('not a hex shard: {0}/..'.format(hdir))
            shards.append(hdir.name)
            hdir = hdir.parent

        return ''.join(reversed(shards)) + tail

    def _descend(self, hexstr):
        """Return the deepest existing directory matching `hexstr` and the
        hex suffix left over below it."""
        hdir = self.root
        subhex = hexstr
        while len(subhex) > 2:
            subdir = self._subdir_or_none(hdir, subhex)
            if subdir is None:
                break
            hdir = subdir
            subhex = subhex[2:]
        return hdir, subhex

    def _optimize(self, path, hexstr):
        suggested = self.suggest(hexstr, make_parent_dir=True)
        if suggested == path:
            return path
        # TODO: copy instead of rename when the source is locked
        if suggested.exists():
            raise RelocationError('rename {0} --> {1} failed: destination exists'
                                  .format(path, suggested))
        try:
            os.rename(path, suggested)
        except OSError as e:
            raise RelocationError('rename {0} --> {1} failed'.format(path, suggested)) from e
        logger.info('relocated %s --> %s', path, suggested)
        return suggested

    def _subdir_or_none(self, hdir, hexstr):
        subdir = hdir / hexstr[:2]
        if subdir.is_dir():
            return subdir
        if subdir.exists():
            raise CorruptionError('not a subdir: {0}'.format(subdir))
        return None

    def _ensure_file(self, path):
        if not path.is_file():
            raise CorruptionError('not a file: {0}'.format(path))
        return path

    def _makedir(self, hdir):
        try:
            hdir.mkdir(mode=self.dmode)
            logger.debug('branched %s', hdir)
        except FileExistsError:  # another writer won the mkdir race
            if not hdir.is_dir():
                raise
