"""Module for the object managers: stores that file each object under the
hex digest of its own bytes."""

import abc
import hashlib
import logging
import os
import pathlib
import shutil
import threading
from tempfile import NamedTemporaryFile

import attr

from .errors import AmbiguousPrefixError, CorruptionError, NotFoundError
from .hexes import canonicalize_hex, canonicalize_id
from .hexpath import MIN_FILES_PER_DIR
from .tree import HexPathTree

logger = logging.getLogger(__name__)

DEFAULT_HASH_ALGORITHM = 'md5'
BLOCK_SIZE = 256 * 128 * 2


def hashlib_name(algorithm):
    """Return the ``hashlib`` name of `algorithm`, accepting the dashed
    upper-case spellings (``SHA-256``, ``SHA3-256``, ``SHA-512/256``).

    Raises:
        ValueError: If the algorithm is not available.
    """
    name = algorithm.lower().replace('/', '_')
    if name.startswith('sha3-'):
        name = name.replace('-', '_')
    else:
        name = name.replace('-', '')
    try:
        hashlib.new(name).hexdigest()
    except (ValueError, TypeError) as e:
        raise ValueError('unsupported hash algorithm: {0}'.format(algorithm)) from e
    return name


class DigestPool():
    """Hands out fresh hashing engines for one algorithm, copied from a
    pristine engine kept per thread."""

    def __init__(self, algorithm):
        self.algorithm = algorithm
        self._local = threading.local()

    def new(self):
        pristine = getattr(self._local, 'pristine', None)
        if pristine is None:
            pristine = hashlib.new(self.algorithm)
            self._local.pristine = pristine
        return pristine.copy()

    def hexdigest(self, data):
        digest = self.new()
        digest.update(data)
        return digest.hexdigest()


class ObjectManager(abc.ABC):
    """A store of objects, each addressed by a hex identifier."""

    @abc.abstractmethod
    def write(self, obj):
        """Store `obj` (if not already stored) and return its identifier."""

    @abc.abstractmethod
    def get_id(self, obj):
        """Return the identifier `obj` would be stored under."""

    @abc.abstractmethod
    def contains_id(self, hexstr):
        pass

    @abc.abstractmethod
    def read(self, hexstr):
        """Return the object stored under `hexstr`.

        Raises:
            NotFoundError: If nothing is stored under `hexstr`.
        """

    @abc.abstractmethod
    def read_using_prefix(self, prefix):
        """Return the one object whose identifier starts with `prefix`.

        Raises:
            NotFoundError: If no identifier starts with `prefix`.
            AmbiguousPrefixError: If more than one does.
        """

    @abc.abstractmethod
    def stream_ids(self, prefix=None):
        """Iterate over the stored identifiers in ascending order, starting
        from `prefix` if given."""

    def stream_objects(self, prefix=None):
        return (self.read(hexstr) for hexstr in self.stream_ids(prefix))

    def mapped(self, read_mapper, write_mapper):
        """Return a view of this store holding other types of objects.

        Args:
            read_mapper (callable): Converts a stored object to the view's type.
            write_mapper (callable): Converts the view's objects to stored ones.
        """
        return MappedObjectManager(self, read_mapper, write_mapper)

    def __contains__(self, hexstr):
        return self.contains_id(hexstr)

    def __iter__(self):
        return iter(self.stream_ids())


@attr.s(auto_attribs=True, kw_only=True)
class BaseHashedObjectManager(ObjectManager):
    """Base for file-per-object stores whose identifiers are the hex digests
    of the objects' bytes.

    Attributes:
        root (str): Directory path used as root of storage space.
        extension (str): File name extension of stored files. Several
            stores may share a root if their extensions differ.
        algorithm (str, optional): Hash algorithm used to compute
            identifiers. Any ``hashlib`` algorithm. Defaults to ``md5``.
        max_files_per_dir (int, optional): Entry count at which a directory
            branches. Defaults to ``256``.
        fmode (int, optional): File mode permission set on stored files.
            ``None`` leaves them as created. Defaults to ``0o444``.
        dmode (int, optional): Directory mode permission to set for
            subdirectories. Defaults to ``0o755``.
    """
    root: pathlib.Path = attr.ib(converter=pathlib.Path)
    extension: str
    algorithm: str = attr.ib(default=DEFAULT_HASH_ALGORITHM, converter=hashlib_name)
    max_files_per_dir: int = MIN_FILES_PER_DIR
    fmode: int = 0o444
    dmode: int = 0o755

    def __attrs_post_init__(self):
        self.digests = DigestPool(self.algorithm)
        self.hexpath = HexPathTree(self.root, self.extension,
                                   self.max_files_per_dir, self.dmode)
        self.root = self.hexpath.root
        self.extension = self.hexpath.extension
        self._check_algorithm()

    def _check_algorithm(self):
        first = next(self.hexpath.stream(), None)
        if first is None:
            return
        if self.hash_file(first.file) != first.hex:
            raise ValueError('{0} does not hash to its name with {1}: wrong algorithm?'
                             .format(first.file, self.algorithm))

    def write(self, obj):
        hexstr, data = self._sign(obj)
        path = self.hexpath.find(hexstr)
        if path is not None:
            self.validate_file(path, obj, hexstr, data)
            return hexstr

        path = self.hexpath.suggest(hexstr, make_parent_dir=True)
        if self.write_object_file(path, obj, data):
            logger.info('wrote %s', path)
        else:
            # a concurrent writer placed it first
            self.validate_file(path, obj, hexstr, data)
        return hexstr

    def get_id(self, obj):
        return self._sign(obj)[0]

    def contains_id(self, hexstr):
        return self.hexpath.find(canonicalize_id(hexstr)) is not None

    def find(self, hexstr):
        """Return the path of the file stored under `hexstr`.

        Raises:
            NotFoundError: If nothing is stored under `hexstr`.
        """
        path = self.hexpath.find(canonicalize_id(hexstr))
        if path is None:
            raise NotFoundError('not found: {0}'.format(hexstr))
        return path

    def read(self, hexstr):
        return self.read_object_file(self.find(hexstr))

    def entry_for_prefix(self, prefix):
        """Return the one :class:`~hexstow.tree.Entry` whose identifier
        starts with `prefix`.

        Raises:
            NotFoundError: If no identifier starts with `prefix`.
            AmbiguousPrefixError: If more than one does.
        """
        prefix = canonicalize_hex(prefix)
        cursor = self.hexpath.new_cursor(distinct=True)
        if not cursor.advance_to_prefix(prefix) or not cursor.head_hex().startswith(prefix):
            raise NotFoundError('not found: {0}..'.format(prefix))
        head = cursor.head_entry()
        if cursor.consume_next() and cursor.head_hex().startswith(prefix):
            raise AmbiguousPrefixError('ambiguous (more than 1 result) for prefix {0}'
                                       .format(prefix))
        return head

    def read_using_prefix(self, prefix):
        return self.read_object_file(self.entry_for_prefix(prefix).file)

    def stream_entries(self, prefix=None):
        cursor = self.hexpath.new_cursor(distinct=True)
        if prefix is not None:
            cursor.advance_to_prefix(prefix)
        return cursor

    def stream_ids(self, prefix=None):
        return (entry.hex for entry in self.stream_entries(prefix))

    def stream_objects(self, prefix=None):
        return (self.read_object_file(entry.file) for entry in self.stream_entries(prefix))

    def signature(self, data):
        return self.digests.hexdigest(data)

    def hash_file(self, path):
        digest = self.digests.new()
        with open(path, 'rb') as handle:
            for chunk in iter(lambda: handle.read(BLOCK_SIZE), b''):
                digest.update(chunk)
        return digest.hexdigest()

    def load_bytes(self, path):
        """Return the contents of stored file `path`.

        Raises:
            CorruptionError: If the file is larger than :attr:`max_bytes`.
        """
        size = os.stat(path).st_size
        if size > self.max_bytes:
            raise CorruptionError('file length {0} > max_bytes ({1}): {2}'
                                  .format(size, self.max_bytes, path))
        with open(path, 'rb') as handle:
            return handle.read()

    def validate_file_against_bytes(self, path, data):
        if os.stat(path).st_size != len(data) or self.load_bytes(path) != data:
            raise CorruptionError(str(path))

    def validate_file(self, path, obj, hexstr, data):
        """Check that the existing file `path` holds `obj`.

        Raises:
            CorruptionError: If it doesn't.
        """
        self.validate_file_against_bytes(path, data)

    def write_object_file(self, path, obj, data):
        """Place `data` at `path`. Return ``False`` if `path` already existed."""
        tmp = self._mktemp(path.parent)
        try:
            with tmp:
                tmp.write(data)
        except BaseException:
            os.unlink(tmp.name)
            raise
        return self._mvtemp(tmp.name, path)

    @abc.abstractmethod
    def read_object_file(self, path):
        """Return the object held in the existing file `path`."""

    @abc.abstractmethod
    def _sign(self, obj):
        """Return the identifier of `obj` and the data it was computed from."""

    def _mktemp(self, directory):
        # the leading underscore keeps the name out of the hex namespace
        return NamedTemporaryFile(delete=False, dir=directory, prefix='_tmp')

    def _mvtemp(self, tmp, path):
        """Link `tmp` into place at `path` and remove it, whatever happens.
        Return ``False`` if `path` already existed."""
        try:
            if self.fmode is not None:
                os.chmod(tmp, self.fmode)
            try:
                os.link(tmp, path)
            except FileExistsError:
                return False
            return True
        finally:
            os.unlink(tmp)


@attr.s(auto_attribs=True, kw_only=True)
class BytesManager(BaseHashedObjectManager):
    """Stores ``bytes`` objects as is.

    Attributes:
        max_bytes (int, optional): Maximum size of a stored object. Must be
            at least ``16``. Defaults to 1 MiB.
    """
    max_bytes: int = attr.ib(default=1024 * 1024)

    @max_bytes.validator
    def _check_max_bytes(self, attribute, value):
        if value < 16:
            raise ValueError('max_bytes {0} < 16'.format(value))

    def _sign(self, obj):
        if not isinstance(obj, (bytes, bytearray, memoryview)):
            raise TypeError('expected bytes, got {0}'.format(type(obj).__name__))
        data = bytes(obj)
        if len(data) > self.max_bytes:
            raise ValueError('{0} bytes > max_bytes ({1})'.format(len(data), self.max_bytes))
        return self.signature(data), data

    def read_object_file(self, path):
        return self.load_bytes(path)


@attr.s(auto_attribs=True, kw_only=True)
class CodecObjectManager(BaseHashedObjectManager):
    """Stores objects serialized by a :class:`~hexstow.codec.Codec`.

    Attributes:
        codec (Codec): Serializes the stored objects.
        compare_decoded (bool, optional): Validate existing files by decoding
            them and comparing objects instead of comparing bytes. For codecs
            with more than one encoding per object. Defaults to ``False``.
    """
    codec: object
    compare_decoded: bool = False

    @property
    def max_bytes(self):
        return self.codec.max_bytes

    def _sign(self, obj):
        data = self.codec.encode(obj)
        return self.signature(data), data

    def read_object_file(self, path):
        data = self.load_bytes(path)
        try:
            return self.codec.decode(data)
        except ValueError as e:
            raise CorruptionError('undecodable: {0}'.format(path)) from e

    def validate_file(self, path, obj, hexstr, data):
        if not self.compare_decoded:
            self.validate_file_against_bytes(path, data)
        elif self.read_object_file(path) != obj:
            raise CorruptionError(str(path))


@attr.s(auto_attribs=True, kw_only=True)
class FileManager(BaseHashedObjectManager):
    """Stores files. The identifier of a file is the digest of its contents
    and reading an identifier returns the stored file's path.

    Attributes:
        move_on_write (bool, optional): Move input files into the store on
            write; otherwise copy them. Defaults to ``True``.
    """
    move_on_write: bool = True

    def _sign(self, obj):
        path = pathlib.Path(obj)
        if not path.is_file():
            raise ValueError('not a file: {0}'.format(path))
        if path.stat().st_size == 0:
            raise ValueError('empty file {0}'.format(path))
        return self.hash_file(path), path

    def read_object_file(self, path):
        return path

    def validate_file(self, path, obj, hexstr, data):
        if self.hash_file(path) != hexstr:
            raise CorruptionError(str(path))

    def write_object_file(self, path, obj, data):
        tmp = self._mktemp(path.parent)
        tmp.close()
        try:
            if self.move_on_write:
                shutil.move(str(data), tmp.name)
            else:
                shutil.copy2(str(data), tmp.name)
        except BaseException:
            os.unlink(tmp.name)
            raise
        return self._mvtemp(tmp.name, path)


@attr.s(auto_attribs=True)
class WrappedObjectManager(ObjectManager):
    """Delegates every operation to `base`. Subclasses override what they
    decorate."""
    base: ObjectManager

    def write(self, obj):
        return self.base.write(obj)

    def get_id(self, obj):
        return self.base.get_id(obj)

    def contains_id(self, hexstr):
        return self.base.contains_id(hexstr)

    def read(self, hexstr):
        return self.base.read(hexstr)

    def read_using_prefix(self, prefix):
        return self.base.read_using_prefix(prefix)

    def stream_ids(self, prefix=None):
        return self.base.stream_ids(prefix)

    def stream_objects(self, prefix=None):
        return self.base.stream_objects(prefix)


@attr.s(auto_attribs=True)
class MappedObjectManager(WrappedObjectManager):
    """Exposes a store of one type of object as a store of another."""
    read_mapper: object = attr.ib(validator=attr.validators.is_callable())
    write_mapper: object = attr.ib(validator=attr.validators.is_callable())

    def write(self, obj):
        return self.base.write(self.write_mapper(obj))

    def get_id(self, obj):
        return self.base.get_id(self.write_mapper(obj))

    def read(self, hexstr):
        return self.read_mapper(self.base.read(hexstr))

    def read_using_prefix(self, prefix):
        return self.read_mapper(self.base.read_using_prefix(prefix))

    def stream_objects(self, prefix=None):
        return (self.read_mapper(obj) for obj in self.base.stream_objects(prefix))
