"""Ordered traversal of a :class:`~hexstow.hexpath.HexPath` directory tree.

The tree is not canonical: an identifier may sit at any depth along its
shard path, and a directory may hold both files and shard subdirectories.
:class:`Cursor` merges the files of every directory it has open into a
single stream sorted by identifier.
"""

import bisect
import enum
import logging
import os
import pathlib
from typing import Tuple

import attr

from .errors import NotFoundError
from .hexes import PrefixOrder, canonicalize_hex, compare_to_prefix, is_lowercase_hex
from .hexpath import HexPath

logger = logging.getLogger(__name__)

FULL_DIR_SET = tuple('{0:02x}'.format(i) for i in range(256))


@attr.s(auto_attribs=True, frozen=True, order=True)
class Entry():
    """A stored file and its hex identifier. Compared by identifier only.

    Attributes:
        hex (str): Full hex identifier.
        file (path): Location of the file on disk.
    """
    hex: str
    file: pathlib.Path = attr.ib(eq=False, order=False)


@attr.s(auto_attribs=True, frozen=True)
class HexDirectory():
    """Point-in-time listing of one directory's hex entries and hex shards.

    Two snapshots of the same directory compare equal whatever they list.

    Attributes:
        directory (path): The listed directory.
        prefix (str): Hex prefix encoded by the directory's path below root.
        entries (tuple): Sorted identifier suffixes of the files in the
            directory (the full identifier is ``prefix + suffix``).
        subdirs (tuple): Sorted two-character shard directory names.
    """
    directory: pathlib.Path
    prefix: str = attr.ib(default='', eq=False)
    entries: Tuple[str, ...] = attr.ib(default=(), eq=False, repr=False)
    subdirs: Tuple[str, ...] = attr.ib(default=(), eq=False, repr=False)

    @property
    def depth(self):
        return len(self.prefix) // 2

    def is_root(self):
        return not self.prefix

    def entry_hex(self, index):
        return self.prefix + self.entries[index]

    def hex_entries(self):
        return [self.prefix + suffix for suffix in self.entries]


def snapshot(directory, scheme, prefix=''):
    """List `directory` once and return it as a :class:`HexDirectory`.

    Files are kept if `scheme` accepts their name and the identifier part is
    lowercase hex; directories if their name is two lowercase hex
    characters.
    """
    entries = []
    subdirs = []
    with os.scandir(directory) as dirents:
        for dirent in dirents:
            name = dirent.name
            if dirent.is_dir():
                if len(name) == 2 and is_lowercase_hex(name):
                    subdirs.append(name)
            elif scheme.is_hex_filename(name):
                entries.append(scheme.to_identifier_unchecked(name))

    entries.sort()
    if len(subdirs) == len(FULL_DIR_SET):
        subdirs = FULL_DIR_SET
    else:
        subdirs = tuple(sorted(subdirs))

    return HexDirectory(pathlib.Path(directory), prefix, tuple(entries), subdirs)


class _Position():
    """A cursor's progress through one open directory: the ranges of
    entries and subdirectories not yet consumed."""

    __slots__ = ('hdir', 'entry_lo', 'entry_hi', 'subdir_lo', 'subdir_hi')

    def __init__(self, hdir, entry_lo=0, entry_hi=None, subdir_lo=0, subdir_hi=None):
        self.hdir = hdir
        self.entry_lo = entry_lo
        self.entry_hi = len(hdir.entries) if entry_hi is None else entry_hi
        self.subdir_lo = subdir_lo
        self.subdir_hi = len(hdir.subdirs) if subdir_hi is None else subdir_hi

    def copy(self):
        return _Position(self.hdir, self.entry_lo, self.entry_hi, self.subdir_lo, self.subdir_hi)

    @property
    def depth(self):
        return self.hdir.depth

    def count_entries(self):
        return self.entry_hi - self.entry_lo

    def count_subdirs(self):
        return self.subdir_hi - self.subdir_lo

    def has_entries(self):
        return self.entry_lo < self.entry_hi

    def has_subdirs(self):
        return self.subdir_lo < self.subdir_hi

    def is_consumed(self):
        return not (self.has_entries() or self.has_subdirs())

    def is_splittable(self):
        return self.count_subdirs() > 1

    def first_entry(self):
        return self.hdir.entry_hex(self.entry_lo)

    def first_subdir(self):
        return self.hdir.subdirs[self.subdir_lo]

    def consume_entry(self):
        if self.has_entries():
            self.entry_lo += 1

    def consume_subdir(self):
        if self.has_subdirs():
            self.subdir_lo += 1

    def clear(self):
        self.entry_lo = self.entry_hi
        self.subdir_lo = self.subdir_hi

    def entry_index(self, hexstr):
        """Index of the first remaining entry whose identifier is ``>= hexstr``.

        `hexstr` must start with this directory's prefix.
        """
        key = hexstr[len(self.hdir.prefix):]
        return bisect.bisect_left(self.hdir.entries, key, self.entry_lo, self.entry_hi)

    def trim_to(self, prefix):
        """Drop the remaining entries and subdirectories sorting before `prefix`.

        `prefix` must start with (and be longer than) this directory's prefix.
        """
        self.entry_lo = self.entry_index(prefix)
        name = prefix[len(self.hdir.prefix):][:2]
        self.subdir_lo = bisect.bisect_left(
            self.hdir.subdirs, name, self.subdir_lo, self.subdir_hi)


def _rank_key(position):
    # lowest first entry wins, then the deeper position; positions without
    # entries rank last, deeper ones first
    if position.has_entries():
        return (0, position.first_entry(), -position.depth)
    return (1, '', -position.depth)


class Characteristic(enum.Flag):
    ORDERED = enum.auto()
    SORTED = enum.auto()
    IMMUTABLE = enum.auto()
    NONNULL = enum.auto()
    DISTINCT = enum.auto()


class Cursor():
    """Iterates the entries of a :class:`HexPathTree` in ascending hex order.

    The cursor keeps a stack of open directory positions, one per depth,
    from the root down to the deepest directory on the current path. Each
    directory is listed once, when first entered, so files added to an
    already listed directory are not seen.

    Args:
        tree (HexPathTree): The tree to traverse.
        distinct (bool, optional): Collapse entries with the same identifier
            stored at different depths. Defaults to ``False``.
    """

    def __init__(self, tree, distinct=False, positions=None):
        self.tree = tree
        self.distinct = distinct
        if positions is None:
            positions = [_Position(snapshot(tree.root, tree.scheme))]
        self._positions = positions
        self._ranked = positions
        self._normalize()

    def has_remaining(self):
        return self._ranked[0].has_entries()

    def head_hex(self):
        return self._head().first_entry()

    def head_file(self):
        position = self._head()
        suffix = position.hdir.entries[position.entry_lo]
        return position.hdir.directory / self.tree.scheme.to_filename(suffix)

    def head_entry(self):
        return Entry(self.head_hex(), self.head_file())

    def consume_next(self):
        """Consume the head entry and advance to the next one.

        Returns:
            bool: Whether any entries remain.
        """
        if not self.has_remaining():
            return False
        consumed = self.head_hex()
        self._consume_head()
        if self.distinct:
            while self.has_remaining() and self.head_hex() == consumed:
                self._consume_head()
        return self.has_remaining()

    def try_advance(self, action):
        """Call `action` with the head entry and advance. Return ``False``
        (without calling `action`) if there are no entries left."""
        if not self.has_remaining():
            return False
        action(self.head_entry())
        self.consume_next()
        return True

    def advance_to_prefix(self, prefix):
        """Skip every entry whose identifier sorts before `prefix`.

        Skipped directories are trimmed by bisection; nothing below them is
        listed.

        Returns:
            bool: Whether any entries remain.
        """
        prefix = canonicalize_hex(prefix)
        depth = 0
        while depth < len(self._positions):
            position = self._positions[depth]
            order = compare_to_prefix(position.hdir.prefix, prefix)
            if order is PrefixOrder.BEFORE:
                position.clear()
                del self._positions[depth + 1:]
                break
            if order is not PrefixOrder.SUB:
                # everything at or below this directory is >= prefix
                break

            child = position.first_subdir() if position.has_subdirs() else None
            position.trim_to(prefix)
            if depth + 1 < len(self._positions):
                if not position.has_subdirs() or position.first_subdir() != child:
                    del self._positions[depth + 1:]
            if depth + 1 == len(self._positions) and position.has_subdirs():
                self._positions.append(_Position(self._branch(position)))
            depth += 1

        self._normalize()
        return self.has_remaining()

    def try_split(self):
        """Split off the upper half of the remaining traversal.

        The returned cursor covers every remaining entry from the split
        boundary on; this cursor keeps those before it. Consuming this cursor
        and then the returned one yields the same sequence as consuming this
        cursor alone would have.

        Returns:
            Cursor: The new cursor, or ``None`` if the remaining traversal is
            a single path that can't be divided.
        """
        split_depth = None
        for depth, position in enumerate(self._positions):
            if position.is_splittable():
                split_depth = depth
                break
        if split_depth is None:
            return None

        position = self._positions[split_depth]
        mid = position.subdir_lo + (position.count_subdirs() + 1) // 2
        boundary = position.hdir.prefix + position.hdir.subdirs[mid]

        # ancestors above split_depth have exactly one subdirectory left (the
        # one on the current path), so only their entries need dividing
        split_positions = []
        for depth in range(split_depth + 1):
            original = self._positions[depth]
            copy = original.copy()
            cut = original.entry_index(boundary)
            copy.entry_lo = cut
            original.entry_hi = cut
            split_positions.append(copy)

        split_positions[-1].subdir_lo = mid
        position.subdir_hi = mid
        self._rank()

        logger.debug('split cursor at %s (depth %d)', boundary, split_depth)
        return Cursor(self.tree, self.distinct, split_positions)

    def estimate_size(self):
        """Rough number of remaining entries. Unlisted subdirectories are
        guessed to hold as many entries as their parent."""
        estimate = 0
        for position in reversed(self._positions):
            estimate = estimate * (1 + position.count_subdirs()) + position.count_entries()
        return estimate

    def characteristics(self):
        flags = (Characteristic.ORDERED | Characteristic.SORTED
                 | Characteristic.IMMUTABLE | Characteristic.NONNULL)
        if self.distinct:
            flags |= Characteristic.DISTINCT
        return flags

    def __iter__(self):
        return self

    def __next__(self):
        if not self.has_remaining():
            raise StopIteration
        entry = self.head_entry()
        self.consume_next()
        return entry

    def _head(self):
        if not self.has_remaining():
            raise IndexError('cursor has no remaining entries')
        return self._ranked[0]

    def _consume_head(self):
        self._ranked[0].consume_entry()
        self._pop_consumed()
        self._rank()

    def _normalize(self):
        self._push_down()
        self._pop_consumed()
        self._rank()

    def _branch(self, position):
        name = position.first_subdir()
        return snapshot(position.hdir.directory / name, self.tree.scheme,
                        position.hdir.prefix + name)

    def _push_down(self):
        position = self._positions[-1]
        while position.has_subdirs():
            position = _Position(self._branch(position))
            self._positions.append(position)

    def _pop_consumed(self):
        positions = self._positions
        while len(positions) > 1 and positions[-1].is_consumed():
            positions.pop()
            positions[-1].consume_subdir()
            if positions[-1].has_subdirs():
                self._push_down()

    def _rank(self):
        if len(self._positions) == 1:
            self._ranked = self._positions
        else:
            self._ranked = sorted(self._positions, key=_rank_key)


@attr.s(auto_attribs=True, frozen=True)
class HexPathTree(HexPath):
    """A :class:`HexPath` whose contents can be traversed in hex order."""

    def new_cursor(self, distinct=False):
        return Cursor(self, distinct)

    def stream(self, distinct=False):
        """Return an iterator over all :class:`Entry` objects in hex order."""
        return self.new_cursor(distinct)

    def stream_starting_from(self, prefix, distinct=False):
        """Return an iterator over the entries ``>= prefix`` in hex order."""
        cursor = self.new_cursor(distinct)
        cursor.advance_to_prefix(prefix)
        return cursor

    def get_entry(self, hexstr):
        """Return the :class:`Entry` for `hexstr`.

        Raises:
            NotFoundError: If there's no file for `hexstr`.
        """
        hexstr = canonicalize_hex(hexstr)
        path = self.find(hexstr)
        if path is None:
            raise NotFoundError('not found: {0}'.format(hexstr))
        return Entry(hexstr, path)

    def split_cursors(self, ways, distinct=False):
        """Return up to `ways` cursors that together cover the tree, in order.

        Consuming the cursors one after the other yields the full sorted
        sequence; each may be handed to a separate worker.
        """
        cursors = [self.new_cursor(distinct)]
        progress = True
        while len(cursors) < ways and progress:
            progress = False
            index = 0
            while index < len(cursors) and len(cursors) < ways:
                split = cursors[index].try_split()
                if split is not None:
                    cursors.insert(index + 1, split)
                    progress = True
                    index += 1
                index += 1
        return cursors
