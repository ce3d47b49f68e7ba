"""Append-only write logs recording the order objects were written in.

The plain-text log has one line per write::

    2026-10-19T08:30:00 2f1e0c98a1b0d6e5e9d1a44f1d5c2a7b

Since the timestamp has a fixed width and every identifier of a store has
the same length, all lines have the same width, so the reader can seek to
any record directly.
"""

import abc
import collections.abc
import datetime
import logging
import os
import pathlib
import threading

import attr

from .errors import CorruptionError
from .hexes import is_lowercase_hex, normalize_extension
from .hexstow import WrappedObjectManager

logger = logging.getLogger(__name__)

TIME_HASH_DELIMIT = ' '
ENTRY_END = '\n'
TIMESTAMP_FORMAT = '%Y-%m-%dT%H:%M:%S'
MAX_ENTRY_WIDTH = 1024

LOG_DIR = 'log'
WLOG_PREFIX = 'wlog'
WLOG_PLAINTEXT_EXT = '.txt'


def utc_timestamp(when=None):
    if when is None:
        when = datetime.datetime.now(datetime.timezone.utc)
    return when.strftime(TIMESTAMP_FORMAT)


class WriteLog(abc.ABC):
    """Receives the identifier of every object written to a store."""

    @abc.abstractmethod
    def object_written(self, hexstr):
        pass

    def close(self):
        pass

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()


class PlainTextWriteLog(WriteLog):
    """Appends a ``<timestamp> <hex>`` line to `path` for every write.

    Timestamps are UTC with second precision. Safe to share between threads.
    """

    def __init__(self, path):
        self.path = pathlib.Path(path)
        self._lock = threading.Lock()
        self._file = open(self.path, 'a', encoding='ascii')

    def object_written(self, hexstr):
        line = utc_timestamp() + TIME_HASH_DELIMIT + hexstr + ENTRY_END
        with self._lock:
            self._file.write(line)
            self._file.flush()

    @property
    def closed(self):
        return self._file.closed

    def close(self):
        with self._lock:
            self._file.close()


@attr.s(auto_attribs=True, frozen=True, order=True)
class LogEntry():
    """A write-log record. Ordered by timestamp only.

    Attributes:
        timestamp (str): Write time, ``YYYY-MM-DDTHH:MM:SS`` UTC.
        hex (str): Identifier of the object written.
    """
    timestamp: str
    hex: str = attr.ib(order=False)


class PlainTextWriteLogReader(collections.abc.Sequence):
    """Random access to the records of a :class:`PlainTextWriteLog` file.

    The record width is learned from the first line. Records appended after
    the reader was opened become visible after :meth:`update`.

    Raises:
        CorruptionError: If the file isn't a sequence of equal width
            records. The file is closed before the error is raised.
    """

    def __init__(self, path):
        self.path = pathlib.Path(path)
        self._lock = threading.RLock()
        self._file = open(self.path, 'rb')
        self._size = 0
        self._width = 0
        self.update()

    def update(self):
        """Pick up records appended since the last update.

        Returns:
            bool: Whether the number of records changed.
        """
        with self._lock:
            if self._width == 0:
                self._width = self._read_entry_width(0)
                if self._width == 0:
                    return False

            size = os.fstat(self._file.fileno()).st_size // self._width
            if size == self._size:
                return False

            offset = (size - 1) * self._width
            if self._read_entry_width(offset) != self._width:
                self._corrupt('misalignment at offset <= {0} in {1}'.format(offset, self.path))
            self._size = size
            return True

    def list_from(self, timestamp):
        """Return the records written at or after `timestamp`.

        `timestamp` may be a prefix such as ``2026-10-19T08``.
        """
        lo, hi = 0, len(self)
        while lo < hi:
            mid = (lo + hi) // 2
            if self[mid].timestamp < timestamp:
                lo = mid + 1
            else:
                hi = mid
        return self[lo:]

    @property
    def entry_width(self):
        return self._width

    @property
    def closed(self):
        return self._file.closed

    def close(self):
        self._file.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()

    def __len__(self):
        return self._size

    def __getitem__(self, index):
        if isinstance(index, slice):
            return [self[i] for i in range(*index.indices(len(self)))]

        with self._lock:
            if index < 0:
                index += self._size
            if not 0 <= index < self._size:
                raise IndexError('log index out of range: {0}'.format(index))
            self._file.seek(index * self._width)
            line = self._file.read(self._width).decode('ascii', errors='replace')

            timestamp, _, hexstr = line.partition(TIME_HASH_DELIMIT)
            if not (hexstr.endswith(ENTRY_END) and is_lowercase_hex(hexstr[:-1])):
                self._corrupt('on reading index {0} ({1!r}) in {2}'.format(index, line, self.path))
        return LogEntry(timestamp, hexstr[:-1])

    def _read_entry_width(self, offset):
        self._file.seek(offset)
        line = self._file.readline(MAX_ENTRY_WIDTH)
        if not line.endswith(ENTRY_END.encode('ascii')):
            if len(line) >= MAX_ENTRY_WIDTH:
                self._corrupt('entry overflow beyond offset {0} in {1}'.format(offset, self.path))
            return 0

        width = len(line)
        delimit = line.rfind(TIME_HASH_DELIMIT.encode('ascii'))
        if delimit < 5 or delimit > width - 5:
            self._corrupt('around offset {0} in {1}'.format(offset, self.path))
        return width

    def _corrupt(self, message):
        self._file.close()
        raise CorruptionError(message)


@attr.s(auto_attribs=True)
class WriteLoggedObjectManager(WrappedObjectManager):
    """Records the identifier of every write to `base` in `log`."""
    log: WriteLog

    def write(self, obj):
        hexstr = self.base.write(obj)
        self.log.object_written(hexstr)
        return hexstr

    def close(self):
        self.log.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()


def log_file_path(root, ext):
    """Return the path of the plain-text write log of the store with file
    extension `ext` under `root`. Nothing is created."""
    ext = normalize_extension(ext)
    return pathlib.Path(root) / LOG_DIR / (WLOG_PREFIX + ext + WLOG_PLAINTEXT_EXT)


def has_plain_text_log_file(root, ext):
    return log_file_path(root, ext).is_file()


def new_plain_text_write_log(manager):
    """Open (for appending) the plain-text write log of `manager`."""
    path = log_file_path(manager.root, manager.extension)
    path.parent.mkdir(parents=True, exist_ok=True)
    logger.debug('opening write log %s', path)
    return PlainTextWriteLog(path)


def new_plain_text_write_log_reader(root, ext):
    """Open a reader on the plain-text write log of the store at `root`.

    Raises:
        FileNotFoundError: If the store has no write log.
    """
    return PlainTextWriteLogReader(log_file_path(root, ext))
