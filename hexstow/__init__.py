# -*- coding: utf-8 -*-
"""hexstow is a content-addressable file store.

Objects are saved in a directory tree under the hex digest of their bytes
and read back by that digest, or by any unambiguous prefix of it. The tree
branches one byte at a time as directories fill up, so it stays shallow
for small stores and never needs rebalancing.

Typical use cases for this kind of system are ones where:

- Objects are written once and never change.
- It's desirable to have no duplicate objects.
- Objects are looked up by (a prefix of) their hash.
"""

from .__meta__ import (
    __title__,
    __summary__,
    __url__,
    __version__,
    __author__,
    __email__,
    __license__
)

from .errors import StowError, NotFoundError, AmbiguousPrefixError, CorruptionError, RelocationError
from .hexes import (FilenameScheme, PrefixOrder, canonicalize_hex, canonicalize_id, is_hex,
                    is_lowercase_hex)
from .hexpath import HexPath
from .tree import HexPathTree, HexDirectory, Cursor, Entry, Characteristic, snapshot
from .codec import Encoder, Codec, TextCodec, ListCodec
from .hexstow import (ObjectManager, BaseHashedObjectManager, BytesManager, CodecObjectManager,
                      FileManager, WrappedObjectManager, MappedObjectManager, DigestPool,
                      DEFAULT_HASH_ALGORITHM, hashlib_name)
from .log import (WriteLog, PlainTextWriteLog, PlainTextWriteLogReader, LogEntry,
                  WriteLoggedObjectManager, log_file_path, has_plain_text_log_file,
                  new_plain_text_write_log, new_plain_text_write_log_reader)
from .stower import FileStower


__all__ = ('HexPath', 'HexPathTree', 'Cursor', 'Entry', 'BytesManager', 'CodecObjectManager',
           'FileManager', 'FileStower', 'PlainTextWriteLog', 'PlainTextWriteLogReader',
           'StowError', 'NotFoundError', 'AmbiguousPrefixError', 'CorruptionError',
           'RelocationError')
