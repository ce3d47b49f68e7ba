"""Binary codecs for storing objects with :class:`~hexstow.hexstow.CodecObjectManager`."""

import abc
import struct


_LENGTH = struct.Struct('>I')
_COUNT = struct.Struct('>i')


class Encoder(abc.ABC):
    """Serializes objects to bytes.

    An encoder is *self-delimiting* if the encoded length can be read back
    from the encoding itself, so that encodings may be concatenated.
    """
    is_self_delimiting = True

    @abc.abstractmethod
    def encode(self, obj):
        """Return the encoding of `obj` as ``bytes``."""

    @property
    @abc.abstractmethod
    def max_bytes(self):
        """Upper bound on the length of any encoding."""


class Codec(Encoder):
    """An :class:`Encoder` that can also decode."""

    @abc.abstractmethod
    def decode_from(self, data, offset=0):
        """Decode one object from `data` starting at `offset`.

        Returns:
            tuple: The object and the offset just past its encoding.

        Raises:
            ValueError: If the data is malformed or truncated.
        """

    def decode(self, data):
        """Decode `data`, which must hold exactly one encoded object."""
        obj, end = self.decode_from(data)
        if end != len(data):
            raise ValueError('{0} trailing bytes after decoded object'.format(len(data) - end))
        return obj


class TextCodec(Codec):
    """UTF-8 strings, prefixed with their 4 byte encoded length.

    Args:
        max_length (int, optional): Maximum encoded length of a string in
            bytes. Defaults to ``1024``.
    """

    def __init__(self, max_length=1024):
        if max_length < 1:
            raise ValueError('max_length {0}'.format(max_length))
        self.max_length = max_length

    @property
    def max_bytes(self):
        return _LENGTH.size + self.max_length

    def encode(self, obj):
        data = obj.encode('utf-8')
        if len(data) > self.max_length:
            raise ValueError('encoded length {0} > max_length {1}'.format(len(data), self.max_length))
        return _LENGTH.pack(len(data)) + data

    def decode_from(self, data, offset=0):
        try:
            (length,) = _LENGTH.unpack_from(data, offset)
        except struct.error as e:
            raise ValueError('truncated length at offset {0}'.format(offset)) from e
        start = offset + _LENGTH.size
        end = start + length
        if length > self.max_length or end > len(data):
            raise ValueError('bad string length {0} at offset {1}'.format(length, offset))
        return bytes(data[start:end]).decode('utf-8'), end


class ListCodec(Codec):
    """Lists of items encoded by a self-delimiting item codec, prefixed with
    the item count.

    Args:
        item_codec (Codec): Codec for the list items.
        max_list_size (int, optional): Maximum number of items. Defaults to
            ``128``.
    """
    DEFAULT_MAX_LIST_SIZE = 128

    def __init__(self, item_codec, max_list_size=DEFAULT_MAX_LIST_SIZE):
        if item_codec is None:
            raise ValueError('null item_codec')
        if not item_codec.is_self_delimiting:
            raise ValueError('item codec must be self delimiting')
        if max_list_size < 2:
            raise ValueError('max_list_size {0}'.format(max_list_size))
        self.item_codec = item_codec
        self.max_list_size = max_list_size

    @property
    def max_bytes(self):
        return _COUNT.size + self.item_codec.max_bytes * self.max_list_size

    def encode(self, obj):
        if len(obj) > self.max_list_size:
            raise ValueError('list size {0} > max_list_size {1}'.format(len(obj), self.max_list_size))
        return _COUNT.pack(len(obj)) + b''.join(self.item_codec.encode(item) for item in obj)

    def decode_from(self, data, offset=0):
        try:
            (count,) = _COUNT.unpack_from(data, offset)
        except struct.error as e:
            raise ValueError('truncated count at offset {0}'.format(offset)) from e
        if count < 0 or count > self.max_list_size:
            raise ValueError('count read was {0}'.format(count))
        offset += _COUNT.size
        items = []
        for _ in range(count):
            item, offset = self.item_codec.decode_from(data, offset)
            items.append(item)
        return items, offset
