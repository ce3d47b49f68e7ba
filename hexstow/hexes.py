"""Hex identifier helpers and the prefix/extension filename scheme."""

import enum
import os

import attr


HEX_CHARS = frozenset('0123456789abcdefABCDEF')
LOWERCASE_HEX_CHARS = frozenset('0123456789abcdef')

MAX_FILENAME_LENGTH = 255


def is_hex(string):
    """Return whether `string` is a non-empty hexadecimal string (any case)."""
    return bool(string) and all(c in HEX_CHARS for c in string)


def is_lowercase_hex(string):
    """Return whether `string` is a non-empty lowercase hexadecimal string."""
    return bool(string) and all(c in LOWERCASE_HEX_CHARS for c in string)


def canonicalize_hex(hexstr):
    """Validate `hexstr` and return it lowercased.

    Raises:
        ValueError: If `hexstr` is empty or contains non-hex characters.
    """
    if not isinstance(hexstr, str) or not is_hex(hexstr):
        raise ValueError('Invalid ID: "{0}" is not hex'.format(hexstr))
    return hexstr.lower()


def canonicalize_id(hexstr):
    """Like :func:`canonicalize_hex`, but `hexstr` must also be whole bytes
    (even length). Prefixes don't need to be."""
    hexstr = canonicalize_hex(hexstr)
    if len(hexstr) % 2:
        raise ValueError('Invalid ID: "{0}" has odd length'.format(hexstr))
    return hexstr


def normalize_extension(extension):
    if not extension:
        raise ValueError('empty extension: {0!r}'.format(extension))
    if not extension.startswith(os.extsep):
        extension = os.extsep + extension
    return extension


@attr.s(auto_attribs=True, frozen=True)
class FilenameScheme():
    """A prefix / extension file naming scheme.

    Attributes:
        prefix (str): Prepended to every identifier. Defaults to ``''``.
        extension (str): Appended to every identifier. Defaults to ``''``.
    """
    prefix: str = attr.ib(default='', converter=lambda p: p or '')
    extension: str = attr.ib(default='', converter=lambda e: e or '')

    def __attrs_post_init__(self):
        decoration = len(self.prefix) + len(self.extension)
        if decoration == 0:
            raise ValueError('filename scheme needs a prefix or an extension')
        if MAX_FILENAME_LENGTH - decoration < 8:
            raise ValueError('too long: {0}/{1}<'.format(self.prefix, self.extension))

    @property
    def decoration_length(self):
        return len(self.prefix) + len(self.extension)

    def to_filename(self, identifier):
        if not identifier:
            raise ValueError('identifier {0!r}'.format(identifier))
        return self.prefix + identifier + self.extension

    def to_identifier(self, filename):
        if not self.accept(filename):
            raise ValueError('{0!r} does not match {1}'.format(filename, self))
        return self.to_identifier_unchecked(filename)

    def to_identifier_unchecked(self, filename):
        return filename[len(self.prefix):len(filename) - len(self.extension)]

    def accept(self, filename):
        """Return whether `filename` conforms to this naming scheme."""
        return (len(filename) > self.decoration_length
                and filename.startswith(self.prefix)
                and filename.endswith(self.extension))

    def is_hex_filename(self, filename):
        """Return whether `filename` conforms and its identifier is lowercase hex."""
        return (self.accept(filename)
                and is_lowercase_hex(self.to_identifier_unchecked(filename)))


class PrefixOrder(enum.Enum):
    """Position of a string relative to a prefix."""
    BEFORE = 'before'
    # the prefix starts with the string: an ancestor of the prefix
    SUB = 'sub'
    AT = 'at'
    AFTER = 'after'

    @property
    def is_before(self):
        return self is PrefixOrder.BEFORE

    @property
    def is_at(self):
        return self is PrefixOrder.AT

    @property
    def is_after(self):
        return self is PrefixOrder.AFTER


def compare_to_prefix(string, prefix):
    """Return the :class:`PrefixOrder` of `string` relative to `prefix`.

    Note this is not reflexive: ``compare_to_prefix('ab', 'a')`` is ``AT``
    while ``compare_to_prefix('a', 'ab')`` is ``SUB``.
    """
    if string < prefix:
        return PrefixOrder.SUB if prefix.startswith(string) else PrefixOrder.BEFORE
    if string.startswith(prefix):
        return PrefixOrder.AT
    return PrefixOrder.AFTER
