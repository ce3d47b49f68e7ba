# -*- coding: utf-8 -*-

import pytest
from hexstow.hexes import (FilenameScheme, PrefixOrder, canonicalize_hex, canonicalize_id,
                           compare_to_prefix, is_hex, is_lowercase_hex, normalize_extension)


@pytest.mark.parametrize('hexstr,expected', [
    ('abc123', 'abc123'),
    ('ABC123', 'abc123'),
    ('0', '0'),
    ('dEaDbEeF', 'deadbeef'),
])
def test_canonicalize_hex(hexstr, expected):
    assert canonicalize_hex(hexstr) == expected


@pytest.mark.parametrize('hexstr', ['', 'xyz', 'abc ', '0x12', None, b'ab'])
def test_canonicalize_hex_error(hexstr):
    with pytest.raises(ValueError):
        canonicalize_hex(hexstr)


def test_canonicalize_id():
    assert canonicalize_id('ABCD') == 'abcd'
    with pytest.raises(ValueError):
        canonicalize_id('abc')
    with pytest.raises(ValueError):
        canonicalize_id('')


def test_is_hex():
    assert is_hex('Ab09')
    assert not is_hex('')
    assert not is_hex('g')
    assert is_lowercase_hex('ab09')
    assert not is_lowercase_hex('Ab09')
    assert not is_lowercase_hex('')


def test_normalize_extension():
    assert normalize_extension('txt') == '.txt'
    assert normalize_extension('.txt') == '.txt'
    with pytest.raises(ValueError):
        normalize_extension('')


def test_filename_scheme():
    scheme = FilenameScheme(extension='.txt')
    assert scheme.to_filename('ab') == 'ab.txt'
    assert scheme.to_identifier('ab.txt') == 'ab'
    assert scheme.accept('ab.txt')
    assert not scheme.accept('.txt')
    assert not scheme.accept('ab.bin')
    assert scheme.is_hex_filename('ab.txt')
    assert not scheme.is_hex_filename('AB.txt')
    assert not scheme.is_hex_filename('zz.txt')
    with pytest.raises(ValueError):
        scheme.to_identifier('ab.bin')
    with pytest.raises(ValueError):
        scheme.to_filename('')


def test_filename_scheme_prefix():
    scheme = FilenameScheme(prefix='obj-', extension='.txt')
    assert scheme.to_filename('ab') == 'obj-ab.txt'
    assert scheme.to_identifier('obj-ab.txt') == 'ab'
    assert not scheme.accept('ab.txt')


def test_filename_scheme_error():
    with pytest.raises(ValueError):
        FilenameScheme()
    with pytest.raises(ValueError):
        FilenameScheme(extension='.' + 'x' * 250)


@pytest.mark.parametrize('string,prefix,expected', [
    ('', 'ab', PrefixOrder.SUB),
    ('a', 'ab', PrefixOrder.SUB),
    ('ab', 'ab', PrefixOrder.AT),
    ('ab', 'a', PrefixOrder.AT),
    ('abff', 'ab', PrefixOrder.AT),
    ('aa', 'ab', PrefixOrder.BEFORE),
    ('aaff', 'ab', PrefixOrder.BEFORE),
    ('ac', 'ab', PrefixOrder.AFTER),
    ('b', 'ab', PrefixOrder.AFTER),
])
def test_compare_to_prefix(string, prefix, expected):
    order = compare_to_prefix(string, prefix)
    assert order is expected
    assert order.is_before == (expected is PrefixOrder.BEFORE)
    assert order.is_at == (expected is PrefixOrder.AT)
    assert order.is_after == (expected is PrefixOrder.AFTER)
