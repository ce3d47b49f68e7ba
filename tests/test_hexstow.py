# -*- coding: utf-8 -*-

import hashlib
import itertools
import os
import pytest
from hexstow import (BytesManager, CodecObjectManager, FileManager, ListCodec, TextCodec,
                     AmbiguousPrefixError, CorruptionError, NotFoundError, HexPathTree)
from hexstow.hexstow import DigestPool, hashlib_name


@pytest.fixture
def testpath_root(tmpdir):
    return tmpdir.mkdir('hexstow_root')


@pytest.fixture
def testpath_input(tmpdir):
    return tmpdir.mkdir('hexstow_input_files')


@pytest.fixture
def manager(testpath_root):
    return BytesManager(root=str(testpath_root), extension='bin')


@pytest.fixture
def text_manager(testpath_root):
    return CodecObjectManager(root=str(testpath_root), extension='txt', codec=TextCodec())


@pytest.fixture
def file_manager(testpath_root):
    return FileManager(root=str(testpath_root), extension='dat')


def md5_hex(data):
    return hashlib.md5(data).hexdigest()


def objects_with_prefix(prefix, count):
    found = []
    for i in itertools.count():
        data = 'object-{0}'.format(i).encode()
        if md5_hex(data).startswith(prefix):
            found.append(data)
            if len(found) == count:
                return found


def write_range(manager, count):
    return dict((manager.write(data), data)
                for data in ('{0}'.format(i).encode() for i in range(count)))


def make_writable(path):
    os.chmod(path, 0o644)


def temp_files(root):
    return [name for _, _, names in os.walk(str(root)) for name in names if name.startswith('_tmp')]


def test_bytes_manager_write_read(manager):
    hexstr = manager.write(b'foo')
    assert hexstr == md5_hex(b'foo') == 'acbd18db4cc2f85cedef654fccc4a4d8'
    assert manager.read(hexstr) == b'foo'
    assert manager.read(hexstr.upper()) == b'foo'
    assert manager.find(hexstr) == manager.root / (hexstr + '.bin')


def test_bytes_manager_get_id(manager):
    hexstr = manager.get_id(b'bar')
    assert not manager.contains_id(hexstr)
    assert manager.write(b'bar') == hexstr
    assert manager.contains_id(hexstr)
    assert hexstr in manager


def test_bytes_manager_idempotent(manager):
    first = manager.write(b'foo')
    path = manager.find(first)
    assert manager.write(bytearray(b'foo')) == first
    assert manager.find(first) == path
    assert list(manager) == [first]
    assert sorted(os.listdir(manager.root)) == [first + '.bin']


def test_bytes_manager_empty_object(manager):
    hexstr = manager.write(b'')
    assert hexstr == md5_hex(b'')
    assert manager.read(hexstr) == b''


def test_bytes_manager_read_not_found(manager):
    with pytest.raises(NotFoundError):
        manager.read('0' * 32)
    with pytest.raises(FileNotFoundError):
        manager.read('0' * 32)
    with pytest.raises(ValueError):
        manager.read('invalid')


def test_bytes_manager_stream(manager):
    written = write_range(manager, 50)
    assert list(manager.stream_ids()) == sorted(written)
    assert list(manager.stream_objects()) == [written[hexstr] for hexstr in sorted(written)]
    start = sorted(written)[25]
    assert list(manager.stream_ids(start)) == sorted(written)[25:]
    assert list(manager.stream_ids(start[:3]))[0] <= start


def test_bytes_manager_read_using_prefix(manager):
    written = write_range(manager, 50)
    for hexstr, data in written.items():
        assert manager.read_using_prefix(hexstr[:10]) == data
        assert manager.read_using_prefix(hexstr) == data


def test_bytes_manager_read_using_prefix_ambiguous(manager):
    written = write_range(manager, 50)
    # 50 ids over 16 first characters: some first character repeats
    first_chars = sorted(hexstr[0] for hexstr in written)
    repeated = next(c for c, n in ((c, first_chars.count(c)) for c in first_chars) if n > 1)
    with pytest.raises(AmbiguousPrefixError):
        manager.read_using_prefix(repeated)


def test_bytes_manager_read_using_prefix_not_found(manager):
    written = write_range(manager, 50)
    missing = next(prefix for prefix in ('{0:04x}'.format(i) for i in range(0x10000))
                   if not any(hexstr.startswith(prefix) for hexstr in written))
    with pytest.raises(NotFoundError):
        manager.read_using_prefix(missing)
    with pytest.raises(ValueError):
        manager.read_using_prefix('')


def test_bytes_manager_read_using_prefix_duplicate_depths(manager):
    hexstr = manager.write(b'foo')
    shard = manager.root / hexstr[:2]
    shard.mkdir()
    (shard / (hexstr[2:] + '.bin')).write_bytes(b'foo')
    assert manager.read_using_prefix(hexstr[:4]) == b'foo'
    assert list(manager.stream_ids()) == [hexstr]


def test_bytes_manager_corruption(manager):
    hexstr = manager.write(b'hello world')
    path = manager.find(hexstr)
    make_writable(path)
    path.write_bytes(b'hello_world')
    with pytest.raises(CorruptionError):
        manager.write(b'hello world')
    path.write_bytes(b'hello')
    with pytest.raises(CorruptionError):
        manager.write(b'hello world')


def test_bytes_manager_max_bytes(testpath_root):
    with pytest.raises(ValueError):
        BytesManager(root=str(testpath_root), extension='bin', max_bytes=15)

    manager = BytesManager(root=str(testpath_root), extension='bin', max_bytes=16)
    with pytest.raises(ValueError):
        manager.write(b'x' * 17)
    hexstr = manager.write(b'x' * 16)
    path = manager.find(hexstr)
    make_writable(path)
    path.write_bytes(b'x' * 32)
    with pytest.raises(CorruptionError):
        manager.read(hexstr)


def test_bytes_manager_type_error(manager):
    with pytest.raises(TypeError):
        manager.write('foo')
    with pytest.raises(TypeError):
        manager.write(5)


def test_bytes_manager_fmode(manager):
    path = manager.find(manager.write(b'foo'))
    assert path.stat().st_mode & 0o777 == 0o444


def test_bytes_manager_no_temp_files_left(manager):
    write_range(manager, 20)
    assert not temp_files(manager.root)


def test_bytes_manager_link_error_removes_temp_file(manager, monkeypatch):
    def refuse(src, dst):
        raise PermissionError(dst)

    monkeypatch.setattr(os, 'link', refuse)
    with pytest.raises(PermissionError):
        manager.write(b'foo')
    assert not temp_files(manager.root)
    assert list(manager.stream_ids()) == []


def test_bytes_manager_chmod_error_removes_temp_file(manager, monkeypatch):
    def refuse(path, mode):
        raise PermissionError(path)

    monkeypatch.setattr(os, 'chmod', refuse)
    with pytest.raises(PermissionError):
        manager.write(b'foo')
    assert not temp_files(manager.root)


def test_bytes_manager_lost_race_conflict(manager, monkeypatch):
    hexstr = md5_hex(b'foo')
    manager.hexpath.suggest(hexstr).write_bytes(b'bar')
    # another writer got there between lookup and link
    monkeypatch.setattr(HexPathTree, 'find', lambda self, hexstr: None)
    with pytest.raises(CorruptionError):
        manager.write(b'foo')
    assert not temp_files(manager.root)


def test_bytes_manager_lost_race_same_bytes(manager, monkeypatch):
    hexstr = md5_hex(b'foo')
    path = manager.hexpath.suggest(hexstr)
    path.write_bytes(b'foo')
    monkeypatch.setattr(HexPathTree, 'find', lambda self, hexstr: None)
    assert manager.write(b'foo') == hexstr
    assert path.read_bytes() == b'foo'
    assert not temp_files(manager.root)


def test_bytes_manager_odd_length_id(manager):
    hexstr = manager.write(b'foo')
    with pytest.raises(ValueError):
        manager.read(hexstr[:-1])
    with pytest.raises(ValueError):
        manager.contains_id(hexstr[:5])
    assert manager.read_using_prefix(hexstr[:5]) == b'foo'


@pytest.mark.parametrize('algorithm,name', [
    ('md5', 'md5'),
    ('MD5', 'md5'),
    ('sha1', 'sha1'),
    ('SHA-1', 'sha1'),
    ('SHA-256', 'sha256'),
    ('sha256', 'sha256'),
    ('SHA3-256', 'sha3_256'),
    ('sha3_256', 'sha3_256'),
    ('SHA-512', 'sha512'),
])
def test_hashlib_name(algorithm, name):
    assert hashlib_name(algorithm) == name


def test_hashlib_name_error():
    with pytest.raises(ValueError):
        hashlib_name('nope')


@pytest.mark.parametrize('algorithm', ['SHA-256', 'sha1', 'SHA3-256'])
def test_bytes_manager_algorithm(testpath_root, algorithm):
    manager = BytesManager(root=str(testpath_root), extension='bin', algorithm=algorithm)
    hexstr = manager.write(b'foo')
    assert hexstr == hashlib.new(hashlib_name(algorithm), b'foo').hexdigest()
    assert manager.read(hexstr) == b'foo'


def test_bytes_manager_algorithm_error(testpath_root):
    with pytest.raises(ValueError):
        BytesManager(root=str(testpath_root), extension='bin', algorithm='nope')


def test_bytes_manager_algorithm_mismatch(testpath_root):
    BytesManager(root=str(testpath_root), extension='bin').write(b'foo')
    with pytest.raises(ValueError):
        BytesManager(root=str(testpath_root), extension='bin', algorithm='sha1')
    assert BytesManager(root=str(testpath_root), extension='bin').read(md5_hex(b'foo')) == b'foo'


def test_bytes_manager_shared_root(testpath_root):
    bins = BytesManager(root=str(testpath_root), extension='bin')
    blobs = BytesManager(root=str(testpath_root), extension='blob')
    hexstr = bins.write(b'foo')
    assert not blobs.contains_id(hexstr)
    assert list(blobs.stream_ids()) == []


def test_bytes_manager_branching_threshold(manager):
    objects = objects_with_prefix('33', 257)
    for data in objects[:256]:
        manager.write(data)
    assert not (manager.root / '33').exists()
    assert len(os.listdir(manager.root)) == 256

    hexstr = manager.write(objects[256])
    assert (manager.root / '33').is_dir()
    assert manager.find(hexstr) == manager.root / '33' / (hexstr[2:] + '.bin')


def test_bytes_manager_300_objects(manager):
    objects = objects_with_prefix('33', 300)
    written = dict((manager.write(data), data) for data in objects)
    assert len(written) == 300

    shard = manager.root / '33'
    assert shard.is_dir()
    assert len([name for name in os.listdir(shard) if (shard / name).is_dir()]) <= 1
    for hexstr, data in written.items():
        assert manager.read(hexstr) == data
    assert list(manager.stream_ids()) == sorted(written)


def test_bytes_manager_parallel_ids(manager):
    written = write_range(manager, 30)
    cursors = manager.hexpath.split_cursors(4)
    ids = [entry.hex for cursor in cursors for entry in cursor]
    assert ids == sorted(written)


def test_digest_pool():
    pool = DigestPool('md5')
    first = pool.new()
    first.update(b'foo')
    second = pool.new()
    assert second.hexdigest() == md5_hex(b'')
    assert first.hexdigest() == md5_hex(b'foo')
    assert pool.hexdigest(b'foo') == md5_hex(b'foo')


def test_text_manager(text_manager):
    hexstr = text_manager.write('héllo')
    assert text_manager.read(hexstr) == 'héllo'
    assert text_manager.write('héllo') == hexstr
    assert text_manager.get_id('héllo') == hexstr
    assert text_manager.find(hexstr).read_bytes() == b'\x00\x00\x00\x06h\xc3\xa9llo'


def test_text_manager_undecodable(text_manager):
    hexstr = text_manager.write('hello')
    path = text_manager.find(hexstr)
    make_writable(path)
    path.write_bytes(b'\x00\x00\x00\x09hello')
    with pytest.raises(CorruptionError):
        text_manager.read(hexstr)


def test_text_manager_compare_decoded(testpath_root):
    manager = CodecObjectManager(root=str(testpath_root), extension='txt', codec=TextCodec(),
                                 compare_decoded=True)
    hexstr = manager.write('hello')
    path = manager.find(hexstr)
    make_writable(path)
    path.write_bytes(TextCodec().encode('other'))
    with pytest.raises(CorruptionError):
        manager.write('hello')


def test_list_manager(testpath_root):
    manager = CodecObjectManager(root=str(testpath_root), extension='lst',
                                 codec=ListCodec(TextCodec(max_length=16)))
    hexstr = manager.write(['a', 'bc', ''])
    assert manager.read(hexstr) == ['a', 'bc', '']
    assert manager.read(manager.write([])) == []
    assert manager.max_bytes == 4 + 20 * 128


def test_mapped_manager(text_manager):
    numbers = text_manager.mapped(int, str)
    hexstr = numbers.write(42)
    assert hexstr == text_manager.get_id('42')
    assert numbers.get_id(42) == hexstr
    assert numbers.read(hexstr) == 42
    assert numbers.read_using_prefix(hexstr[:6]) == 42
    assert list(numbers.stream_objects()) == [42]
    assert hexstr in numbers
    assert list(numbers) == [hexstr]


def test_file_manager_copy(testpath_root, testpath_input):
    manager = FileManager(root=str(testpath_root), extension='dat', move_on_write=False)
    infile = testpath_input.join('foo.txt')
    infile.write(b'foo')
    hexstr = manager.write(str(infile))
    assert hexstr == md5_hex(b'foo')
    assert infile.check(file=1)
    path = manager.read(hexstr)
    assert path == manager.find(hexstr)
    assert path.read_bytes() == b'foo'


def test_file_manager_move(file_manager, testpath_input):
    infile = testpath_input.join('foo.txt')
    infile.write(b'foo')
    hexstr = file_manager.write(str(infile))
    assert not infile.check()
    assert file_manager.read(hexstr).read_bytes() == b'foo'


def test_file_manager_duplicate(file_manager, testpath_input):
    first = testpath_input.join('first.txt')
    second = testpath_input.join('second.txt')
    first.write(b'foo')
    second.write(b'foo')
    assert file_manager.write(str(first)) == file_manager.write(str(second))
    assert second.check(file=1)
    assert len(list(file_manager.stream_ids())) == 1


def test_file_manager_empty_file(file_manager, testpath_input):
    infile = testpath_input.join('empty.txt')
    infile.write(b'')
    with pytest.raises(ValueError):
        file_manager.write(str(infile))
    with pytest.raises(ValueError):
        file_manager.write(str(testpath_input.join('missing.txt')))


def test_file_manager_copy_error_removes_temp_file(testpath_root, testpath_input, monkeypatch):
    manager = FileManager(root=str(testpath_root), extension='dat', move_on_write=False)
    infile = testpath_input.join('foo.txt')
    infile.write(b'foo')

    def fail(src, dst):
        raise OSError('disk full')

    monkeypatch.setattr('shutil.copy2', fail)
    with pytest.raises(OSError):
        manager.write(str(infile))
    assert not temp_files(testpath_root)
    assert infile.check(file=1)


def test_file_manager_large_file(file_manager, testpath_input):
    data = os.urandom(256 * 128 * 2 * 3 + 17)
    infile = testpath_input.join('large.bin')
    infile.write(data, mode='wb')
    assert file_manager.get_id(str(infile)) == md5_hex(data)
    hexstr = file_manager.write(str(infile))
    assert file_manager.read(hexstr).read_bytes() == data
