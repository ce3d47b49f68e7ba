#!/usr/bin/env python3

import concurrent.futures
import hashlib
import itertools
import logging
import os
import sys

import click
import humanize

from hexstow import FileManager
from hexstow import FileStower
from hexstow import StowError
from hexstow import WriteLoggedObjectManager
from hexstow import has_plain_text_log_file
from hexstow import hashlib_name
from hexstow import new_plain_text_write_log
from hexstow import new_plain_text_write_log_reader
from hexstow.hexpath import MIN_FILES_PER_DIR

logger = logging.getLogger(__name__)

ALGS = list(hashlib.algorithms_available)
ALGS.sort()


def validate_algorithm(ctx, param, value):
    try:
        return hashlib_name(value)
    except ValueError:
        raise click.BadParameter('{0} (choose from {1})'.format(value, ', '.join(ALGS)))


@click.group()
@click.argument("root", type=click.Path(file_okay=False, resolve_path=True), nargs=1)
@click.option('--ext', default='obj', envvar='HEXSTOW_EXT', show_default=True)
@click.option('--max-files-per-dir', type=click.IntRange(min=MIN_FILES_PER_DIR),
              default=MIN_FILES_PER_DIR, show_default=True)
@click.option('--algorithm', default='md5', show_default=True, callback=validate_algorithm)
@click.option('--verbose', is_flag=True)
@click.pass_context
def cli(ctx, root, ext, max_files_per_dir, algorithm, verbose):
    logging.basicConfig(level=logging.DEBUG if verbose else logging.WARNING)
    try:
        ctx.obj = FileManager(root=root, extension=ext, algorithm=algorithm,
                              max_files_per_dir=max_files_per_dir, move_on_write=False)
    except ValueError as e:
        raise click.UsageError(str(e))
    if verbose:
        print(ctx.obj, file=sys.stderr)


@cli.command()
@click.argument("infiles", type=click.Path(exists=True, dir_okay=False), nargs=-1)
@click.pass_obj
def put(obj, infiles):
    with WriteLoggedObjectManager(obj, new_plain_text_write_log(obj)) as manager:
        for infile in infiles:
            try:
                hexstr = manager.write(infile)
            except (ValueError, StowError) as e:
                raise click.ClickException('{0}: {1}'.format(infile, e))
            print(hexstr, obj.find(hexstr))


@cli.command()
@click.argument("prefix", type=str)
@click.pass_obj
def get(obj, prefix):
    try:
        entry = obj.entry_for_prefix(prefix)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint='PREFIX')
    except StowError as e:
        raise click.ClickException(str(e))
    print(entry.hex, entry.file)


@cli.command(name='list')
@click.option('--start', type=str, help='Skip identifiers sorting before this prefix.')
@click.option('--limit', type=click.IntRange(min=0))
@click.pass_obj
def list_(obj, start, limit):
    try:
        entries = obj.stream_entries(start)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint='--start')
    for entry in itertools.islice(entries, limit):
        print(entry.hex, entry.file)


@cli.command()
@click.option('--since', type=str, help='UTC timestamp (prefix), e.g. 2026-10-19T08')
@click.option('--limit', type=click.IntRange(min=0))
@click.pass_obj
def log(obj, since, limit):
    if not has_plain_text_log_file(obj.root, obj.extension):
        raise click.ClickException('no write log in {0}'.format(obj.root))
    with new_plain_text_write_log_reader(obj.root, obj.extension) as reader:
        entries = reader.list_from(since) if since else reader
        for entry in itertools.islice(entries, limit):
            print(entry.timestamp, entry.hex)


@cli.command()
@click.argument("hexes", type=str, nargs=-1)
@click.pass_obj
def optimize(obj, hexes):
    for hexstr in hexes:
        try:
            path = obj.hexpath.optimize(hexstr)
        except ValueError as e:
            raise click.BadParameter(str(e), param_hint='HEXES')
        except StowError as e:
            raise click.ClickException(str(e))
        print(hexstr, path)


def check_entries(obj, cursor):
    checked = 0
    corrupt = []
    for entry in cursor:
        checked += 1
        if obj.hash_file(entry.file) != entry.hex:
            logger.warning('corrupt file: %s', entry.file)
            corrupt.append(entry)
    return checked, corrupt


@cli.command()
@click.option('--workers', type=click.IntRange(min=1), default=os.cpu_count() or 1)
@click.pass_context
def check(ctx, workers):
    obj = ctx.obj
    cursors = obj.hexpath.split_cursors(workers)
    logger.debug('checking with %d cursors', len(cursors))
    checked = 0
    corrupt = []
    with concurrent.futures.ThreadPoolExecutor(max_workers=workers) as pool:
        for count, entries in pool.map(lambda cursor: check_entries(obj, cursor), cursors):
            checked += count
            corrupt.extend(entries)

    for entry in corrupt:
        print("corrupt file:", entry.file)
    print("checked:", humanize.intcomma(checked), "corrupt:", len(corrupt))
    if corrupt:
        ctx.exit(1)


@cli.command()
@click.pass_obj
def stats(obj):
    count = 0
    size = 0
    for entry in obj.hexpath.stream():
        count += 1
        size += entry.file.stat().st_size
    print(humanize.intcomma(count), humanize.naturalsize(size))


@cli.command()
@click.option('--dir', 'dirs', type=click.Path(exists=True, file_okay=False), multiple=True,
              help='Stow directory to sweep (repeatable). Defaults to ROOT/stow.')
@click.option('--watch', is_flag=True, help='Keep sweeping until interrupted.')
@click.option('--interval', type=click.FloatRange(min=0.01), default=1.0, show_default=True)
@click.pass_obj
def stow(obj, dirs, watch, interval):
    def report(hexes):
        for hexstr in hexes:
            print(hexstr, obj.find(hexstr), flush=True)

    with FileStower(obj.root, obj.extension, obj.algorithm, stow_dirs=dirs or None,
                    max_files_per_dir=obj.max_files_per_dir) as stower:
        if not watch:
            report(stower.sweep())
            return
        logger.info('watching %s every %ss', ', '.join(map(str, stower.stow_dirs)), interval)
        try:
            stower.watch(interval, on_sweep=report)
        except KeyboardInterrupt:
            logger.info('stopped watching')


if __name__ == '__main__':
    cli()
