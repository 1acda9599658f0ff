"""
The `obby-file` command-line tool, for inspecting and unpacking OBBY plugin archives.

Usage::

    obby-file list plugin.obby
    obby-file info plugin.obby
    obby-file extract plugin.obby main.js -o main.js
    obby-file unpack plugin.obby ./plugin-dir
    obby-file plugin-json plugin.obby

Entry names and extracted data go to stdout, everything else (progress, warnings, errors) goes through the console
abstraction. Use ``-q`` to silence progress messages and ``-v`` to see debug logs of what is being read.
"""

import sys

from argparse import ArgumentParser, Namespace
from logging import getLogger, DEBUG, WARNING
from pathlib import Path, PurePosixPath
from typing import Optional, Sequence, List, Tuple

from colorama import just_fix_windows_console

from atmfjstc.lib.obby_file import ObbyFile, ObbyFileError
from atmfjstc.lib.obby_file.cli.console import console
from atmfjstc.lib.obby_file.cli.errors import pretty_unhandled, descriptive_errors, fail
from atmfjstc.lib.obby_file.cli.logging import init_console_friendly_logging


LOG = getLogger(__name__)


@pretty_unhandled
def main(argv: Optional[Sequence[str]] = None):
    just_fix_windows_console()

    args = _parse_args(argv)

    init_console_friendly_logging(DEBUG if args.verbose else WARNING)

    console.set_stdout_enabled(not args.quiet)

    with descriptive_errors(ObbyFileError, OSError):
        args.handler(args)


def _parse_args(argv: Optional[Sequence[str]]) -> Namespace:
    parser = ArgumentParser(
        prog='obby-file',
        description="Inspect and extract the contents of OBBY plugin archives",
    )
    parser.add_argument('-v', '--verbose', action='store_true', help="show debug information about the archive")
    parser.add_argument('-q', '--quiet', action='store_true', help="do not show progress messages")

    subparsers = parser.add_subparsers(dest='command', metavar='COMMAND')
    subparsers.required = True

    list_parser = subparsers.add_parser('list', help="list the names of the entries in an archive")
    list_parser.add_argument('archive', help="the .obby file")
    list_parser.set_defaults(handler=_cmd_list)

    info_parser = subparsers.add_parser('info', help="show the archive header and entry table")
    info_parser.add_argument('archive', help="the .obby file")
    info_parser.set_defaults(handler=_cmd_info)

    extract_parser = subparsers.add_parser('extract', help="extract a single entry")
    extract_parser.add_argument('archive', help="the .obby file")
    extract_parser.add_argument('entry', help="the name of the entry to extract")
    extract_parser.add_argument(
        '-o', '--output', metavar='FILE', help="where to write the entry data (default: stdout)"
    )
    extract_parser.set_defaults(handler=_cmd_extract)

    unpack_parser = subparsers.add_parser('unpack', help="extract all entries into a directory")
    unpack_parser.add_argument('archive', help="the .obby file")
    unpack_parser.add_argument('dest_dir', metavar='DEST_DIR', help="the directory to unpack into")
    unpack_parser.set_defaults(handler=_cmd_unpack)

    manifest_parser = subparsers.add_parser('plugin-json', help="print the plugin.json manifest")
    manifest_parser.add_argument('archive', help="the .obby file")
    manifest_parser.set_defaults(handler=_cmd_plugin_json)

    return parser.parse_args(argv)


def _open_archive(path: str) -> ObbyFile:
    archive = ObbyFile(path)
    header = archive.header

    LOG.debug(f"Opened '{path}'")
    LOG.debug(f"API version: {header.api_version}")
    LOG.debug(f"Content hash: {header.content_hash.hex()}")
    LOG.debug(f"Signed: {header.is_signed}")
    LOG.debug(f"Declared data length: {header.declared_data_length}")
    LOG.debug(f"Plugin: {header.plugin_assembly} {header.plugin_version}")
    LOG.debug(f"{header.entry_count} entries, data starts at offset {archive.payload_start_offset}")

    return archive


def _extract(archive: ObbyFile, name: str) -> bytes:
    entry = archive.entries.get(name)
    if entry is not None:
        LOG.debug(
            f"Extracting '{name}' ({entry.stored_length} bytes stored at +{entry.stored_offset}, "
            f"{'compressed' if entry.is_compressed else 'not compressed'})"
        )

    data = archive.extract_entry(name)

    if entry is not None and len(data) != entry.uncompressed_length:
        console.print_warning(
            f"Entry '{name}' declares {entry.uncompressed_length} bytes but {len(data)} were extracted"
        )

    return data


def _cmd_list(args: Namespace):
    with _open_archive(args.archive) as archive:
        for name in archive.list_entries():
            print(name)


def _cmd_info(args: Namespace):
    with _open_archive(args.archive) as archive:
        header = archive.header

        for label, value in [
            ("API version", header.api_version),
            ("Content hash", header.content_hash.hex()),
            ("Signed", 'yes' if header.is_signed else 'no'),
            ("Declared data length", header.declared_data_length),
            ("Plugin assembly", header.plugin_assembly),
            ("Plugin version", header.plugin_version),
            ("Entry count", header.entry_count),
            ("Payload offset", archive.payload_start_offset),
        ]:
            print(f"{label + ':':<22}{value}")

        print()
        print(f"{'Stored':>10} {'Size':>10}  C  Name")

        for entry in sorted(archive.entries.values(), key=lambda e: e.index):
            print(
                f"{entry.stored_length:>10} {entry.uncompressed_length:>10}  "
                f"{'*' if entry.is_compressed else ' '}  {entry.name}"
            )


def _cmd_extract(args: Namespace):
    with _open_archive(args.archive) as archive:
        data = _extract(archive, args.entry)

    if args.output is None:
        sys.stdout.buffer.write(data)
        sys.stdout.buffer.flush()
        return

    Path(args.output).write_bytes(data)
    console.print_success(f"Extracted '{args.entry}' ({len(data)} bytes) to {args.output}")


def _cmd_unpack(args: Namespace):
    dest_dir = Path(args.dest_dir)

    with _open_archive(args.archive) as archive:
        targets = _plan_unpack(dest_dir, archive.list_entries())

        for name, target in targets:
            console.print_progress(f"Extracting {name}...")

            data = _extract(archive, name)

            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)

    console.print_success(f"Unpacked {len(targets)} entries to {dest_dir}")


def _plan_unpack(dest_dir: Path, names: List[str]) -> List[Tuple[str, Path]]:
    """
    Maps every entry name to its output path, refusing names that would end up outside the destination directory, and
    names whose paths clash with those of other entries (e.g. ``a`` and ``a/b``, or ``a/b`` and ``a\\b``).

    All names are checked before anything is written.
    """

    names_by_parts = dict()

    for name in names:
        relative = PurePosixPath(name.replace('\\', '/'))

        if relative.is_absolute() or ('..' in relative.parts) or (len(relative.parts) == 0) or \
                (':' in relative.parts[0]):
            fail(f"Refusing to unpack entry '{name}', its path is not inside the destination directory")

        other_name = names_by_parts.setdefault(relative.parts, name)
        if other_name != name:
            fail(f"Refusing to unpack entry '{name}', it would overwrite entry '{other_name}'")

    for parts, name in names_by_parts.items():
        for depth in range(1, len(parts)):
            other_name = names_by_parts.get(parts[:depth])
            if other_name is not None:
                fail(f"Refusing to unpack entry '{name}', its directory clashes with entry '{other_name}'")

    return [(name, dest_dir.joinpath(*parts)) for parts, name in names_by_parts.items()]


def _cmd_plugin_json(args: Namespace):
    with _open_archive(args.archive) as archive:
        print(archive.extract_plugin_json())
