"""
This package provides an interface for reading OBBY archives, the container format used to distribute Obsidian
plugins (analogous to ZipFile, TarFile etc.)

An OBBY archive consists of a header (API version, content hash, optional signature, plugin identity), a table of
entries, and the entry payloads, concatenated in table order. Each entry is either stored as-is or compressed using raw
deflate.

The main class of interest is `ObbyFile`. We can open an archive like so::

    obby_file = ObbyFile('path/to/plugin.obby')

list the entries it contains::

    for name in obby_file.list_entries():
        print(name, obby_file.entries[name])

and extract the data for an entry::

    data = obby_file.extract_entry('plugin.json')

For the very common case of just wanting the plugin manifest, there is a shortcut::

    manifest_text = extract_plugin_json('path/to/plugin.obby')

This package does not offer functionality for writing OBBY archives, nor does it verify the hash or signature.
"""

import zlib

from dataclasses import dataclass
from types import MappingProxyType
from typing import ContextManager, BinaryIO, AnyStr, Union, Optional, List, Mapping
from os import PathLike, SEEK_SET, fsdecode
from io import BytesIO, IOBase, TextIOBase

from atmfjstc.lib.obby_file.BinaryReader import BinaryReader, BinaryReaderTruncatedError, BinaryReaderWrongMagicError
from atmfjstc.lib.obby_file.errors import ObbyFileError, InvalidObbyHeaderError, NotAnObbyFileError, \
    ObbyFileTruncatedError, ObbyEntryNotFoundError, ObbyEntryCorruptError, ObbyEntryEncodingError


__version__ = '0.2.1'


OBBY_MAGIC = b'OBBY'
CONTENT_HASH_SIZE = 48
SIGNATURE_SIZE = 384

PLUGIN_JSON_ENTRY_NAME = 'plugin.json'


class ObbyFile(ContextManager['ObbyFile']):
    """
    This class provides access to an OBBY archive stored in a file or file object.

    An `ObbyFile` parses the archive header and entry table as soon as it is constructed. Afterwards, data about the
    archive is available in the following attributes:

    - `header`: An `ObbyHeader` object with the archive metadata (API version, plugin identity, signature etc.)
    - `entries`: A read-only mapping from entry names to `ObbyEntry` objects
    - `payload_start_offset`: The absolute offset in the file object at which the entry data begins

    The content of an entry is obtained by passing its name to `extract_entry`. Entries are always extracted fully into
    memory, and are decompressed if needed. Nothing is cached, each call reads the data anew.

    An `ObbyFile` can be either opened and closed manually::

        obf = ObbyFile("plugin.obby")
        print(obf.list_entries())
        obf.close()

    or used as a context manager::

        with ObbyFile("plugin.obby") as obf:
            print(obf.list_entries())

    Warning: do not extract entries from the same `ObbyFile` from multiple threads simultaneously. Each extraction
    seeks the underlying file object.
    """

    _fileobj: Optional[BinaryIO] = None
    _fileobj_owned: bool = False
    _reader: BinaryReader

    _header: 'ObbyHeader'
    _entries: Mapping[str, 'ObbyEntry'] = MappingProxyType({})
    _payload_start_offset: int = 0

    def __init__(self, path_or_fileobj: Union[PathLike, AnyStr, BinaryIO]):
        """
        Opens an OBBY archive for reading.

        Args:
            path_or_fileobj: Either a filename, or an open, seekable, binary file object containing the archive.

        Raises:
            NotAnObbyFileError: If the data does not start with the OBBY magic
            InvalidObbyHeaderError: If the header or entry table contain impossible values (e.g. negative lengths)
            ObbyFileTruncatedError: If the data ends before the entry table is complete
            ValueError: If the file object, or the file at the given path, is not seekable

        There are several caveats if a file object is passed:

        - The archive will be read from the current position in the fileobj. It is not automatically rewound! Offsets
          reported by the `ObbyFile` are absolute, i.e. relative to the start of the file object.
        - The data in the file object should not be changed during the lifetime of the `ObbyFile`.
        - The file object should be kept open for the lifetime of the `ObbyFile` if we need to extract entries.
        - The `ObbyFile` will not close the file object itself when the context ends.
        """

        if isinstance(path_or_fileobj, IOBase):
            if isinstance(path_or_fileobj, TextIOBase):
                raise TypeError("File object must be binary, not text")
            if not path_or_fileobj.seekable():
                raise ValueError("File object must be seekable")

            self._fileobj = path_or_fileobj
        else:
            self._fileobj = open(path_or_fileobj, 'rb')
            self._fileobj_owned = True

            if not self._fileobj.seekable():
                self._fileobj.close()
                raise ValueError(f"File '{fsdecode(path_or_fileobj)}' is not seekable (e.g. a pipe)")

        try:
            self._read_archive()
        except BaseException:
            if self._fileobj_owned:
                self._fileobj.close()
            raise

    @classmethod
    def from_bytes(cls, data: Union[bytes, bytearray, memoryview]) -> 'ObbyFile':
        """
        Opens an OBBY archive held entirely in memory.
        """

        archive = cls(BytesIO(bytes(data)))
        archive._fileobj_owned = True

        return archive

    @property
    def header(self) -> 'ObbyHeader':
        """
        The archive metadata, as parsed from the header. Note that the hash and signature are not verified.
        """
        return self._header

    @property
    def entries(self) -> Mapping[str, 'ObbyEntry']:
        """
        Metadata about the entries in the archive, by name.
        """
        return self._entries

    @property
    def payload_start_offset(self) -> int:
        """
        The absolute offset in the file object at which the data for the first entry begins.
        """
        return self._payload_start_offset

    @property
    def closed(self) -> bool:
        return self._fileobj is None or self._fileobj.closed

    def list_entries(self) -> List[str]:
        """
        Returns the names of all the entries in the archive.
        """
        return list(self._entries.keys())

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, name: object) -> bool:
        return name in self._entries

    def extract_entry(self, name: str) -> bytes:
        """
        Extracts the full content of an entry, decompressing it if needed.

        The archive must still be open for this to work.

        Args:
            name: The name of the entry, as it appears in `entries`.

        Returns:
            The uncompressed data, as a `bytes` object. Note that its length is not checked against the declared
            uncompressed length of the entry.

        Raises:
            ObbyEntryNotFoundError: If there is no entry with this name. No I/O is performed in this case.
            ObbyFileTruncatedError: If the file ends before the entry data does.
            ObbyEntryCorruptError: If the entry is compressed and its data cannot be decompressed.

        A failed extraction does not affect the archive object, other entries can still be extracted afterwards.
        """

        if self.closed:
            raise ValueError("Cannot extract entries because the underlying file object has been closed")

        entry = self._entries.get(name)
        if entry is None:
            raise ObbyEntryNotFoundError(name)

        self._reader.seek(self._payload_start_offset + entry.stored_offset, SEEK_SET)

        try:
            stored_data = self._reader.read_amount(entry.stored_length, f"data for entry '{name}'")
        except BinaryReaderTruncatedError as e:
            raise ObbyFileTruncatedError(self._reader.name()) from e

        if not entry.is_compressed:
            return stored_data

        return _inflate(stored_data, name)

    def extract_text(self, name: str) -> str:
        """
        Like `extract_entry`, but decodes the content as UTF-8 text.

        Unlike the names and strings in the header, which are decoded leniently, the decoding here is strict and
        raises `ObbyEntryEncodingError` on invalid data.
        """

        data = self.extract_entry(name)

        try:
            return data.decode('utf-8')
        except UnicodeDecodeError as e:
            raise ObbyEntryEncodingError(name) from e

    def extract_plugin_json(self) -> str:
        """
        Extracts the text of the plugin manifest (the ``plugin.json`` entry).
        """
        return self.extract_text(PLUGIN_JSON_ENTRY_NAME)

    def close(self):
        """
        Closes the underlying file object.

        Once the file is closed, you can still read the header and entry metadata, but you won't be able to extract
        entries.

        Note that this method closes the file object regardless of whether it was created by `ObbyFile` or received
        from elsewhere!
        """

        if self._fileobj is not None:
            self._fileobj.close()

    def __enter__(self) -> 'ObbyFile':
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if (not self._fileobj_owned) or self.closed:
            return

        self._fileobj.close()

    def _read_archive(self):
        self._reader = reader = BinaryReader(self._fileobj)

        try:
            try:
                reader.expect_magic(OBBY_MAGIC, 'OBBY magic')
            except BinaryReaderWrongMagicError as e:
                raise NotAnObbyFileError(reader.name(), e.found_magic) from e

            self._header = ObbyHeader.read_from_binary(reader)
            self._entries = MappingProxyType(_read_entry_table(reader, self._header.entry_count))
        except BinaryReaderTruncatedError as e:
            raise ObbyFileTruncatedError(reader.name()) from e

        self._payload_start_offset = reader.tell()


@dataclass(frozen=True)
class ObbyHeader:
    """
    The metadata stored in the header of an OBBY archive.

    Objects of this type are inert data containers and are unaffected by the closure of the originating `ObbyFile`.

    Attributes:
        api_version: The plugin API version the archive was built for.
        content_hash: The 48-byte hash of the content, as raw bytes. Not verified.
        is_signed: Whether the archive carries a signature.
        signature: [Optional] The 384-byte signature, as raw bytes, if the archive is signed. Not verified.
        declared_data_length: The total data length declared in the header. It is informational only and is not
            checked against the actual entry sizes.
        plugin_assembly: The identifier of the plugin assembly.
        plugin_version: The version of the plugin.
        entry_count: The number of records in the entry table. May exceed the number of distinct entry names if the
            table contains duplicates.
    """

    api_version: str
    content_hash: bytes
    is_signed: bool
    signature: Optional[bytes]
    declared_data_length: int
    plugin_assembly: str
    plugin_version: str
    entry_count: int

    @staticmethod
    def read_from_binary(reader: BinaryReader) -> 'ObbyHeader':
        api_version = reader.read_7bit_length_prefixed_str('API version')
        content_hash = reader.read_amount(CONTENT_HASH_SIZE, 'content hash')

        is_signed = reader.read_u8('signed flag') != 0
        signature = reader.read_amount(SIGNATURE_SIZE, 'signature') if is_signed else None

        declared_data_length = reader.read_i32('data length')
        plugin_assembly = reader.read_7bit_length_prefixed_str('plugin assembly')
        plugin_version = reader.read_7bit_length_prefixed_str('plugin version')

        entry_count = reader.read_i32('entry count')
        if entry_count < 0:
            raise InvalidObbyHeaderError(reader.name(), f"negative entry count ({entry_count})")

        return ObbyHeader(
            api_version=api_version,
            content_hash=content_hash,
            is_signed=is_signed,
            signature=signature,
            declared_data_length=declared_data_length,
            plugin_assembly=plugin_assembly,
            plugin_version=plugin_version,
            entry_count=entry_count,
        )


@dataclass(frozen=True)
class ObbyEntry:
    """
    Metadata for an entry in an OBBY archive.

    Attributes:
        name: The name of the entry (usually a relative path, e.g. ``plugin.json``)
        index: The position of the entry's record in the entry table
        stored_offset: The offset of the entry data, relative to the start of the payload region. This is not stored
            in the file, but computed by summing the stored lengths of all the preceding records.
        uncompressed_length: The declared length of the entry content
        stored_length: The length of the entry data as stored in the archive
    """

    name: str
    index: int
    stored_offset: int
    uncompressed_length: int
    stored_length: int

    @property
    def is_compressed(self) -> bool:
        """
        Whether the entry data is deflate-compressed.

        The format has no explicit flag for this. An entry counts as compressed if and only if its stored length
        differs from its uncompressed length.
        """
        return self.stored_length != self.uncompressed_length

    @staticmethod
    def read_from_binary(reader: BinaryReader, index: int, stored_offset: int) -> 'ObbyEntry':
        name = reader.read_7bit_length_prefixed_str(f"name of entry #{index}")
        uncompressed_length = reader.read_i32(f"uncompressed length of entry #{index}")
        stored_length = reader.read_i32(f"stored length of entry #{index}")

        for length, kind in ((uncompressed_length, 'uncompressed'), (stored_length, 'stored')):
            if length < 0:
                raise InvalidObbyHeaderError(reader.name(), f"entry '{name}' has negative {kind} length ({length})")

        return ObbyEntry(
            name=name,
            index=index,
            stored_offset=stored_offset,
            uncompressed_length=uncompressed_length,
            stored_length=stored_length,
        )


def _read_entry_table(reader: BinaryReader, entry_count: int) -> dict:
    entries = dict()
    current_offset = 0

    for index in range(entry_count):
        entry = ObbyEntry.read_from_binary(reader, index, current_offset)

        # A later record with the same name shadows the earlier one, but its data still takes up space
        entries[entry.name] = entry
        current_offset += entry.stored_length

    return entries


def _inflate(data: bytes, entry_name: str) -> bytes:
    decompressor = zlib.decompressobj(-zlib.MAX_WBITS)

    try:
        result = decompressor.decompress(data) + decompressor.flush()
    except zlib.error as e:
        raise ObbyEntryCorruptError(entry_name) from e

    if not decompressor.eof:
        raise ObbyEntryCorruptError(entry_name) from zlib.error("Compressed data ends before the final block")

    return result


def open_obby(path_or_fileobj: Union[PathLike, AnyStr, BinaryIO]) -> ObbyFile:
    """
    Opens an OBBY archive from a path or seekable file object. Equivalent to calling the `ObbyFile` constructor.
    """
    return ObbyFile(path_or_fileobj)


def extract_plugin_json(path_or_fileobj: Union[PathLike, AnyStr, BinaryIO]) -> str:
    """
    Shortcut for opening an OBBY archive and extracting the text of its ``plugin.json`` entry.

    Raises:
        ObbyEntryNotFoundError: If the archive has no ``plugin.json`` entry
        ObbyEntryEncodingError: If the manifest is not valid UTF-8
        Any other error raised by `ObbyFile` and `ObbyFile.extract_entry`.
    """

    with ObbyFile(path_or_fileobj) as archive:
        return archive.extract_plugin_json()


__all__ = [
    'ObbyFile', 'ObbyHeader', 'ObbyEntry', 'open_obby', 'extract_plugin_json',
    'OBBY_MAGIC', 'CONTENT_HASH_SIZE', 'SIGNATURE_SIZE', 'PLUGIN_JSON_ENTRY_NAME',
    'ObbyFileError', 'InvalidObbyHeaderError', 'NotAnObbyFileError', 'ObbyFileTruncatedError',
    'ObbyEntryNotFoundError', 'ObbyEntryCorruptError', 'ObbyEntryEncodingError',
]
