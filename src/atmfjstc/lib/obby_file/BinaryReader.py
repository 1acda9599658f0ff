"""
This module contains the `BinaryReader` class, a wrapper for binary I/O streams that offers the primitive decoding
functions required by the OBBY format: little-endian ints, fixed-size byte blocks and 7-bit varint length-prefixed
strings (the encoding .NET's `BinaryWriter.Write(string)` produces).
"""

from typing import Union, BinaryIO, Optional, AnyStr
from io import BytesIO, IOBase, TextIOBase
from os import SEEK_SET, SEEK_END


class BinaryReader:
    """
    This class wraps a binary I/O file object and offers functions for extracting binary-encoded ints, byte blocks and
    strings from it. All multi-byte ints are little-endian.

    The reader only ever moves forward by itself. Reads advance the position by exactly the number of bytes consumed.
    """

    _fileobj: BinaryIO

    _position: int
    _cached_total_size: Optional[int] = None

    def __init__(self, data_or_fileobj: Union[bytes, BinaryIO]):
        self._fileobj = _parse_main_input_arg(data_or_fileobj)

        self._position = self._fileobj.tell() if self._fileobj.seekable() else 0

    def name(self) -> Optional[AnyStr]:
        name = getattr(self._fileobj, 'name', None)

        return None if ((name is None) or (name == '') or isinstance(name, int)) else name

    def seekable(self) -> bool:
        return self._fileobj.seekable()

    def _require_seekable(self):
        if not self.seekable():
            raise ValueError("This operation can only be performed on seekable readers")

    def seek(self, offset: int, whence: int = SEEK_SET) -> 'BinaryReader':
        self._require_seekable()

        self._fileobj.seek(offset, whence)
        self._position = self._fileobj.tell()

        return self

    def tell(self) -> int:
        return self._position

    def total_size(self) -> int:
        self._require_seekable()

        if self._cached_total_size is None:
            original_position = self._fileobj.tell()
            self._cached_total_size = self._fileobj.seek(0, SEEK_END)
            self._fileobj.seek(original_position, SEEK_SET)

        return self._cached_total_size

    def bytes_remaining(self) -> int:
        self._require_seekable()

        return max(0, self.total_size() - self._position)

    def read_at_most(self, n_bytes: int) -> bytes:
        """
        Try to read `n_bytes` of data, returning fewer only if the data is exhausted.

        Short reads (e.g. from a pipe) are retried until the data runs out.
        """

        if n_bytes < 0:
            raise ValueError("The number of bytes to read cannot be negative")
        if n_bytes == 0:
            return b''

        parts = []
        total_read = 0

        while total_read < n_bytes:
            data = self._fileobj.read(n_bytes - total_read)
            if len(data) == 0:
                break

            parts.append(data)
            total_read += len(data)
            self._position += len(data)

        return b''.join(parts)

    def read_amount(self, n_bytes: int, meaning: Optional[str] = None) -> bytes:
        """
        Reads exactly `n_bytes` from the underlying stream.

        On a seekable stream, a request for more bytes than are left fails up front, without trying to read (and
        allocate) the whole amount. This matters for lengths coming from untrusted varints.

        Args:
            n_bytes: The amount of bytes to read.
            meaning: An indication as to the meaning of the data being read (e.g. "content hash"). It is used in the
                text of any exceptions that may be thrown.

        Returns:
            The data, as a `bytes` object `n_bytes` in length.

        Raises:
            BinaryReaderMissingDataError: If we are at the end of the stream and no bytes are left at all.
            BinaryReaderReadPastEndError: If some bytes are available, but fewer than `n_bytes`.
        """

        if n_bytes < 0:
            raise ValueError("The number of bytes to read cannot be negative")
        if n_bytes == 0:
            return b''

        original_pos = self._position

        if self.seekable():
            bytes_avail = self.bytes_remaining()
            if bytes_avail == 0:
                raise BinaryReaderMissingDataError(original_pos, n_bytes, meaning)
            if bytes_avail < n_bytes:
                raise BinaryReaderReadPastEndError(original_pos, n_bytes, bytes_avail, meaning)

        data = self.read_at_most(n_bytes)

        if len(data) == 0:
            raise BinaryReaderMissingDataError(original_pos, n_bytes, meaning)
        if len(data) < n_bytes:
            raise BinaryReaderReadPastEndError(original_pos, n_bytes, len(data), meaning)

        return data

    def expect_magic(self, magic: bytes, meaning: Optional[str] = None):
        """
        Verifies that a specific bytes sequence ("magic") follows in the underlying stream.

        Exactly ``len(magic)`` bytes are consumed, whether the check succeeds or not.

        Raises:
            BinaryReaderWrongMagicError: If the read sequence does not match the expected one.
            BinaryReaderMissingDataError: If we are at the end of the stream and no bytes are left at all.
            BinaryReaderReadPastEndError: If the data ends before the full length of the magic.
        """

        meaning = meaning or "magic"

        data = self.read_amount(len(magic), meaning)

        if data != magic:
            raise BinaryReaderWrongMagicError(self._position - len(magic), magic, data, meaning)

    def read_u8(self, meaning: Optional[str] = None) -> int:
        return self.read_amount(1, meaning or 'byte')[0]

    def read_i32(self, meaning: Optional[str] = None) -> int:
        """
        Reads a signed little-endian 32-bit int. No range validation is performed, negative values are returned as-is.
        """
        return int.from_bytes(self.read_amount(4, meaning or 'int32'), byteorder='little', signed=True)

    def read_7bit_encoded_int(self, meaning: Optional[str] = None) -> int:
        """
        Reads a base-128 varint: 7 bits of payload per byte, least significant group first, with the top bit of each
        byte signaling that another byte follows.

        For instance, ``E5 8E 26`` decodes to ``0x65 | (0x0E << 7) | (0x26 << 14) == 624485``.

        There is no limit on the number of groups. Raises `BinaryReaderMissingDataError` if the data ends before the
        terminating byte.
        """

        meaning = meaning or '7-bit encoded int'

        value = 0
        shift = 0

        while True:
            byte = self.read_u8(meaning)
            value |= (byte & 0x7F) << shift

            if not (byte & 0x80):
                return value

            shift += 7

    def read_7bit_length_prefixed_bytes(self, meaning: Optional[str] = None) -> bytes:
        """
        Reads a byte string preceded by its length, stored as a 7-bit encoded int (see `read_7bit_encoded_int`).
        """

        length = self.read_7bit_encoded_int(meaning=f"length of {meaning or 'string'}")

        return self.read_amount(length, meaning=meaning or 'string')

    def read_7bit_length_prefixed_str(self, meaning: Optional[str] = None) -> str:
        """
        Like `read_7bit_length_prefixed_bytes`, but decodes the result as UTF-8.

        Decoding is lossy: invalid sequences are replaced with U+FFFD instead of causing an error.
        """
        return self.read_7bit_length_prefixed_bytes(meaning).decode('utf-8', errors='replace')


def _parse_main_input_arg(input_: Union[bytes, BinaryIO]) -> BinaryIO:
    if isinstance(input_, (bytes, bytearray, memoryview)):
        return BytesIO(input_)

    if not isinstance(input_, IOBase):
        raise TypeError("Input to BinaryReader must be either bytes or a file object")
    if isinstance(input_, TextIOBase):
        raise TypeError("BinaryReader works on binary, not text file objects")

    return input_


class BinaryReaderFormatError(Exception):
    """
    This is used by the `BinaryReader` specifically to signal situations where the data does not match the expected
    format.
    """


class BinaryReaderTruncatedError(BinaryReaderFormatError):
    """
    Base for the errors signaling that the data ended before a complete field could be read.
    """

    position: int
    expected_length: int
    meaning: Optional[str]


class BinaryReaderReadPastEndError(BinaryReaderTruncatedError):
    actual_length: int

    def __init__(self, position: int, expected_length: int, actual_length: int, meaning: Optional[str]):
        self.position = position
        self.expected_length = expected_length
        self.actual_length = actual_length
        self.meaning = meaning

        super().__init__(
            f"At position {position}, expected {expected_length} "
            f"bytes{f' for {meaning}' if meaning is not None else ''}"
            f", but only {actual_length} were found"
        )


class BinaryReaderMissingDataError(BinaryReaderTruncatedError):
    def __init__(self, position: int, expected_length: int, meaning: Optional[str]):
        self.position = position
        self.expected_length = expected_length
        self.meaning = meaning

        super().__init__(
            f"At position {position}, expected {expected_length} "
            f"bytes{f' for {meaning}' if meaning is not None else ''}"
            f", but the data ends"
        )


class BinaryReaderWrongMagicError(BinaryReaderFormatError):
    position: int
    expected_magic: bytes
    found_magic: bytes
    meaning: Optional[str]

    def __init__(self, position: int, expected_magic: bytes, found_magic: bytes, meaning: Optional[str]):
        self.position = position
        self.expected_magic = expected_magic
        self.found_magic = found_magic
        self.meaning = meaning

        super().__init__(
            f"At position {position}, expected {meaning or 'magic'} 0x{expected_magic.hex()}, but found "
            f"0x{found_magic.hex()}"
        )
