from os import fsdecode
from typing import Optional, AnyStr


class ObbyFileError(Exception):
    """
    Base class for all errors raised when reading an OBBY archive or its entries.
    """


class InvalidObbyHeaderError(ObbyFileError):
    """
    Raised when the header or entry table of the archive is structurally invalid (e.g. negative entry counts or
    lengths).
    """

    file_name: Optional[str]
    reason: str

    def __init__(self, file_name: Optional[AnyStr], reason: str):
        self.file_name = _decode_name(file_name)
        self.reason = reason

        super().__init__(f"OBBY file{_quote_name(self.file_name)} has an invalid header: {reason}")


class NotAnObbyFileError(InvalidObbyHeaderError):
    found_magic: bytes

    def __init__(self, file_name: Optional[AnyStr], found_magic: bytes):
        self.found_magic = found_magic

        super().__init__(file_name, f"wrong magic 0x{found_magic.hex()}, this is not an OBBY file")


class ObbyFileTruncatedError(ObbyFileError):
    """
    Raised when the data ends in the middle of a field. The `__cause__` contains the exact position and field.
    """

    file_name: Optional[str]

    def __init__(self, file_name: Optional[AnyStr]):
        self.file_name = _decode_name(file_name)

        super().__init__(f"OBBY file{_quote_name(self.file_name)} is truncated")


class ObbyEntryNotFoundError(ObbyFileError):
    entry_name: str

    def __init__(self, entry_name: str):
        self.entry_name = entry_name

        super().__init__(f"Entry '{entry_name}' not found in archive")


class ObbyEntryCorruptError(ObbyFileError):
    """
    Raised when the compressed data for an entry cannot be decompressed.
    """

    entry_name: str

    def __init__(self, entry_name: str):
        self.entry_name = entry_name

        super().__init__(f"Compressed data for entry '{entry_name}' is corrupt")


class ObbyEntryEncodingError(ObbyFileError):
    """
    Raised when an entry that was requested as text is not valid UTF-8.
    """

    entry_name: str

    def __init__(self, entry_name: str):
        self.entry_name = entry_name

        super().__init__(f"Entry '{entry_name}' is not valid UTF-8 text")


def _decode_name(file_name: Optional[AnyStr]) -> Optional[str]:
    return fsdecode(file_name) if file_name is not None else None


def _quote_name(file_name: Optional[str]) -> str:
    return f" '{file_name}'" if file_name is not None else ''
