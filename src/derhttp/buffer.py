"""Growable byte buffer with a read cursor, used both for composing the
outgoing request and for parsing the incoming response.
"""

from typing import Optional, Union

from .errors import LineTooLongError

__all__ = ("LineBuffer",)


CRLF = b"\r\n"


class LineBuffer:
    """Append-only byte buffer with an independent read cursor.

    Bytes are appended at the end of the buffer with `write()` and consumed
    from the cursor with `read()` or `read_line()`. Consumed bytes stay in the
    buffer until `compact()` or `reset()` is called so the state of the
    buffer can be inspected at any time.

    The read cursor never moves past the end of the written data.
    """

    _data: bytearray
    _cursor: int
    _find_start: int

    def __init__(self, data: bytes = b""):
        """Constructor.

        Parameters:
            data: the initial contents of the buffer
        """
        self._data = bytearray(data)
        self._cursor = 0
        self._find_start = 0

    def __bytes__(self) -> bytes:
        return bytes(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}({bytes(self._data)!r}, cursor={self.cursor})"
        )

    @property
    def cursor(self) -> int:
        """Position of the read cursor."""
        # The buffer may have been shortened via the raw bytearray
        if self._cursor > len(self._data):
            self._cursor = len(self._data)
        return self._cursor

    @property
    def pending(self) -> int:
        """Number of bytes written but not consumed yet."""
        return len(self._data) - self.cursor

    @property
    def raw(self) -> bytearray:
        """The underlying bytearray. Modifying it directly is allowed but the
        caller is responsible for keeping the buffer in a consistent state.
        """
        return self._data

    def compact(self) -> None:
        """Drops all the bytes before the read cursor from the buffer."""
        del self._data[: self.cursor]
        self._cursor = 0
        self._find_start = 0

    def getvalue(self) -> bytes:
        """Returns the entire contents of the buffer, including the bytes
        that were already consumed.
        """
        return bytes(self._data)

    def peek(self, size: Optional[int] = None) -> bytes:
        """Returns at most the given number of unconsumed bytes without moving
        the cursor.
        """
        start = self.cursor
        end = len(self._data) if size is None else min(start + size, len(self._data))
        return bytes(self._data[start:end])

    def read(self, size: Optional[int] = None) -> bytes:
        """Consumes and returns at most the given number of bytes from the
        cursor; all the unconsumed bytes if the size is omitted.
        """
        result = self.peek(size)
        self.skip(len(result))
        return result

    def read_line(self, max_length: int) -> Optional[bytes]:
        """Consumes a single line from the cursor.

        Lines may be terminated by CRLF or by a bare LF; the terminator is not
        included in the returned line. No bytes are consumed when the buffer
        does not contain a full line yet.

        Parameters:
            max_length: the maximum allowed length of the line, excluding its
                terminator

        Returns:
            the line without its terminator, or ``None`` if the buffer does
            not contain a complete line yet

        Raises:
            LineTooLongError: if the line (or the unterminated partial line in
                the buffer) is longer than the maximum length
        """
        start = self.cursor
        find_start = max(start, min(self._find_start, len(self._data)))
        newline_idx = self._data.find(b"\n", find_start)
        if newline_idx < 0:
            if len(self._data) - start > max_length:
                raise LineTooLongError(
                    f"Line longer than {max_length} bytes without a terminator"
                )
            # next time, start the search where this one left off
            self._find_start = len(self._data)
            return None

        end = newline_idx
        if end > start and self._data[end - 1] == 13:
            end -= 1
        if end - start > max_length:
            raise LineTooLongError(f"Line longer than {max_length} bytes")

        line = bytes(self._data[start:end])
        self._cursor = newline_idx + 1
        self._find_start = self._cursor
        return line

    def reset(self) -> None:
        """Clears the buffer and moves the cursor to the start."""
        self._data.clear()
        self._cursor = 0
        self._find_start = 0

    def skip(self, size: int) -> None:
        """Moves the read cursor forward by the given number of bytes."""
        if size < 0 or size > self.pending:
            raise ValueError(f"Cannot skip {size} bytes, {self.pending} available")
        self._cursor += size

    def write(self, data: Union[bytes, bytearray, memoryview]) -> int:
        """Appends the given bytes to the end of the buffer.

        Returns:
            the number of bytes written
        """
        self._data += data
        return len(data)

    def write_line(self, line: bytes = b"") -> None:
        """Appends the given line and a CRLF terminator to the buffer."""
        self._data += line
        self._data += CRLF
