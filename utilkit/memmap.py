"""Memory-mapped files with file-like access.

A Map wraps a memory mapping of a file (or anonymous memory) and offers
read, write and seek operations guarded by a lock, plus direct access to the
mapped bytes. MapString adds line-oriented text access. Unix only.
"""

from __future__ import annotations

import io
import mmap as _mmap
import os
import threading
from typing import IO, Any, Optional, Union

# Values for the prot argument; combine them with "|".
READ = _mmap.PROT_READ
WRITE = _mmap.PROT_WRITE
EXEC = _mmap.PROT_EXEC

# Values for the flags argument. SHARED and PRIVATE cannot be used together.
SHARED = _mmap.MAP_SHARED
PRIVATE = _mmap.MAP_PRIVATE

FileLike = Union[IO[Any], int]


class _ShortRead(EOFError):
    """Fewer bytes were available than requested; .data holds what was read."""

    def __init__(self, msg: str, data: bytes) -> None:
        super().__init__(msg)
        self.data = data


class Map:
    """A memory-mapped file that can be read, written and seeked.

    f is an open file object or file descriptor; it is ignored when anon is
    true. prot is a combination of READ, WRITE and EXEC; flags is SHARED or
    PRIVATE. length is the number of bytes to map (the whole file by
    default, required with anon); offset is where the mapping starts and
    must be a multiple of the allocation granularity.
    """

    def __init__(
        self,
        f: Optional[FileLike] = None,
        *,
        prot: Optional[int] = None,
        flags: Optional[int] = None,
        anon: bool = False,
        length: Optional[int] = None,
        offset: int = 0,
    ) -> None:
        if prot is None or flags is None:
            raise ValueError("must pass options to set the flag or prot values")
        if f is None and not anon:
            raise ValueError(f"f arg cannot be None, anon was {anon}")

        self._prot = prot
        self._flags = flags
        self._writable = bool(prot & WRITE)
        self._lock = threading.RLock()
        self._ptr = 0

        try:
            if anon:
                if length is None or length <= 0:
                    raise ValueError("must set length if using anon")
                self._len = length
                self._data = _mmap.mmap(
                    -1, length, flags=flags | _mmap.MAP_ANONYMOUS, prot=prot
                )
            else:
                assert f is not None
                if isinstance(f, int):
                    fd = f
                else:
                    if hasattr(f, "flush"):
                        f.flush()
                    fd = f.fileno()
                size = os.fstat(fd).st_size
                if size == 0:
                    raise ValueError("cannot mmap 0 length file")
                self._len = size if length is None else length
                self._data = _mmap.mmap(
                    fd, self._len, flags=flags, prot=prot, offset=offset
                )
        except OSError as err:
            raise OSError(f"problem with mmap system call: {err}") from err

    def bytes(self) -> _mmap.mmap:
        """The mapped memory itself; changing it changes the mapping for all users."""
        with self._lock:
            return self._data

    def __len__(self) -> int:
        return self._len

    def pos(self) -> int:
        """The current position of the file pointer."""
        with self._lock:
            return self._ptr

    def read(self, n: int = -1) -> bytes:
        """Read up to n bytes (all remaining if n < 0); b"" at the end."""
        with self._lock:
            if self._ptr >= self._len:
                return b""
            end = self._len if n < 0 else min(self._len, self._ptr + n)
            out = self._data[self._ptr:end]
            self._ptr = end
            return out

    def read_at(self, n: int, off: int) -> bytes:
        """Read n bytes at offset off without moving the file pointer.

        Raises ValueError if off is outside the mapping and EOFError, with
        the bytes that were available in its data attribute, if fewer than n
        bytes remain after off.
        """
        with self._lock:
            if off < 0:
                raise ValueError("offset cannot be negative")
            if off >= self._len:
                raise ValueError("offset is larger than the mmap data")
            out = self._data[off:min(self._len, off + n)]
            if len(out) < n:
                raise _ShortRead("n was greater than the data after off", out)
            return out

    def write(self, data: bytes) -> int:
        """Write data at the current position and advance past it.

        Nothing is written if data would run past the end of the mapping.
        """
        with self._lock:
            if not self._writable:
                raise io.UnsupportedOperation("cannot write to non-writeable mmap")
            if len(data) > self._len - self._ptr:
                raise ValueError("attempting to write past the end of the mmap'd file")
            end = self._ptr + len(data)
            self._data[self._ptr:end] = data
            self._ptr = end
            return len(data)

    def seek(self, offset: int, whence: int = 0) -> int:
        """Move the file pointer and return its new position.

        whence 0 sets it to offset, 1 moves it forward by offset and 2 moves
        it back by offset. offset may not be negative.
        """
        if offset < 0:
            raise ValueError("cannot seek to a negative offset")
        with self._lock:
            if whence == 0:
                if offset < self._len:
                    self._ptr = offset
                    return self._ptr
                raise ValueError("offset goes beyond the data size")
            if whence == 1:
                if self._ptr + offset < self._len:
                    self._ptr += offset
                    return self._ptr
                raise ValueError("offset goes beyond the data size")
            if whence == 2:
                if self._ptr - offset > -1:
                    self._ptr -= offset
                    return self._ptr
                raise ValueError("offset would set the offset as a negative number")
            raise ValueError("whence arg was not set to a valid value")

    def close(self) -> None:
        """Unmap the memory."""
        with self._lock:
            if self._data.closed:
                return
            if self._writable and self._flags & SHARED:
                self._data.flush()
            self._data.close()

    def __enter__(self) -> "Map":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()


class MapString(Map):
    """A Map over UTF-8 text with line-oriented helpers."""

    def read_line(self) -> str:
        """Return the next line without its "\\n" or "\\r\\n" marker.

        The last line is returned even without a newline; EOFError is raised
        once the end of the mapping has been reached.
        """
        with self._lock:
            if self._ptr >= self._len:
                raise EOFError("end of mapped data")
            nl = self._data.find(b"\n", self._ptr, self._len)
            if nl == -1:
                line = self._data[self._ptr:self._len]
                self._ptr = self._len
            else:
                line = self._data[self._ptr:nl]
                self._ptr = nl + 1
            if line.endswith(b"\r"):
                line = line[:-1]
            return line.decode("utf-8")

    def write_string(self, s: str) -> int:
        """Write s as UTF-8 at the current position; return the byte count.

        Nothing is written if the text would run past the end of the mapping.
        """
        data = s.encode("utf-8")
        with self._lock:
            if len(data) + self._ptr > self._len:
                raise ValueError("string is longer than the remaining buffer")
            return self.write(data)

    def __str__(self) -> str:
        with self._lock:
            return self._data[:].decode("utf-8", errors="replace")