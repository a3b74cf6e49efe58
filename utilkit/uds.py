"""Unix domain socket server and client.

The server creates the socket file, sets its owner and mode, and hands out
connections together with the credentials of the connecting process. Reads
and writes block until they complete unless a deadline is set for the next
call with read_timeout()/read_deadline()/write_timeout()/write_deadline().
Unix only.
"""

from __future__ import annotations

import contextlib
import itertools
import logging
import os
import pwd
import queue
import select
import selectors
import socket
import struct
import sys
import threading
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, Iterator, Optional, Tuple, Union

import psutil

_log = logging.getLogger(__name__)

# Socket path limit; Linux allows 108 characters and macOS 104.
MAX_PATH_LEN = 104

_READ_BUFFER = 1024

# Peer-pid socket option on macOS.
_SOL_LOCAL = 0
_LOCAL_PEERPID = 2

Deadline = Union[datetime, float, None]


@dataclass(frozen=True)
class Cred:
    """Credentials of a local process."""

    pid: int
    uid: int
    gid: int


def current() -> Tuple[Cred, pwd.struct_passwd]:
    """Return the credentials and password entry of the current process."""
    user = pwd.getpwuid(os.getuid())
    return Cred(pid=os.getpid(), uid=user.pw_uid, gid=user.pw_gid), user


def read_creds(sock: socket.socket) -> Cred:
    """Return the credentials of the process at the other end of sock."""
    if sys.platform.startswith("linux"):
        so_peercred = getattr(socket, "SO_PEERCRED", 17)
        size = struct.calcsize("3i")
        try:
            raw = sock.getsockopt(socket.SOL_SOCKET, so_peercred, size)
        except OSError as err:
            raise OSError(f"getsockopt(SO_PEERCRED) error: {err}") from err
        pid, uid, gid = struct.unpack("3i", raw)
        return Cred(pid=pid, uid=uid, gid=gid)

    if sys.platform == "darwin":
        try:
            pid = sock.getsockopt(_SOL_LOCAL, _LOCAL_PEERPID)
        except OSError as err:
            raise OSError(f"getsockopt(LOCAL_PEERPID) error: {err}") from err
        try:
            uid = psutil.Process(pid).uids()[0]
        except psutil.Error as err:
            raise OSError(
                f"could not find UIDs associated with client's PID({pid}): {err}"
            ) from err
        try:
            gid = pwd.getpwuid(uid).pw_gid
        except KeyError as err:
            raise OSError(
                f"could not lookup UID({uid}) for client PID({pid}): {err}"
            ) from err
        return Cred(pid=pid, uid=uid, gid=gid)

    raise OSError(f"peer credentials are not supported on {sys.platform}")


def _as_deadline(t: Deadline) -> Optional[float]:
    if t is None:
        return None
    if isinstance(t, datetime):
        return t.timestamp()
    return float(t)


def _wait_ready(sock: socket.socket, deadline: Optional[float], write: bool) -> None:
    if deadline is None:
        return
    remaining = deadline - time.time()
    if remaining <= 0:
        raise TimeoutError("i/o deadline exceeded")
    rlist = [] if write else [sock]
    wlist = [sock] if write else []
    readable, writable, _ = select.select(rlist, wlist, [], remaining)
    if not (readable or writable):
        raise TimeoutError("i/o deadline exceeded")


def _is_closed(sock: socket.socket) -> bool:
    """Report whether the peer has closed the connection, without consuming data."""
    try:
        data = sock.recv(1, socket.MSG_PEEK | socket.MSG_DONTWAIT)
    except (BlockingIOError, InterruptedError):
        return False
    except OSError:
        return False
    return data == b""


def _first_byte(data: bytes) -> int:
    if not data:
        raise EOFError("connection closed")
    return data[0]


class _Channel:
    """Socket state shared by server-side and client connections: deadlines and writes."""

    def __init__(self, sock: socket.socket) -> None:
        self.sock = sock
        self.read_deadline: Optional[float] = None
        self.write_deadline: Optional[float] = None
        self.write_only = False
        self._write_lock = threading.Lock()

    def check_readable(self) -> None:
        if self.write_only:
            raise RuntimeError("called read() on a write-only connection")

    def take_read_deadline(self) -> Optional[float]:
        deadline, self.read_deadline = self.read_deadline, None
        return deadline

    def write(self, data: bytes) -> int:
        if self.write_only and _is_closed(self.sock):
            raise EOFError("connection closed")
        deadline, self.write_deadline = self.write_deadline, None
        with self._write_lock:
            if deadline is None:
                self.sock.sendall(data)
                return len(data)
            view = memoryview(data)
            sent = 0
            while sent < len(view):
                _wait_ready(self.sock, deadline, write=True)
                sent += self.sock.send(view[sent:])
            return sent


class Conn:
    """A connection accepted by a Server, with the peer's credentials in .cred."""

    def __init__(self, sock: socket.socket, cred: Cred, conn_id: int, server: "Server") -> None:
        self.cred = cred
        self._ch = _Channel(sock)
        self._id = conn_id
        self._server = server
        self._buf = bytearray()
        self._read_lock = threading.Lock()

    def close(self) -> None:
        """Close the connection and forget it in the server."""
        try:
            self._ch.sock.close()
        finally:
            self._server._forget(self._id)

    def write_only(self) -> None:
        """Mark this connection as used only for writing.

        Every write then checks whether the peer has gone away first, as
        writes are not guaranteed to fail on a closed Unix socket. Reading
        afterwards raises RuntimeError.
        """
        self._ch.write_only = True

    def unix_conn(self) -> socket.socket:
        """The underlying socket. Use this object's deadline methods, not its timeout."""
        return self._ch.sock

    def read(self, n: int) -> bytes:
        """Read up to n bytes; b"" means the peer closed the connection."""
        self._ch.check_readable()
        deadline = self._ch.take_read_deadline()
        with self._read_lock:
            if not self._buf:
                _wait_ready(self._ch.sock, deadline, write=False)
                data = self._ch.sock.recv(max(n, _READ_BUFFER))
                if not data:
                    return b""
                self._buf.extend(data)
            out = bytes(self._buf[:n])
            del self._buf[:n]
            return out

    def read_byte(self) -> int:
        """Read a single byte, raising EOFError if the connection is closed."""
        return _first_byte(self.read(1))

    def read_timeout(self, timeout: float) -> None:
        """Make the next read time out after timeout seconds."""
        self._ch.read_deadline = time.time() + timeout

    def read_deadline(self, t: Deadline) -> None:
        """Make the next read time out at t (a datetime or epoch seconds)."""
        self._ch.read_deadline = _as_deadline(t)

    def write_timeout(self, timeout: float) -> None:
        """Make the next write time out after timeout seconds."""
        self._ch.write_deadline = time.time() + timeout

    def write_deadline(self, t: Deadline) -> None:
        """Make the next write time out at t (a datetime or epoch seconds)."""
        self._ch.write_deadline = _as_deadline(t)

    def write(self, data: bytes) -> int:
        """Write all of data and return its length.

        Raises EOFError if the connection is write-only and the peer has
        closed it, and TimeoutError if a write deadline passes.
        """
        return self._ch.write(data)

    def __enter__(self) -> "Conn":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()


class Server:
    """A Unix domain socket server listening on socket_addr.

    Any existing file at socket_addr is removed. The socket file gets the
    given owner and mode (0o770 is a good choice).
    """

    def __init__(self, socket_addr: str, uid: int, gid: int, file_mode: int = 0o770) -> None:
        if len(socket_addr) >= MAX_PATH_LEN:
            raise ValueError(
                f"socket_addr({socket_addr}) path length must be {MAX_PATH_LEN} characters or less"
            )
        with contextlib.suppress(OSError):
            os.remove(socket_addr)

        listener = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        try:
            listener.bind(socket_addr)
            listener.listen()
        except OSError as err:
            listener.close()
            raise OSError(f"unable to create server socket({socket_addr}): {err}") from err

        try:
            os.chmod(socket_addr, file_mode)
        except OSError as err:
            listener.close()
            raise OSError(
                f"unable to create server socket({socket_addr}), could not chmod the socket file: {err}"
            ) from err
        try:
            os.chown(socket_addr, uid, gid)
        except OSError as err:
            listener.close()
            raise OSError(
                f"unable to create server socket({socket_addr}), could not chown the socket file: {err}"
            ) from err

        self.socket_addr = socket_addr
        self._listener = listener
        self._conn_q: "queue.Queue[Optional[Conn]]" = queue.Queue()
        self._open: Dict[int, Conn] = {}
        self._open_lock = threading.Lock()
        self._ids = itertools.count(1)
        self._error: Optional[BaseException] = None
        self._done = threading.Event()
        self._closing = threading.Event()
        self._close_lock = threading.Lock()
        self._wake_r, self._wake_w = socket.socketpair()
        self._thread = threading.Thread(target=self._accept_loop, daemon=True)
        self._thread.start()

    def conns(self) -> Iterator[Conn]:
        """Yield connections as clients arrive until the server stops serving."""
        while True:
            conn = self._conn_q.get()
            if conn is None:
                self._conn_q.put(None)
                return
            yield conn

    def close(self) -> None:
        """Stop listening, close every open connection and remove the socket file."""
        with self._close_lock:
            if self._closing.is_set():
                return
            self._closing.set()
        with contextlib.suppress(OSError):
            self._wake_w.send(b"x")
        self._thread.join()
        try:
            self._listener.close()
        finally:
            self._wake_r.close()
            self._wake_w.close()
            with contextlib.suppress(OSError):
                os.remove(self.socket_addr)
            with self._open_lock:
                open_conns = list(self._open.values())
            for conn in open_conns:
                with contextlib.suppress(OSError):
                    conn.close()

    def closed(self) -> Optional[BaseException]:
        """Block until the server stops serving; return the error that stopped it, if any."""
        self._done.wait()
        return self._error

    def _forget(self, conn_id: int) -> None:
        with self._open_lock:
            self._open.pop(conn_id, None)

    def _accept_loop(self) -> None:
        error: Optional[BaseException] = None
        try:
            with selectors.DefaultSelector() as sel:
                sel.register(self._listener, selectors.EVENT_READ)
                sel.register(self._wake_r, selectors.EVENT_READ)
                while True:
                    sel.select()
                    if self._closing.is_set():
                        return
                    try:
                        sock, _ = self._listener.accept()
                    except (BlockingIOError, InterruptedError):
                        continue
                    except OSError as err:
                        if not self._closing.is_set():
                            error = err
                        return
                    sock.setblocking(True)
                    try:
                        cred = read_creds(sock)
                    except OSError as err:
                        _log.warning("unable to read creds from socket client, rejecting conn: %s", err)
                        sock.close()
                        continue
                    conn_id = next(self._ids)
                    conn = Conn(sock, cred, conn_id, self)
                    with self._open_lock:
                        self._open[conn_id] = conn
                    self._conn_q.put(conn)
        finally:
            with contextlib.suppress(OSError):
                self._listener.close()
            self._error = error
            self._conn_q.put(None)
            self._done.set()

    def __enter__(self) -> "Server":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()


class Client:
    """A client connection to the Unix domain socket at socket_addr.

    uid, gid and file_modes describe the expected owner and modes of the
    socket file; they are accepted but not enforced.
    """

    def __init__(
        self,
        socket_addr: str,
        uid: int,
        gid: int,
        file_modes: Iterable[int] = (0o770, 0o1770),
    ) -> None:
        try:
            os.stat(socket_addr)
        except OSError as err:
            raise OSError(f"could not stat socket address({socket_addr}): {err}") from err

        sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        try:
            sock.connect(socket_addr)
        except OSError as err:
            sock.close()
            raise OSError(f"unable to dial socket({socket_addr}): {err}") from err
        self._ch = _Channel(sock)
        self.uid = uid
        self.gid = gid
        self.file_modes = tuple(file_modes)

    def write_only(self) -> None:
        """Mark this client as used only for writing.

        Every write then checks whether the server has gone away first, as
        writes are not guaranteed to fail on a closed Unix socket. Reading
        afterwards raises RuntimeError.
        """
        self._ch.write_only = True

    def unix_conn(self) -> socket.socket:
        """The underlying socket. Use this object's deadline methods, not its timeout."""
        return self._ch.sock

    def read(self, n: int) -> bytes:
        """Read up to n bytes; b"" means the server closed the connection."""
        self._ch.check_readable()
        deadline = self._ch.take_read_deadline()
        _wait_ready(self._ch.sock, deadline, write=False)
        return self._ch.sock.recv(n)

    def read_byte(self) -> int:
        """Read a single byte, raising EOFError if the connection is closed."""
        return _first_byte(self.read(1))

    def read_timeout(self, timeout: float) -> None:
        """Make the next read time out after timeout seconds."""
        self._ch.read_deadline = time.time() + timeout

    def read_deadline(self, t: Deadline) -> None:
        """Make the next read time out at t (a datetime or epoch seconds)."""
        self._ch.read_deadline = _as_deadline(t)

    def write_timeout(self, timeout: float) -> None:
        """Make the next write time out after timeout seconds."""
        self._ch.write_deadline = time.time() + timeout

    def write_deadline(self, t: Deadline) -> None:
        """Make the next write time out at t (a datetime or epoch seconds)."""
        self._ch.write_deadline = _as_deadline(t)

    def write(self, data: bytes) -> int:
        """Write all of data and return its length.

        Raises EOFError if the client is write-only and the server has
        closed the connection, and TimeoutError if a write deadline passes.
        """
        return self._ch.write(data)

    def close(self) -> None:
        """Close the connection to the server."""
        self._ch.sock.close()

    def __enter__(self) -> "Client":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()