"""
=============================================================================
CHUNKED STREAM WRITER
=============================================================================

Streaming responses hand the socket's write side to a producer function.
The producer never sees the socket itself, only a ChunkedWriter that frames
every write with chunked transfer coding (RFC 7230 §4.1):

    write(b"hello")        →  5\r\nhello\r\n
    write(b"hello world!") →  c\r\nhello world!\r\n
    close()                →  0\r\n\r\n          ← terminator, sent once

    ┌──────────────┐  headers   ┌────────┐   chunks    ┌──────────────┐
    │ write_to()   │──────────► │ socket │ ◄────────── │ producer(w)  │
    └──────┬───────┘            └────────┘             └──────▲───────┘
           │          ChunkedWriter(w) owns writes            │
           └──────────────────────────────────────────────────┘
                     ownership returns on exit / error

=============================================================================
DISCONNECTS
=============================================================================

A client that goes away shows up as BrokenPipeError, ConnectionResetError
or ConnectionAbortedError on the next write. A write that exceeds the
socket timeout means the client stopped reading. All of these are raised
as PeerDisconnected, which the response writer treats as the normal end of
a stream rather than a server fault.
=============================================================================
"""

import logging
import socket
from typing import Protocol, Union


logger = logging.getLogger(__name__)

TERMINATOR = b"0\r\n\r\n"


class PeerDisconnected(ConnectionError):
    """The client closed the connection while we were writing to it."""


class Sink(Protocol):
    """Anything with ``sendall``: a socket, or a fake one in tests."""

    def sendall(self, data: bytes) -> None: ...


def is_disconnect(error: BaseException) -> bool:
    """True for the error classes that mean "the peer is gone"."""
    return isinstance(error, (
        PeerDisconnected,
        BrokenPipeError,
        ConnectionResetError,
        ConnectionAbortedError,
        socket.timeout,
    ))


def send_all(sink: Sink, data: bytes) -> None:
    """
    ``sink.sendall`` with disconnect errors translated to PeerDisconnected.

    Any other OSError propagates unchanged.
    """
    try:
        sink.sendall(data)
    except OSError as e:
        if is_disconnect(e):
            raise PeerDisconnected(str(e) or type(e).__name__) from e
        raise


def encode_chunk(data: bytes) -> bytes:
    """Frame one chunk: hex length, CRLF, data, CRLF."""
    return b"%x\r\n%s\r\n" % (len(data), data)


class ChunkedWriter:
    """
    Exclusive writer for a chunked response body.

    Given to stream producers:

        def producer(writer: ChunkedWriter) -> None:
            for i in range(3):
                writer.write(f"tick {i}\\n")
                time.sleep(1)

        return HTTPResponse.stream(producer)

    Attributes:
        chunks_sent: number of non-empty chunks written
        bytes_sent:  payload bytes written (framing excluded)
    """

    def __init__(self, sink: Sink, encoding: str = "utf-8"):
        self._sink = sink
        self._encoding = encoding
        self._closed = False
        self.chunks_sent = 0
        self.bytes_sent = 0

    @property
    def closed(self) -> bool:
        return self._closed

    def write(self, data: Union[str, bytes]) -> None:
        """
        Send ``data`` as one chunk.

        Empty data is skipped: a zero-length chunk is the terminator and
        must only be produced by close().

        Raises:
            PeerDisconnected: the client went away.
            RuntimeError: the stream was already closed.
        """
        if self._closed:
            raise RuntimeError("Cannot write to a closed chunked stream")
        if isinstance(data, str):
            data = data.encode(self._encoding)
        if not data:
            return
        send_all(self._sink, encode_chunk(data))
        self.chunks_sent += 1
        self.bytes_sent += len(data)

    # Alias matching the "send" wording used by SSE producers
    send = write

    def close(self) -> None:
        """Send the terminating zero-length chunk. Safe to call twice."""
        if self._closed:
            return
        self._closed = True
        send_all(self._sink, TERMINATOR)
        logger.debug(
            f"Stream finished: {self.chunks_sent} chunks, {self.bytes_sent} bytes"
        )
