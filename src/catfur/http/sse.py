"""
=============================================================================
SERVER-SENT EVENTS
=============================================================================

SSE is a text protocol layered on a streaming response. Each event is a
block of "field: value" lines closed by a blank line, and each block goes
out as one chunk of the chunked body:

    id: 7
    event: price
    data: {"symbol": "CAT", "price": 9.5}
    retry: 3000
    : this line is a comment
    <blank line>

Usage:

    @server.get("/ticker")
    def ticker(request):
        def produce(events: EventSender) -> None:
            for n in itertools.count():
                if events.id(str(n)).data(f"tick {n}").send() is SendResult.DISCONNECTED:
                    return
                time.sleep(1)
        return HTTPResponse.sse(produce)

A disconnected client is reported through SendResult rather than an
exception so that producer loops stay flat.
=============================================================================
"""

from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional

from .response import HTTPResponse, StreamBody
from .status_codes import HTTPStatus
from .stream import ChunkedWriter, PeerDisconnected


class SendResult(Enum):
    OK = "ok"
    DISCONNECTED = "disconnected"


def _field_lines(name: str, value: str) -> List[str]:
    # A newline inside a value would end the field early, so each line of a
    # multi-line value becomes its own field line
    return [f"{name}: {line}" for line in value.split("\n")]


@dataclass(frozen=True)
class SSEEvent:
    """A single event, for callers that prefer values over a builder."""

    data: str
    event: Optional[str] = None
    id: Optional[str] = None
    retry: Optional[int] = None

    def encode(self) -> str:
        lines: List[str] = []
        if self.id is not None:
            lines.extend(_field_lines("id", self.id))
        if self.event:
            lines.extend(_field_lines("event", self.event))
        lines.extend(_field_lines("data", self.data))
        if self.retry is not None:
            lines.append(f"retry: {int(self.retry)}")
        return "\n".join(lines) + "\n\n"


class EventSender:
    """
    Builds one event at a time and sends it as a single chunk.

    Builder calls append to the pending frame; send() writes it and starts a
    new one.
    """

    def __init__(self, writer: ChunkedWriter):
        self._writer = writer
        self._lines: List[str] = []
        self.events_sent = 0

    def id(self, event_id: str) -> "EventSender":
        self._lines.extend(_field_lines("id", str(event_id)))
        return self

    def event(self, name: str) -> "EventSender":
        self._lines.extend(_field_lines("event", name))
        return self

    def data(self, data: str) -> "EventSender":
        self._lines.extend(_field_lines("data", data))
        return self

    def retry(self, milliseconds: int) -> "EventSender":
        self._lines.append(f"retry: {int(milliseconds)}")
        return self

    def comment(self, text: str) -> "EventSender":
        self._lines.extend(_field_lines("", text))
        return self

    def ping(self) -> "EventSender":
        return self.event("ping").data("heartbeat")

    def frame(self) -> str:
        """The pending event as it would go on the wire."""
        return "".join(f"{line}\n" for line in self._lines) + "\n"

    def send(self, event: Optional[SSEEvent] = None) -> SendResult:
        """
        Send the pending frame (or ``event``, if given) as one chunk.

        Other write errors propagate.
        """
        payload = event.encode() if event is not None else self.frame()
        self._lines.clear()
        try:
            self._writer.write(payload)
        except PeerDisconnected:
            return SendResult.DISCONNECTED
        self.events_sent += 1
        return SendResult.OK


EventProducer = Callable[[EventSender], None]


def event_stream(producer: EventProducer) -> HTTPResponse:
    """Build a ``text/event-stream`` response driven by ``producer``."""

    def run(writer: ChunkedWriter) -> None:
        producer(EventSender(writer))

    response = HTTPResponse(status=HTTPStatus.OK, body=StreamBody(run))
    response.set_header("Content-Type", "text/event-stream")
    response.set_header("Cache-Control", "no-cache")
    response.set_header("Transfer-Encoding", "chunked")
    return response
