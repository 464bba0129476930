"""Utilities for testing."""

import asyncio
import copy
import functools
import select
import socketserver
import struct
import threading

from .packet import Packet


class UnexpectedRCONMessage(Exception):
    """Raised when an RCON request wasn't expected."""


def split_packets(buffer_):
    """Split a buffer into discrete RCON packets.

    Trailing bytes which don't yet form a whole packet are left over.

    :returns: a tuple containing a list of the decoded :class:`Packet`s
        and the remainder of the buffer.
    """
    packets = []
    while len(buffer_) >= 4:
        size = struct.unpack_from("<i", buffer_)[0]
        if len(buffer_) < 4 + size:
            break
        packets.append(Packet.decode(buffer_[:4 + size]))
        buffer_ = buffer_[4 + size:]
    return packets, buffer_


def _encode(packet_or_bytes):
    if isinstance(packet_or_bytes, Packet):
        return packet_or_bytes.encode(None)
    return bytes(packet_or_bytes)


class ExpectedRCONMessage(Packet):
    """Request expected by :class:`TestRCONServer`.

    This class should not be instantiated directly. Instead use the
    :meth:`TestRCONServer.expect` factory to create them.

    Instances of this class can be configured to respond to the request
    using :meth:`respond`, :meth:`respond_raw`, etc..
    """

    def __init__(self, id_, type_, body):
        Packet.__init__(self, id_, type_, body)
        self.responses = []

    def respond(self, id_, type_, body=b""):
        """Respond to the request with a packet.

        The parameters for this method are the same as those given to
        the initialiser of :class:`sourcon.packet.Packet`. The created
        packet will be encoded and sent to the client.
        """
        self.respond_raw(Packet(id_, type_, body).encode(None))
        return self

    def respond_raw(self, bytes_):
        """Respond to the request by sending arbitrary bytes."""
        response = functools.partial(
            _TestRCONHandler.send_bytes, bytes_=bytes(bytes_))
        self.responses.append(response)
        return self

    def respond_close(self):
        """Respond by closing the connection."""
        self.responses.append(_TestRCONHandler.close)
        return self


class _TestRCONHandler(socketserver.BaseRequestHandler):
    """Request handler for :class:`TestRCONServer`."""

    def _handle_request(self, message):
        """Handle individual RCON requests.

        Given a RCON request this will check that it matches the next
        expected request by comparing the request's ID, type and body
        attributes. If they all match, then each of the responses
        configured for the request is called.

        :param sourcon.packet.Packet message: the request to handle.

        :raises UnexpectedRCONMessage: if given message does not match
            the expected request.
        """
        if not self._expectations:
            raise UnexpectedRCONMessage(
                "Unexpected message {!r}".format(message))
        expected = self._expectations.pop(0)
        for attribute in ['id', 'type', 'body']:
            a_message = getattr(message, attribute)
            a_expected = getattr(expected, attribute)
            if a_message != a_expected:
                raise UnexpectedRCONMessage(
                    "Expected {} == {!r}, got {!r}".format(
                        attribute, a_expected, a_message))
        for response in expected.responses:
            response(self)

    def send_bytes(self, bytes_):
        self.request.sendall(bytes_)

    def close(self):
        self.request.close()
        self._closed = True

    def setup(self):
        self._buffer = b""
        self._closed = False
        self._expectations = self.server.expectations()

    def handle(self):
        """Handle incoming requests.

        This will continually read incoming requests from the connected
        socket assigned to this handler. If the connected client closes
        the connection, or the server is stopping, this method will exit.
        """
        while not self._closed and not self.server.stopping.is_set():
            ready, _, _ = select.select([self.request], [], [], 0.05)
            if ready:
                received = self.request.recv(4096)
                if not received:
                    return
                messages, self._buffer = \
                    split_packets(self._buffer + received)
                try:
                    for message in messages:
                        self._handle_request(message)
                        if self._closed:
                            return
                except UnexpectedRCONMessage as exc:
                    self.server.errors.append(exc)
                    return


class TestRCONServer(socketserver.TCPServer):
    """Stub RCON server for testing.

    This class provides a simple RCON server which can be configured to
    respond to requests in certain ways. The idea is that this can be used
    in testing to fake the responses from a real RCON server.

    Specifically, each instance of this server can be configured to
    :meth:`expect` requests in a certain order. For each expected request
    there can be any number of responses for it. Each connection to the
    server will expect the exact same requests.

    All expected requests should be configured *before* connecting the
    client to the server. Requests that don't match are recorded in
    :attr:`errors` and the connection is dropped.

    :param address: the address the server should bind to. By default it
        will use a random port on the loopback interface. In such cases the
        actual address in use can be retrieved via the :attr:`server_address`
        attribute.
    """

    allow_reuse_address = True

    def __init__(self, address=("127.0.0.1", 0)):
        socketserver.TCPServer.__init__(self, address, _TestRCONHandler)
        self._expectations = []
        self.errors = []
        self.stopping = threading.Event()

    def expect(self, id_, type_, body):
        """Expect a RCON request.

        The parameters for this method are the same as those passed to the
        initialiser of :class:`ExpectedRCONMessage`.

        :returns: the corresponding :class:`ExpectedRCONMessage`.
        """
        self._expectations.append(ExpectedRCONMessage(id_, type_, body))
        return self._expectations[-1]

    def expectations(self):
        """Get a copy of all the expectations.

        :returns: a deep copy of all the :class:`ExpectedRCONMessage`
            configured for the server.
        """
        return copy.deepcopy(self._expectations)

    def stop(self):
        """Stop serving and release the socket."""
        self.stopping.set()
        self.shutdown()
        self.server_close()


class MemoryWriter:
    """Stand-in for :class:`asyncio.StreamWriter` which records writes."""

    def __init__(self):
        self.buffer = b""
        self.closed = False

    def write(self, data):
        self.buffer += data

    async def drain(self):
        if self.closed:
            raise ConnectionResetError("Connection lost")

    def is_closing(self):
        return self.closed

    def close(self):
        self.closed = True

    async def wait_closed(self):
        pass


class MemoryStream:
    """In-memory stream pair preloaded with what a server would send.

    Responses may be :class:`Packet`s or raw bytestrings; they're queued
    on the reader in the order given. Unless ``eof`` is false the reader
    then reports the connection as closed.

    Must be created whilst an event loop is running, as the reader is an
    :class:`asyncio.StreamReader`.
    """

    def __init__(self, *responses, eof=True):
        self.reader = asyncio.StreamReader()
        self.writer = MemoryWriter()
        for response in responses:
            self.reader.feed_data(_encode(response))
        if eof:
            self.reader.feed_eof()

    @property
    def sent(self):
        """All packets written by the client so far."""
        return split_packets(self.writer.buffer)[0]
