# -*- coding: utf-8 -*-
# Copyright (C) 2013-2017 Oliver Ainsworth

"""Authenticated RCON sessions over a single stream."""

import asyncio
import enum
import functools
import logging

from .errors import (AuthenticationError, DecodingError,
                     NotAuthenticatedError, ProtocolError, ProtocolViolation,
                     RCONError)
from .frame import read_packet, write_packet
from .packet import DEFAULT_MAX_PACKET_SIZE, INT32_MAX, Packet


log = logging.getLogger(__name__)
AUTH_FAILED_ID = -1
DEFAULT_AUTH_SKIP_LIMIT = 8


class SessionState(enum.Enum):
    """Lifecycle of a :class:`Session`.

    ``FAILED`` and ``CLOSED`` are terminal. A session ends up ``CLOSED``
    when its stream is closed, either explicitly or because an exchange
    was broken off part way through and the connection can no longer be
    trusted to be in step with the server.
    """

    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"
    FAILED = "failed"
    CLOSED = "closed"


class Response:
    """Response to a command, glued together from one or more packets.

    :ivar int id: the request id the response belongs to.
    :ivar bytes raw: the complete response body.
    """

    def __init__(self, id_, raw, encoding=Packet.ENCODING):
        self.id = id_
        self.raw = raw
        self.encoding = encoding

    def __repr__(self):
        return "<{0.__class__.__name__} {0.id} {1}B>".format(
            self, len(self.raw))

    def __str__(self):
        return self.body

    @property
    def body(self):
        """Get the response body as Unicode.

        The body is only decoded once every packet has been joined, so
        multi-byte characters split between packets come out intact.

        :raises DecodingError: if the body can't be decoded.
        """
        try:
            return self.raw.decode(self.encoding)
        except UnicodeDecodeError as exc:
            raise DecodingError("Couldn't decode response: {}".format(exc))


class PendingRequest:
    """Accumulates the packets making up the response to one command.

    Source servers may split a response over several ``RESPONSE_VALUE``
    packets without saying how many to expect. To find the end, an empty
    command (the *sentinel*) is sent straight after the real one. Servers
    answer requests in order so once the sentinel's response turns up
    every part of the real response has been received.

    https://developer.valvesoftware.com/wiki/Source_RCON_Protocol#Multiple-packet_Responses

    If there's no sentinel then the first matching packet is taken to be
    the whole response.
    """

    def __init__(self, request_id, sentinel_id=None):
        self.request_id = request_id
        self.sentinel_id = sentinel_id
        self.complete = False
        self._parts = []

    def __repr__(self):
        return ("<{0.__class__.__name__} {0.request_id}/{0.sentinel_id} "
                "{1} parts>").format(self, len(self._parts))

    @property
    def ids(self):
        """Request ids this request owns in the pending table."""
        if self.sentinel_id is None:
            return (self.request_id,)
        return (self.request_id, self.sentinel_id)

    def feed(self, packet):
        """Add a received packet to the response.

        :raises ProtocolError: if the packet doesn't belong to this request.

        :returns: ``True`` once the response is complete.
        """
        if (self.complete
                or packet.type is not Packet.Type.RESPONSE_VALUE
                or packet.id not in self.ids):
            raise ProtocolError(ProtocolViolation.UNEXPECTED_PACKET,
                                repr(packet))
        if packet.id == self.sentinel_id:
            if packet.body:
                log.debug("Ignoring body of sentinel response %r", packet)
            self.complete = True
        else:
            log.debug("Received response part %r", packet)
            self._parts.append(packet.body)
            if self.sentinel_id is None:
                self.complete = True
        return self.complete

    @property
    def body(self):
        """The body received so far."""
        return b"".join(self._parts)


def _exchange(state, error=RCONError):
    """Decorator for methods that make a request and await the response.

    The wrapped coroutine runs whilst holding the session lock, as the
    sentinel scheme relies on nothing else being sent between a command
    and its sentinel response. Once the lock is held the session must be
    in the given state, otherwise ``error`` is raised.

    Should the exchange not run to completion for any reason, e.g.
    because it was cancelled or the stream failed, the session is closed
    as responses to it may still be on their way.

    Additionally, the docstring of the wrapped function gains a
    sphinx-style ``:raises:`` directive documenting the valid state.

    :param SessionState state: the state required by the method.
    :param error: the exception type raised in any other state.
    """

    def decorator(function):  # pylint: disable=missing-docstring

        @functools.wraps(function)
        async def wrapper(self, *args, **kwargs):  # pylint: disable=missing-docstring
            async with self._lock:
                if self._state is not state:
                    raise error("Must be {}; session is {}".format(
                        state.value, self._state.value))
                try:
                    return await function(self, *args, **kwargs)
                except (Exception, asyncio.CancelledError):
                    await self.close()
                    raise

        if not wrapper.__doc__.endswith("\n"):
            wrapper.__doc__ += "\n"
        wrapper.__doc__ += "\n:raises {}: if not {}.".format(
            error.__name__, state.value)
        return wrapper

    return decorator


class Session:
    """Represents an RCON connection over an existing stream.

    The session takes ownership of the given stream pair and closes it
    when the session is closed. It must be authenticated via
    :meth:`authenticate` before any commands can be issued with
    :meth:`command`.

    Calls to :meth:`authenticate` and :meth:`command` are serialised;
    if several tasks share a session they'll take turns.

    :param reader: an :class:`asyncio.StreamReader` or equivalent.
    :param writer: an :class:`asyncio.StreamWriter` or equivalent.
    :param bool multi_part: whether to send a sentinel after each command
        to collect multi-packet responses. Disable for servers that don't
        respond to empty commands.
    :param int max_packet_size: largest ``size`` field to send or accept.
    :param int auth_skip_limit: how many unrelated packets to tolerate
        whilst waiting for the authentication response.
    :param str encoding: encoding for passwords, commands and responses.
    :param int first_id: the first request id to use.
    """

    def __init__(self, reader, writer, multi_part=True,
                 max_packet_size=DEFAULT_MAX_PACKET_SIZE,
                 auth_skip_limit=DEFAULT_AUTH_SKIP_LIMIT,
                 encoding=Packet.ENCODING, first_id=1):
        self._reader = reader
        self._writer = writer
        self.multi_part = multi_part
        self.max_packet_size = max_packet_size
        self.auth_skip_limit = auth_skip_limit
        self.encoding = encoding
        self._next_id = first_id
        self._state = SessionState.UNAUTHENTICATED
        self._pending = {}
        self._lock = asyncio.Lock()

    def __repr__(self):
        return "<{0.__class__.__name__} {0.state.value}>".format(self)

    async def __aenter__(self):
        return self

    async def __aexit__(self, type_, value, traceback):
        await self.close()

    @property
    def state(self):
        """The current :class:`SessionState`."""
        return self._state

    @property
    def authenticated(self):
        """Determine if the session is authenticated."""
        return self._state is SessionState.AUTHENTICATED

    @property
    def closed(self):
        """Determine if the session has been closed."""
        return self._state is SessionState.CLOSED

    def _set_state(self, state):
        log.debug("Session %s -> %s", self._state.value, state.value)
        self._state = state

    def _allocate_id(self):
        """Get a fresh request id.

        Ids count up from ``first_id``, wrapping round to zero after the
        largest 32 bit integer. ``-1`` is never used as servers reply with
        it to signal failed authentication.
        """
        id_ = self._next_id
        if id_ == AUTH_FAILED_ID:
            id_ += 1
        self._next_id = id_ + 1 if id_ < INT32_MAX else 0
        return id_

    async def _send(self, id_, type_, body):
        return await write_packet(self._writer, id_, type_, body,
                                  self.max_packet_size, self.encoding)

    async def _receive(self):
        return await read_packet(
            self._reader, self.max_packet_size, self.encoding)

    @_exchange(SessionState.UNAUTHENTICATED)
    async def authenticate(self, password):
        """Authenticate with the server.

        This sends an authentication packet containing the password. If
        the password is correct the server sends back an acknowledgement
        and will allow all subsequent commands to be executed.

        Some servers send an empty ``RESPONSE_VALUE`` before the
        ``AUTH_RESPONSE``. Any packets other than an ``AUTH_RESPONSE``
        are skipped, up to ``auth_skip_limit`` of them.

        :param password: the password as a Unicode string or bytestring.

        :raises AuthenticationError: if the password was rejected. The
            session is left ``FAILED`` and its stream closed.
        :raises ProtocolError: if the server sends unexpected packets.
        :raises TransportError: if the stream fails. The session is
            closed in this case as well.
        """
        self._set_state(SessionState.AUTHENTICATING)
        request = await self._send(
            self._allocate_id(), Packet.Type.AUTH, password)
        skipped = 0
        while True:
            response = await self._receive()
            if response.type is Packet.Type.AUTH_RESPONSE:
                if response.id == AUTH_FAILED_ID:
                    log.debug("Authentication rejected")
                    await self.close()
                    self._set_state(SessionState.FAILED)
                    raise AuthenticationError
                if response.id == request.id:
                    break
                log.warning("Unexpected authentication response %r", response)
                raise ProtocolError(ProtocolViolation.UNEXPECTED_PACKET,
                                    repr(response))
            skipped += 1
            log.debug("Skipping %r whilst authenticating", response)
            if skipped > self.auth_skip_limit:
                raise ProtocolError(
                    ProtocolViolation.UNEXPECTED_PACKET,
                    "no authentication response after {} packets".format(
                        skipped))
        self._set_state(SessionState.AUTHENTICATED)

    @_exchange(SessionState.AUTHENTICATED, NotAuthenticatedError)
    async def command(self, text):
        """Execute a command.

        The response is collected from however many packets the server
        splits it over; see :class:`PendingRequest`.

        :param text: the command as a Unicode string or bytestring.

        :raises EncodingError: if the command can't be encoded. As with
            all other errors part way through an exchange the session is
            closed.
        :raises ProtocolError: if a packet arrives that doesn't belong to
            the command. The session is closed.
        :raises TransportError: if the stream fails. The session is
            closed.

        :returns: the :class:`Response` to the command.
        """
        request_id = self._allocate_id()
        sentinel_id = self._allocate_id() if self.multi_part else None
        pending = PendingRequest(request_id, sentinel_id)
        for id_ in pending.ids:
            self._pending[id_] = pending
        try:
            await self._send(request_id, Packet.Type.EXECCOMMAND, text)
            if sentinel_id is not None:
                await self._send(sentinel_id, Packet.Type.EXECCOMMAND, b"")
            while not pending.complete:
                packet = await self._receive()
                owner = self._pending.get(packet.id)
                if owner is None:
                    log.warning("Unexpected packet %r waiting for %r",
                                packet, pending)
                    raise ProtocolError(ProtocolViolation.UNEXPECTED_PACKET,
                                        repr(packet))
                owner.feed(packet)
        finally:
            for id_ in pending.ids:
                self._pending.pop(id_, None)
        return Response(request_id, pending.body, self.encoding)

    async def close(self):
        """Close the session's stream.

        Safe to call more than once. Errors raised whilst closing the
        stream are logged rather than propagated.
        """
        if self._state in (SessionState.CLOSED, SessionState.FAILED):
            return
        self._set_state(SessionState.CLOSED)
        self._pending.clear()
        self._writer.close()
        try:
            await self._writer.wait_closed()
        except OSError as exc:
            log.debug("Error whilst closing stream: %s", exc)
