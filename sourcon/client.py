# -*- coding: utf-8 -*-
# Copyright (C) 2013-2017 Oliver Ainsworth

"""High-level RCON client built on :class:`sourcon.session.Session`."""

import asyncio
import logging

from .errors import RCONError, RCONTimeoutError, TransportError
from .session import Session


log = logging.getLogger(__name__)
DEFAULT_TIMEOUT = 30.0


async def _wait(awaitable, timeout):
    """Await something, giving up after ``timeout`` seconds.

    :raises RCONTimeoutError: if the timeout is reached.
    """
    if timeout is None:
        return await awaitable
    try:
        return await asyncio.wait_for(awaitable, timeout)
    except asyncio.TimeoutError:
        raise RCONTimeoutError(
            "No response after {} seconds".format(timeout))


async def connect(address, password, timeout=DEFAULT_TIMEOUT,
                  **session_options):
    """Connect and authenticate with an RCON server.

    :param address: the address of the server to connect to as a tuple
        containing the host as a string and the port as an integer.
    :param password: the password to authenticate with.
    :param timeout: the number of seconds to wait for each of connecting
        and authenticating. Defaults to :data:`DEFAULT_TIMEOUT`; ``None``
        waits forever.
    :param session_options: passed on to :class:`Session`.

    :raises TransportError: if a connection to the server could not be
        made.
    :raises RCONTimeoutError: if connecting or authenticating takes too
        long.
    :raises AuthenticationError: if the password was rejected.

    :returns: an authenticated :class:`Session`.
    """
    host, port = address
    log.debug("Connecting to %s:%s", host, port)
    try:
        reader, writer = await _wait(
            asyncio.open_connection(host, port), timeout)
    except OSError as exc:
        raise TransportError(
            "Could not connect to {}:{}: {}".format(host, port, exc)) from exc
    session = Session(reader, writer, **session_options)
    try:
        await _wait(session.authenticate(password), timeout)
    except RCONTimeoutError:
        await session.close()
        raise
    log.debug("Authenticated with %s:%s", host, port)
    return session


class RCON:
    """Represents an RCON connection.

    Connections are best used as asynchronous context managers, which
    connect and authenticate on entry and close on exit:

    .. code-block:: python

        async with RCON(("localhost", 27015), "password") as rcon:
            print(await rcon("status"))

    :param address: the server address as a ``(host, port)`` tuple.
    :param password: the password to authenticate with.
    :param timeout: seconds to wait for connecting, authenticating and
        each command. Defaults to :data:`DEFAULT_TIMEOUT`; ``None`` waits
        forever.
    :param bool multi_part: whether the server supports
        `Multiple Packet Responses`_.
    :param session_options: passed on to :class:`Session`.

    .. _Multiple Packet Responses: https://developer.valvesoftware.com/wiki/Source_RCON_Protocol#Multiple-packet_Responses
    """

    def __init__(self, address, password, timeout=DEFAULT_TIMEOUT,
                 multi_part=True,
                 **session_options):
        self._address = address
        self._password = password
        self._timeout = timeout if timeout else None
        self._session_options = dict(session_options, multi_part=multi_part)
        self._session = None

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, type_, value, traceback):
        await self.close()

    async def __call__(self, command):
        """Invoke a command.

        This is a higher-level version of :meth:`execute` that only
        returns the response body.

        :raises DecodingError: if the response body couldn't be decoded
            into a Unicode string.

        :returns: the response to the command as a Unicode string.
        """
        response = await self.execute(command)
        return response.body

    @property
    def connected(self):
        """Determine if a connection has been made.

        .. note::
            Strictly speaking this does not guarantee that any subsequent
            attempt to execute a command will succeed as the underlying
            connection may be closed by the server at any time.
        """
        return self._session is not None and self._session.authenticated

    @property
    def session(self):
        """The underlying :class:`Session`, if connected."""
        return self._session

    async def connect(self):
        """Create an authenticated connection to the server.

        :raises RCONError: if already connected.
        """
        if self._session is not None:
            raise RCONError("Already connected")
        self._session = await connect(
            self._address, self._password, self._timeout,
            **self._session_options)

    async def execute(self, command, timeout=None):
        """Invoke a command.

        If the command times out the connection is closed, as the
        response may still arrive and would be mistaken for the response
        to a later command.

        :param str command: the command to execute.
        :param timeout: the number of seconds to wait for a response. If
            not given the connection-global timeout is used.

        :raises RCONError: if not connected.
        :raises RCONTimeoutError: if the timeout is reached.

        :returns: the :class:`Response` to the command.
        """
        if self._session is None:
            raise RCONError("Must be connected")
        if timeout is None:
            timeout = self._timeout
        return await _wait(self._session.command(command), timeout)

    async def close(self):
        """Close connection to the server."""
        if self._session is not None:
            await self._session.close()
            self._session = None


async def execute(address, password, command, multi_part=True,
                  timeout=DEFAULT_TIMEOUT):
    """Execute a command on an RCON server.

    This is a *very* high-level interface which connects to the given
    RCON server using the provided credentials and executes a command.

    :param address: the address of the server to connect to as a tuple
        containing the host as a string and the port as an integer.
    :param str password: the password to use to authenticate the connection.
    :param str command: the command to execute on the server.
    :param bool multi_part: flag for if RCON server supports
        `Multiple Packet Responses`_.
    :param timeout: seconds to wait at each step. ``None`` waits forever.

    .. _Multiple Packet Responses: https://developer.valvesoftware.com/wiki/Source_RCON_Protocol#Multiple-packet_Responses

    :raises TransportError: if a connection to the RCON server could not
        be made.
    :raises AuthenticationError: if the password was rejected.
    :raises DecodingError: if the response body couldn't be decoded
        into a Unicode string.

    :returns: the response to the command as a Unicode string.
    """
    async with RCON(address, password, timeout, multi_part) as rcon:
        return await rcon(command)
