# -*- coding: utf-8 -*-
# Copyright (C) 2013-2017 Oliver Ainsworth

"""Reading and writing whole packets on asyncio streams."""

import asyncio
import logging
import struct

from .errors import (DecodingError, EncodingError,
                     ProtocolError, ProtocolViolation, TransportError)
from .packet import DEFAULT_MAX_PACKET_SIZE, MIN_PACKET_SIZE, Packet


log = logging.getLogger(__name__)
_SIZE_FORMAT = "<i"


async def write_packet(writer, id_, type_, body,
                       max_size=DEFAULT_MAX_PACKET_SIZE, encoding=None):
    """Encode a packet and write it to a stream.

    This waits for the writer to drain so that all bytes have been handed
    to the transport before returning.

    :param writer: an :class:`asyncio.StreamWriter` or equivalent.
    :param int id_: request id for the packet.
    :param type_: the :class:`Packet.Type` to send.
    :param body: the body as a bytestring or Unicode string.
    :param max_size: largest permitted ``size`` field.
    :param str encoding: encoding used for Unicode bodies.

    :raises EncodingError: if the packet can't be encoded. Nothing is
        written in this case.
    :raises TransportError: if writing to the stream fails.

    :returns: the :class:`Packet` that was written.
    """
    try:
        packet = Packet(id_, type_, body, encoding)
    except UnicodeEncodeError as exc:
        raise EncodingError("Couldn't encode body: {}".format(exc))
    encoded = packet.encode(max_size)
    log.debug("Sending %r", packet)
    try:
        writer.write(encoded)
        await writer.drain()
    except (OSError, RuntimeError) as exc:
        # RuntimeError: asyncio refuses to write to a closed transport
        raise TransportError("Failed to send packet: {}".format(exc)) from exc
    return packet


async def read_packet(reader, max_size=DEFAULT_MAX_PACKET_SIZE, encoding=None):
    """Read exactly one packet from a stream.

    The size prefix is read first and checked against ``max_size``
    before any buffer for the rest of the packet is allocated.

    :param reader: an :class:`asyncio.StreamReader` or equivalent.
    :param max_size: largest permitted ``size`` field.
    :param str encoding: encoding used by :attr:`Packet.text`.

    :raises TransportError: if the stream is closed or errors.
    :raises ProtocolError: with :attr:`ProtocolViolation.OVERSIZED_PACKET`
        if the peer announces a packet larger than ``max_size``.
    :raises DecodingError: if the packet is malformed.

    :returns: the received :class:`Packet`.
    """
    prefix = await _read_exactly(reader, struct.calcsize(_SIZE_FORMAT))
    size = struct.unpack(_SIZE_FORMAT, prefix)[0]
    if max_size is not None and size > max_size:
        log.warning("Peer announced %i byte packet; limit is %i",
                    size, max_size)
        raise ProtocolError(
            ProtocolViolation.OVERSIZED_PACKET,
            "{} bytes exceeds limit of {}".format(size, max_size))
    if size < MIN_PACKET_SIZE:
        raise DecodingError(
            "Packet size {} is below minimum of {}".format(
                size, MIN_PACKET_SIZE))
    payload = await _read_exactly(reader, size)
    packet = Packet.decode(prefix + payload, encoding=encoding)
    log.debug("Received %r", packet)
    return packet


async def _read_exactly(reader, count):
    try:
        return await reader.readexactly(count)
    except asyncio.IncompleteReadError as exc:
        raise TransportError(
            "Connection closed after {} of {} bytes".format(
                len(exc.partial), count)) from exc
    except OSError as exc:
        raise TransportError(
            "Failed to receive packet: {}".format(exc)) from exc
