# -*- coding: utf-8 -*-
# Copyright (C) 2013-2017 Oliver Ainsworth

"""Source RCON packet codec.

Each packet on the wire is laid out as follows, with all integers being
little-endian signed 32 bit values::

    [size][id][type][body ...][0x00][0x00]

Where ``size`` counts every byte that follows it. The body is terminated
by a null byte and the packet by a further one, so the body itself can
never contain a null.

https://developer.valvesoftware.com/wiki/Source_RCON_Protocol
"""

import enum
import struct

from .errors import DecodingError, EncodingError


DEFAULT_MAX_PACKET_SIZE = 4096
MIN_PACKET_SIZE = struct.calcsize("<ii") + 2
INT32_MIN = -2 ** 31
INT32_MAX = 2 ** 31 - 1
_SIZE_FORMAT = "<i"
_HEADER_FORMAT = "<ii"
_TERMINATORS = b"\x00\x00"


class Packet:
    """Represents a RCON request or response."""

    ENCODING = "utf-8"

    class Type(enum.IntEnum):
        """Packet types corresponding to ``SERVERDATA_`` constants.

        ``AUTH_RESPONSE`` and ``EXECCOMMAND`` share a value. Which one a
        packet is depends on the direction it travels in.
        """

        RESPONSE_VALUE = 0
        AUTH_RESPONSE = 2
        EXECCOMMAND = 2
        AUTH = 3

    def __init__(self, id_, type_, body_or_text=b"", encoding=None):
        self.id = int(id_)
        self.type = self.Type(type_)
        self.encoding = encoding or self.ENCODING
        if isinstance(body_or_text, (bytes, bytearray)):
            self.body = bytes(body_or_text)
        elif not isinstance(body_or_text, str):
            raise EncodingError("Body must be str or bytes, not {}".format(
                type(body_or_text).__name__))
        else:
            self.body = b""
            self.text = body_or_text

    def __repr__(self):
        return ("<{0.__class__.__name__} "
                "{0.id} {0.type.name} {1}B>").format(self, len(self.body))

    def __eq__(self, other):
        if not isinstance(other, Packet):
            return NotImplemented
        return ((self.id, self.type, self.body)
                == (other.id, other.type, other.body))

    def __hash__(self):
        return hash((self.id, int(self.type), self.body))

    @property
    def text(self):
        """Get the body of the packet as Unicode.

        :raises UnicodeDecodeError: if the body cannot be decoded.
        """
        return self.body.decode(self.encoding)

    @text.setter
    def text(self, text):
        """Set the body of the packet from Unicode.

        :raises UnicodeEncodeError: if the string cannot be encoded.
        """
        self.body = text.encode(self.encoding)

    @property
    def size(self):
        """Value of the size field; everything after the field itself."""
        return struct.calcsize(_HEADER_FORMAT) + len(self.body) + 2

    def encode(self, max_size=DEFAULT_MAX_PACKET_SIZE):
        """Encode packet to a bytestring.

        :param int max_size: the largest ``size`` field allowed. ``None``
            disables the check.

        :raises EncodingError: if the body contains a null byte, the id
            doesn't fit in 32 bits or the packet would be too large.
        """
        if b"\x00" in self.body:
            raise EncodingError("Body contains a null byte")
        if not INT32_MIN <= self.id <= INT32_MAX:
            raise EncodingError("ID {} out of range".format(self.id))
        if max_size is not None and self.size > max_size:
            raise EncodingError(
                "Packet size {} exceeds limit of {}".format(
                    self.size, max_size))
        return (struct.pack("<iii", self.size, self.id, self.type)
                + self.body + _TERMINATORS)

    @classmethod
    def decode(cls, buffer_, max_size=None, encoding=None):
        """Decode a packet from a bytestring.

        The buffer must hold exactly one packet, including its size
        prefix. Decoding either succeeds for the whole buffer or fails.

        :raises DecodingError: if the buffer isn't a valid packet.

        :returns: the decoded :class:`Packet`.
        """
        size_field_length = struct.calcsize(_SIZE_FORMAT)
        if len(buffer_) < size_field_length:
            raise DecodingError(
                "Need at least {} bytes; got "
                "{}".format(size_field_length, len(buffer_)))
        size = struct.unpack_from(_SIZE_FORMAT, buffer_)[0]
        raw_packet = bytes(buffer_[size_field_length:])
        if size < MIN_PACKET_SIZE:
            raise DecodingError(
                "Packet size {} is below minimum of {}".format(
                    size, MIN_PACKET_SIZE))
        if max_size is not None and size > max_size:
            raise DecodingError(
                "Packet size {} exceeds limit of {}".format(size, max_size))
        if len(raw_packet) != size:
            raise DecodingError(
                "Packet is {} bytes long "
                "but got {}".format(size, len(raw_packet)))
        if raw_packet[-2:] != _TERMINATORS:
            raise DecodingError("Packet is not null terminated")
        id_, type_ = struct.unpack_from(_HEADER_FORMAT, raw_packet)
        body = raw_packet[struct.calcsize(_HEADER_FORMAT):-2]
        if b"\x00" in body:
            raise DecodingError("Body contains a null byte")
        try:
            return cls(id_, type_, body, encoding)
        except ValueError:
            raise DecodingError("Unknown packet type {}".format(type_))


def encode(id_, type_, body, max_size=DEFAULT_MAX_PACKET_SIZE):
    """Encode a single packet to its wire representation.

    :param int id_: the request id.
    :param type_: a :class:`Packet.Type` or its integer value.
    :param body: the body as either a bytestring or Unicode string.
    :param max_size: largest permitted ``size`` field.

    :raises EncodingError: see :meth:`Packet.encode`. Also raised if a
        Unicode body cannot be encoded.
    :raises ValueError: if ``type_`` isn't a known packet type.
    """
    try:
        packet = Packet(id_, type_, body)
    except UnicodeEncodeError as exc:
        raise EncodingError("Couldn't encode body: {}".format(exc))
    return packet.encode(max_size)


def decode(buffer_, max_size=None):
    """Decode a single, already delimited, packet.

    :raises DecodingError: see :meth:`Packet.decode`.
    """
    return Packet.decode(buffer_, max_size)
