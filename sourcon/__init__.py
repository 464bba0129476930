# -*- coding: utf-8 -*-
# Copyright (C) 2013-2017 Oliver Ainsworth

"""Asynchronous client for the Source remote console (RCON) protocol."""

from .client import DEFAULT_TIMEOUT, RCON, connect, execute
from .errors import (AuthenticationError, DecodingError, EncodingError,
                     MessageError, NotAuthenticatedError, ProtocolError,
                     ProtocolViolation, RCONError, RCONTimeoutError,
                     TransportError)
from .packet import DEFAULT_MAX_PACKET_SIZE, Packet, decode, encode
from .session import PendingRequest, Response, Session, SessionState


__all__ = [
    "AuthenticationError",
    "DEFAULT_MAX_PACKET_SIZE",
    "DEFAULT_TIMEOUT",
    "DecodingError",
    "EncodingError",
    "MessageError",
    "NotAuthenticatedError",
    "Packet",
    "PendingRequest",
    "ProtocolError",
    "ProtocolViolation",
    "RCON",
    "RCONError",
    "RCONTimeoutError",
    "Response",
    "Session",
    "SessionState",
    "TransportError",
    "connect",
    "decode",
    "encode",
    "execute",
]
