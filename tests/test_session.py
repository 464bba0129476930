# -*- coding: utf-8 -*-

import asyncio

import pytest

from sourcon.errors import (AuthenticationError, DecodingError, EncodingError,
                            NotAuthenticatedError, ProtocolError,
                            ProtocolViolation, RCONError, TransportError)
from sourcon.packet import Packet
from sourcon.session import PendingRequest, Response, Session, SessionState
from sourcon.testing import MemoryStream


RESPONSE_VALUE = Packet.Type.RESPONSE_VALUE
AUTH_RESPONSE = Packet.Type.AUTH_RESPONSE
EXECCOMMAND = Packet.Type.EXECCOMMAND
AUTH = Packet.Type.AUTH


async def _authenticated(*responses, **options):
    """Build a session which has already been authenticated."""
    options.setdefault("first_id", 7)
    stream = MemoryStream(*responses, eof=options.pop("eof", True))
    session = Session(stream.reader, stream.writer, **options)
    session._state = SessionState.AUTHENTICATED
    return stream, session


class TestResponse:

    def test_body(self):
        response = Response(1, b"hi there")
        assert response.body == "hi there"
        assert str(response) == "hi there"
        assert repr(response) == "<Response 1 8B>"

    def test_body_encoding(self):
        assert Response(1, b"\xff", "latin-1").body == "ÿ"

    def test_body_bad(self):
        with pytest.raises(DecodingError):
            getattr(Response(1, b"\xff"), "body")


class TestPendingRequest:

    def test_multi_part(self):
        pending = PendingRequest(7, 8)
        assert pending.ids == (7, 8)
        assert pending.feed(Packet(7, RESPONSE_VALUE, b"hi")) is False
        assert pending.feed(Packet(7, RESPONSE_VALUE, b" there")) is False
        assert pending.feed(Packet(8, RESPONSE_VALUE, b"")) is True
        assert pending.complete
        assert pending.body == b"hi there"

    def test_empty_response(self):
        pending = PendingRequest(7, 8)
        assert pending.feed(Packet(8, RESPONSE_VALUE, b"")) is True
        assert pending.body == b""

    def test_sentinel_body_discarded(self):
        pending = PendingRequest(7, 8)
        pending.feed(Packet(7, RESPONSE_VALUE, b"foo"))
        pending.feed(Packet(8, RESPONSE_VALUE, b"\x01"))
        assert pending.body == b"foo"

    def test_single_part(self):
        pending = PendingRequest(7)
        assert pending.ids == (7,)
        assert pending.feed(Packet(7, RESPONSE_VALUE, b"foo")) is True
        assert pending.body == b"foo"

    @pytest.mark.parametrize("packet", [
        Packet(9, RESPONSE_VALUE, b""),
        Packet(7, AUTH_RESPONSE, b""),
        Packet(-1, RESPONSE_VALUE, b""),
    ])
    def test_unexpected(self, packet):
        pending = PendingRequest(7, 8)
        with pytest.raises(ProtocolError) as exc:
            pending.feed(packet)
        assert exc.value.kind is ProtocolViolation.UNEXPECTED_PACKET

    def test_after_complete(self):
        pending = PendingRequest(7, 8)
        pending.feed(Packet(8, RESPONSE_VALUE, b""))
        with pytest.raises(ProtocolError):
            pending.feed(Packet(7, RESPONSE_VALUE, b"late"))


class TestAllocateID:

    def test_monotonic(self):

        async def scenario():
            stream = MemoryStream()
            session = Session(stream.reader, stream.writer)
            return [session._allocate_id() for _ in range(3)]

        assert asyncio.run(scenario()) == [1, 2, 3]

    def test_wraps(self):

        async def scenario():
            stream = MemoryStream()
            session = Session(stream.reader, stream.writer,
                              first_id=2 ** 31 - 2)
            return [session._allocate_id() for _ in range(4)]

        assert asyncio.run(scenario()) == [2 ** 31 - 2, 2 ** 31 - 1, 0, 1]

    def test_skips_auth_failed(self):

        async def scenario():
            stream = MemoryStream()
            session = Session(stream.reader, stream.writer, first_id=-2)
            return [session._allocate_id() for _ in range(3)]

        assert asyncio.run(scenario()) == [-2, 0, 1]


class TestAuthenticate:

    def test(self):

        async def scenario():
            stream = MemoryStream(
                Packet(1, RESPONSE_VALUE, b""),
                Packet(1, AUTH_RESPONSE, b""),
            )
            session = Session(stream.reader, stream.writer)
            assert session.state is SessionState.UNAUTHENTICATED
            await session.authenticate("password")
            return stream, session

        stream, session = asyncio.run(scenario())
        assert session.state is SessionState.AUTHENTICATED
        assert session.authenticated
        assert stream.sent == [Packet(1, AUTH, b"password")]

    def test_no_junk_packet(self):

        async def scenario():
            stream = MemoryStream(Packet(1, AUTH_RESPONSE, b""))
            session = Session(stream.reader, stream.writer)
            await session.authenticate(b"password")
            return session

        assert asyncio.run(scenario()).authenticated

    def test_wrong_password(self):

        async def scenario():
            stream = MemoryStream(
                Packet(1, RESPONSE_VALUE, b""),
                Packet(-1, AUTH_RESPONSE, b""),
            )
            session = Session(stream.reader, stream.writer)
            with pytest.raises(AuthenticationError):
                await session.authenticate("wrong")
            assert session.state is SessionState.FAILED
            assert stream.writer.closed
            with pytest.raises(NotAuthenticatedError):
                await session.command("status")
            assert session.state is SessionState.FAILED

        asyncio.run(scenario())

    def test_skip_limit(self):

        async def scenario():
            junk = [Packet(1, RESPONSE_VALUE, b"")] * 3
            stream = MemoryStream(*junk, Packet(1, AUTH_RESPONSE, b""))
            session = Session(stream.reader, stream.writer, auth_skip_limit=2)
            with pytest.raises(ProtocolError) as exc:
                await session.authenticate("password")
            assert exc.value.kind is ProtocolViolation.UNEXPECTED_PACKET
            assert session.closed
            assert stream.writer.closed

        asyncio.run(scenario())

    def test_skip_within_limit(self):

        async def scenario():
            junk = [Packet(1, RESPONSE_VALUE, b"")] * 2
            stream = MemoryStream(*junk, Packet(1, AUTH_RESPONSE, b""))
            session = Session(stream.reader, stream.writer, auth_skip_limit=2)
            await session.authenticate("password")
            return session

        assert asyncio.run(scenario()).authenticated

    def test_mismatched_id(self):

        async def scenario():
            stream = MemoryStream(Packet(5, AUTH_RESPONSE, b""))
            session = Session(stream.reader, stream.writer)
            with pytest.raises(ProtocolError) as exc:
                await session.authenticate("password")
            assert exc.value.kind is ProtocolViolation.UNEXPECTED_PACKET
            assert session.closed

        asyncio.run(scenario())

    def test_connection_closed(self):

        async def scenario():
            stream = MemoryStream()
            session = Session(stream.reader, stream.writer)
            with pytest.raises(TransportError):
                await session.authenticate("password")
            assert session.closed

        asyncio.run(scenario())

    def test_bad_password_type(self):

        async def scenario():
            stream = MemoryStream(Packet(1, AUTH_RESPONSE, b""))
            session = Session(stream.reader, stream.writer)
            with pytest.raises(EncodingError):
                await session.authenticate(123)
            assert session.closed
            assert stream.writer.closed
            assert stream.sent == []

        asyncio.run(scenario())

    def test_unexpected_error(self, monkeypatch):

        async def scenario():
            stream = MemoryStream(Packet(1, AUTH_RESPONSE, b""))
            session = Session(stream.reader, stream.writer)
            monkeypatch.setattr(session, "_receive",
                                pytest.AsyncMock(side_effect=KeyError))
            with pytest.raises(KeyError):
                await session.authenticate("password")
            assert session.closed
            assert stream.writer.closed

        asyncio.run(scenario())

    def test_twice(self):

        async def scenario():
            stream, session = await _authenticated()
            with pytest.raises(RCONError):
                await session.authenticate("password")
            assert session.authenticated
            assert stream.sent == []

        asyncio.run(scenario())


class TestCommand:

    def test_reassembly(self):

        async def scenario():
            stream, session = await _authenticated(
                Packet(7, RESPONSE_VALUE, b"hi"),
                Packet(7, RESPONSE_VALUE, b" there"),
                Packet(8, RESPONSE_VALUE, b""),
            )
            response = await session.command("echo hi there")
            return stream, session, response

        stream, session, response = asyncio.run(scenario())
        assert response.body == "hi there"
        assert response.id == 7
        assert stream.sent == [
            Packet(7, EXECCOMMAND, b"echo hi there"),
            Packet(8, EXECCOMMAND, b""),
        ]
        assert session.authenticated
        assert session._pending == {}

    def test_split_character(self):
        snowman = "☃".encode("utf-8")

        async def scenario():
            _, session = await _authenticated(
                Packet(7, RESPONSE_VALUE, snowman[:1]),
                Packet(7, RESPONSE_VALUE, snowman[1:]),
                Packet(8, RESPONSE_VALUE, b""),
            )
            return await session.command("snowman")

        assert asyncio.run(scenario()).body == "☃"

    def test_consecutive(self):

        async def scenario():
            stream, session = await _authenticated(
                Packet(7, RESPONSE_VALUE, b"one"),
                Packet(8, RESPONSE_VALUE, b""),
                Packet(9, RESPONSE_VALUE, b"two"),
                Packet(10, RESPONSE_VALUE, b""),
            )
            first = await session.command("first")
            second = await session.command("second")
            return stream, first, second

        stream, first, second = asyncio.run(scenario())
        assert first.body == "one"
        assert second.body == "two"
        assert [packet.id for packet in stream.sent] == [7, 8, 9, 10]

    def test_no_multi_part(self):

        async def scenario():
            stream, session = await _authenticated(
                Packet(7, RESPONSE_VALUE, b"hello"),
                multi_part=False,
            )
            response = await session.command("echo hello")
            return stream, response

        stream, response = asyncio.run(scenario())
        assert response.body == "hello"
        assert stream.sent == [Packet(7, EXECCOMMAND, b"echo hello")]

    def test_unexpected_packet(self):

        async def scenario():
            stream, session = await _authenticated(
                Packet(7, RESPONSE_VALUE, b"hi"),
                Packet(3, RESPONSE_VALUE, b"stale"),
                Packet(8, RESPONSE_VALUE, b""),
            )
            with pytest.raises(ProtocolError) as exc:
                await session.command("echo hi")
            assert exc.value.kind is ProtocolViolation.UNEXPECTED_PACKET
            assert session.closed
            assert stream.writer.closed
            assert session._pending == {}
            with pytest.raises(NotAuthenticatedError):
                await session.command("echo hi")

        asyncio.run(scenario())

    def test_unexpected_type(self):

        async def scenario():
            _, session = await _authenticated(
                Packet(7, AUTH_RESPONSE, b""),
            )
            with pytest.raises(ProtocolError):
                await session.command("echo hi")

        asyncio.run(scenario())

    def test_connection_closed(self):

        async def scenario():
            _, session = await _authenticated(
                Packet(7, RESPONSE_VALUE, b"hi"),
            )
            with pytest.raises(TransportError):
                await session.command("echo hi")
            assert session.closed

        asyncio.run(scenario())

    def test_oversized_response(self):

        async def scenario():
            _, session = await _authenticated(
                Packet(7, RESPONSE_VALUE, b"x" * 100),
                max_packet_size=64,
            )
            with pytest.raises(ProtocolError) as exc:
                await session.command("echo hi")
            assert exc.value.kind is ProtocolViolation.OVERSIZED_PACKET
            assert session.closed

        asyncio.run(scenario())

    def test_command_too_big(self):

        async def scenario():
            stream, session = await _authenticated(max_packet_size=64)
            with pytest.raises(EncodingError):
                await session.command("x" * 100)
            assert stream.writer.buffer == b""
            assert session.closed

        asyncio.run(scenario())

    def test_not_authenticated(self):

        async def scenario():
            stream = MemoryStream()
            session = Session(stream.reader, stream.writer)
            with pytest.raises(NotAuthenticatedError):
                await session.command("status")
            assert session.state is SessionState.UNAUTHENTICATED
            assert stream.sent == []

        asyncio.run(scenario())

    def test_serialised(self):

        async def scenario():
            stream, session = await _authenticated(eof=False)
            first = asyncio.ensure_future(session.command("first"))
            second = asyncio.ensure_future(session.command("second"))
            await asyncio.sleep(0.01)
            # Only the first command and its sentinel have been sent
            assert [packet.id for packet in stream.sent] == [7, 8]
            stream.reader.feed_data(
                Packet(7, RESPONSE_VALUE, b"one").encode()
                + Packet(8, RESPONSE_VALUE, b"").encode()
            )
            assert (await first).body == "one"
            await asyncio.sleep(0.01)
            assert [packet.id for packet in stream.sent] == [7, 8, 9, 10]
            stream.reader.feed_data(
                Packet(9, RESPONSE_VALUE, b"two").encode()
                + Packet(10, RESPONSE_VALUE, b"").encode()
            )
            assert (await second).body == "two"

        asyncio.run(scenario())

    def test_cancelled(self):

        async def scenario():
            stream, session = await _authenticated(eof=False)
            task = asyncio.ensure_future(session.command("status"))
            await asyncio.sleep(0.01)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task
            assert session.closed
            assert stream.writer.closed
            with pytest.raises(NotAuthenticatedError):
                await session.command("status")

        asyncio.run(scenario())


class TestClose:

    def test(self):

        async def scenario():
            stream, session = await _authenticated()
            await session.close()
            await session.close()
            return stream, session

        stream, session = asyncio.run(scenario())
        assert session.closed
        assert stream.writer.closed

    def test_context_manager(self):

        async def scenario():
            stream, session = await _authenticated()
            async with session as entered:
                assert entered is session
            return stream, session

        stream, session = asyncio.run(scenario())
        assert session.closed
        assert stream.writer.closed

    def test_repr(self):

        async def scenario():
            return (await _authenticated())[1]

        assert repr(asyncio.run(scenario())) == "<Session authenticated>"
