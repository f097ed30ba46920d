import asyncio

import pytest

from wired.network.framing import iter_frames, read_frame
from wired.network.transport.base import TransportClosed
from wired.network.transport.memory import MemoryTransport
from wired.network.transport.tcp import TcpTransport
from wired.protocol.codec import decode, encode


@pytest.mark.asyncio
async def test_read_frame_splits_on_carriage_return():
    reader = asyncio.StreamReader()
    reader.feed_data(encode("wired.send_ping") + encode("wired.server_info"))
    reader.feed_eof()

    first = await read_frame(reader)
    second = await read_frame(reader)

    assert first.endswith(b"</p7:message>\r")
    assert second.startswith(b"\n<?xml")
    assert [decode(first).name, decode(second).name] == ["wired.send_ping", "wired.server_info"]
    with pytest.raises(TransportClosed):
        await read_frame(reader)


@pytest.mark.asyncio
async def test_frame_split_across_reads():
    reader = asyncio.StreamReader()
    data = encode("wired.login", {"wired.user.id": "42"})
    reader.feed_data(data[:10])

    pending = asyncio.create_task(read_frame(reader))
    await asyncio.sleep(0)
    assert not pending.done()

    reader.feed_data(data[10:])
    frame = await asyncio.wait_for(pending, timeout=1)

    assert decode(frame).get("wired.user.id") == "42"


@pytest.mark.asyncio
async def test_partial_frame_at_eof_is_a_closed_stream():
    reader = asyncio.StreamReader()
    reader.feed_data(b"<p7:message name=")
    reader.feed_eof()

    with pytest.raises(TransportClosed, match="unframed"):
        await read_frame(reader)


@pytest.mark.asyncio
async def test_oversized_frame_is_a_closed_stream():
    reader = asyncio.StreamReader(limit=16)
    reader.feed_data(b"x" * 64)

    with pytest.raises(TransportClosed, match="read limit"):
        await read_frame(reader)


@pytest.mark.asyncio
async def test_iter_frames_ends_with_transport_closed():
    reader = asyncio.StreamReader()
    reader.feed_data(b"<a/>\r<b/>\r")
    reader.feed_eof()

    frames = []
    with pytest.raises(TransportClosed):
        async for frame in iter_frames(reader):
            frames.append(frame)

    assert frames == [b"<a/>\r", b"<b/>\r"]


@pytest.mark.asyncio
async def test_memory_transport_records_and_feeds():
    transport = MemoryTransport()
    await transport.connect()

    await transport.send(encode("wired.ping"))
    transport.feed_message("wired.login", {"wired.user.id": "7"})

    assert transport.sent_names == ["wired.ping"]
    assert decode(await transport.receive()).get("wired.user.id") == "7"

    transport.drop()
    with pytest.raises(TransportClosed):
        await transport.receive()
    with pytest.raises(TransportClosed):
        await transport.send(encode("wired.ping"))


@pytest.mark.asyncio
async def test_tcp_transport_exchanges_frames():
    received = asyncio.Queue()

    async def _handle(reader, writer):
        received.put_nowait(await reader.readuntil(b"\r\n"))
        writer.write(encode("p7.handshake.server_handshake", {"p7.handshake.protocol.version": "2.0b55"}))
        await writer.drain()
        writer.close()

    server = await asyncio.start_server(_handle, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    transport = TcpTransport("127.0.0.1", port, connect_timeout=2)
    try:
        await transport.connect()
        assert transport.is_open
        await transport.send(encode("p7.handshake.client_handshake"))

        frame = await asyncio.wait_for(transport.receive(), timeout=2)
        sent = await asyncio.wait_for(received.get(), timeout=2)

        assert decode(sent).name == "p7.handshake.client_handshake"
        assert decode(frame).get("p7.handshake.protocol.version") == "2.0b55"
        with pytest.raises(TransportClosed):
            await asyncio.wait_for(transport.receive(), timeout=2)
    finally:
        await transport.close()
        server.close()
        await server.wait_closed()

    assert not transport.is_open


@pytest.mark.asyncio
async def test_tcp_connect_refused_raises_transport_closed():
    server = await asyncio.start_server(lambda r, w: None, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    server.close()
    await server.wait_closed()

    transport = TcpTransport("127.0.0.1", port, connect_timeout=2)
    with pytest.raises(TransportClosed):
        await transport.connect()


@pytest.mark.asyncio
async def test_tcp_send_before_connect_is_closed():
    transport = TcpTransport("127.0.0.1", 1)

    with pytest.raises(TransportClosed):
        await transport.send(b"x")
    with pytest.raises(TransportClosed):
        await transport.receive()
