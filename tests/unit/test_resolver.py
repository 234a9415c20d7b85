"""
Unit tests for villager_voice/refs/resolver.py

Remote fetches go through httpx.MockTransport; nothing hits the network.
"""
import base64

import httpx
import pytest

from tests.helpers import mock_http_client
from villager_voice.errors import NotFoundError, UpstreamError
from villager_voice.refs import LocalRef, RemoteRef, Resolver

pytestmark = pytest.mark.asyncio


async def test_resolve_local_existing(store):
    name = store.put(b"audio")
    resolver = Resolver(store)
    
    assert await resolver.resolve(LocalRef(name)) == name


async def test_resolve_local_missing(store):
    resolver = Resolver(store)
    with pytest.raises(NotFoundError):
        await resolver.resolve(LocalRef("gone.wav"))


async def test_resolve_remote_streams_into_store(store):
    body = b"\x00\x01" * 100_000
    url = "https://replicate.delivery/abc/vocals.mp3"
    resolver = Resolver(store, client=mock_http_client({url: body}), chunk_size=4096)
    
    name = await resolver.resolve(RemoteRef(url), purpose="vocals", original_name="My Song")
    
    assert name.startswith("vocals-")
    assert name.endswith("-my_song.mp3")
    assert store.get(name) == body


async def test_resolve_remote_unknown_extension_defaults_to_wav(store):
    url = "https://cdn.example/out"
    resolver = Resolver(store, client=mock_http_client({url: b"x"}))
    
    name = await resolver.resolve(RemoteRef(url))
    
    assert name.startswith("remote-")
    assert name.endswith(".wav")


async def test_resolve_remote_twice_downloads_twice(store):
    url = "https://cdn.example/a.wav"
    resolver = Resolver(store, client=mock_http_client({url: b"abc"}))
    
    first = await resolver.resolve(RemoteRef(url))
    second = await resolver.resolve(RemoteRef(url))
    
    assert first != second
    assert len(store.list()) == 2


async def test_resolve_remote_non_success_status(store):
    url = "https://cdn.example/missing.wav"
    resolver = Resolver(store, client=mock_http_client({}, status={url: 500}))
    
    with pytest.raises(UpstreamError) as exc_info:
        await resolver.resolve(RemoteRef(url))
    
    assert "500" in exc_info.value.message
    assert store.list() == []


async def test_resolve_remote_transport_error(store):
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)
    
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    resolver = Resolver(store, client=client)
    
    with pytest.raises(UpstreamError):
        await resolver.resolve(RemoteRef("https://down.example/a.wav"))
    
    assert store.list() == []


async def test_resolve_many_preserves_order(store):
    a = store.put(b"a")
    url = "https://cdn.example/b.wav"
    resolver = Resolver(store, client=mock_http_client({url: b"b"}))
    
    names = await resolver.resolve_many([LocalRef(a), RemoteRef(url)], purpose="instrumental")
    
    assert names[0] == a
    assert names[1].startswith("instrumental-")
    assert store.get(names[1]) == b"b"


async def test_to_data_uri(store):
    name = store.put(b"ID3data", ext=".mp3")
    uri = Resolver(store).to_data_uri(name)
    
    prefix = "data:audio/mpeg;base64,"
    assert uri.startswith(prefix)
    assert base64.b64decode(uri[len(prefix):]) == b"ID3data"


async def test_to_data_uri_unknown_extension_is_wav(store):
    name = store.put(b"x", ext=".bin")
    assert Resolver(store).to_data_uri(name).startswith("data:audio/wav;base64,")


async def test_to_data_uri_missing(store):
    with pytest.raises(NotFoundError):
        Resolver(store).to_data_uri("gone.wav")
