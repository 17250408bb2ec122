"""Tests for the proxy client against a live test proxy."""

import asyncio
import json

import pytest
from aiohttp import test_utils

from cloudplayer.api import ProxyClient
from cloudplayer.credentials import CredentialStore
from cloudplayer.exceptions import AuthError, NetworkError, NotFoundError, ValidationError
from cloudplayer.proxy import create_app

TOKEN = 'client-token'


@pytest.fixture
def storage_root(temp_dir, sample_manifest):
    root = temp_dir / 'storage'
    (root / 'music' / 'Artist').mkdir(parents=True)
    (root / 'art').mkdir()
    (root / 'db.json').write_text(json.dumps(sample_manifest))
    (root / 'music' / 's1.mp3').write_bytes(b'audio-s1')
    (root / 'music' / 'Artist' / 'My Song #1.mp3').write_bytes(b'audio-nested')
    (root / 'art' / 'demo.jpg').write_bytes(b'art')
    return root


@pytest.fixture
def credentials():
    store = CredentialStore()
    store.set(TOKEN, remember=False)
    return store


def run_with_client(storage_root, credentials, action):
    """Start a proxy, run action(client) against it and return the result."""
    async def scenario():
        async with test_utils.TestServer(create_app(storage_root, TOKEN)) as server:
            async with ProxyClient(str(server.make_url('')), credentials, timeout=5) as client:
                return await action(client)

    return asyncio.run(scenario())


class TestFetch:
    """Test manifest, audio and art fetches."""

    def test_fetch_metadata(self, storage_root, credentials, sample_manifest):
        metadata = run_with_client(storage_root, credentials, lambda c: c.fetch_metadata())
        assert metadata == sample_manifest

    def test_fetch_audio(self, storage_root, credentials):
        data = run_with_client(storage_root, credentials, lambda c: c.fetch_audio_bytes('s1.mp3'))
        assert data == b'audio-s1'

    def test_fetch_audio_nested_name(self, storage_root, credentials):
        data = run_with_client(
            storage_root, credentials, lambda c: c.fetch_audio_bytes('Artist/My Song #1.mp3')
        )
        assert data == b'audio-nested'

    def test_missing_audio(self, storage_root, credentials):
        with pytest.raises(NotFoundError):
            run_with_client(storage_root, credentials, lambda c: c.fetch_audio_bytes('gone.mp3'))

    def test_empty_file_reference(self, storage_root, credentials):
        with pytest.raises(NotFoundError):
            run_with_client(storage_root, credentials, lambda c: c.fetch_audio_bytes(''))

    def test_art(self, storage_root, credentials):
        assert run_with_client(storage_root, credentials, lambda c: c.fetch_art_bytes('demo.jpg')) == b'art'

    def test_art_failures_are_soft(self, storage_root, credentials):
        assert run_with_client(storage_root, credentials, lambda c: c.fetch_art_bytes('gone.jpg')) is None
        assert run_with_client(storage_root, credentials, lambda c: c.fetch_art_bytes(None)) is None

    def test_invalid_manifest_body(self, storage_root, credentials):
        (storage_root / 'db.json').write_text('{broken')
        with pytest.raises(NetworkError):
            run_with_client(storage_root, credentials, lambda c: c.fetch_metadata())

    def test_non_object_manifest(self, storage_root, credentials):
        (storage_root / 'db.json').write_text('[1, 2]')
        with pytest.raises(NetworkError):
            run_with_client(storage_root, credentials, lambda c: c.fetch_metadata())


class TestAuthHandling:
    """Test credential handling."""

    def test_rejected_token_is_cleared(self, storage_root):
        credentials = CredentialStore()
        credentials.set('stale', remember=False)

        with pytest.raises(AuthError):
            run_with_client(storage_root, credentials, lambda c: c.fetch_metadata())
        assert credentials.get() is None

    def test_missing_token(self, storage_root):
        with pytest.raises(AuthError):
            run_with_client(storage_root, CredentialStore(), lambda c: c.fetch_audio_bytes('s1.mp3'))


class TestUpload:
    """Test manifest upload."""

    def test_upload_then_fetch(self, storage_root, credentials):
        manifest = {"albums": {"x": {"name": "X", "artist": "Y"}}, "tracks": []}

        async def action(client):
            await client.upload_metadata(manifest)
            return await client.fetch_metadata()

        assert run_with_client(storage_root, credentials, action) == manifest

    def test_invalid_upload_not_sent(self, storage_root, credentials, sample_manifest):
        with pytest.raises(ValidationError):
            run_with_client(storage_root, credentials, lambda c: c.upload_metadata({"tracks": []}))
        assert json.loads((storage_root / 'db.json').read_text()) == sample_manifest


class TestTransportErrors:
    """Test unreachable proxies."""

    def test_connection_refused(self, credentials):
        async def scenario():
            async with ProxyClient('http://127.0.0.1:1', credentials, timeout=5) as client:
                await client.fetch_metadata()

        with pytest.raises(NetworkError):
            asyncio.run(scenario())
