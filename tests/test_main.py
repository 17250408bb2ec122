"""Tests for the command line entry point."""

import argparse
import asyncio
import json

import pytest
from aiohttp import test_utils

import main
from cloudplayer.credentials import CredentialStore
from cloudplayer.proxy import create_app
from tests.conftest import FakeSink
from tests.test_manifest import write_wav

TOKEN = 'cli-token'


class ScriptedSink(FakeSink):
    """Ends each track (or fails it) right after playback starts."""

    def __init__(self, error=None):
        super().__init__()
        self.error = error

    async def play(self) -> None:
        await super().play()
        loop = asyncio.get_running_loop()
        if self.error:
            loop.call_soon(self.on_error, self.error)
        else:
            loop.call_soon(self.finish)


@pytest.fixture
def storage_root(temp_dir, sample_manifest):
    root = temp_dir / 'storage'
    (root / 'music').mkdir(parents=True)
    (root / 'db.json').write_text(json.dumps(sample_manifest))
    # No s2.mp3: advancing from t1 hits a 404
    for name in ('s1.mp3', 's3.mp3', 's4.mp3'):
        (root / 'music' / name).write_bytes(b'ID3' + name.encode())
    return root


def run_play(storage_root, config, sink, track):
    """Run the play command against a local proxy; returns the exit code."""
    credentials = CredentialStore()
    credentials.set(TOKEN, remember=False)
    args = argparse.Namespace(query=None, track=track, shuffle=False, repeat=None)

    async def scenario():
        async with test_utils.TestServer(create_app(storage_root, TOKEN)) as server:
            config.set('proxy', 'url', str(server.make_url('')))
            return await asyncio.wait_for(main._play(args, config, credentials, sink=sink), 5)

    return asyncio.run(scenario())


class TestCommands:
    """Test offline CLI commands."""

    def test_login_and_logout(self, mock_config):
        assert main.main(['login', 'tok-1']) == 0
        assert mock_config.credential_file.read_text() == 'tok-1'

        assert main.main(['logout']) == 0
        assert not mock_config.credential_file.exists()

    def test_session_login_is_not_persisted(self, mock_config):
        assert main.main(['login', 'tok-2', '--session']) == 0
        assert not mock_config.credential_file.exists()

    def test_build_manifest(self, mock_config, temp_dir):
        music = temp_dir / 'music'
        write_wav(music / 'one.wav', title='One', artist='A', album='B')
        output = temp_dir / 'db.json'

        assert main.main(['build-manifest', str(music), '--output', str(output)]) == 0

        manifest = json.loads(output.read_text(encoding='utf-8'))
        assert [t['title'] for t in manifest['tracks']] == ['One']
        assert len(manifest['albums']) == 1

    def test_build_manifest_missing_folder(self, mock_config, temp_dir, capsys):
        assert main.main(['build-manifest', str(temp_dir / 'nope')]) == 1
        assert 'Not a directory' in capsys.readouterr().err

    def test_list_without_login(self, mock_config):
        """Without a credential listing fails before any request."""
        assert main.main(['list']) == 2

    def test_blank_token_is_rejected(self, mock_config, capsys):
        assert main.main(['login', '   ']) == 1
        assert 'Error' in capsys.readouterr().err
        assert not mock_config.credential_file.exists()

    def test_invalid_repeat_setting(self, mock_config, capsys):
        mock_config.set('playback', 'repeat', 'sometimes')
        assert main.main(['play']) == 1
        assert 'Invalid repeat mode' in capsys.readouterr().err


class TestPlay:
    """Test that the play command always returns."""

    def test_last_track_ends_cleanly(self, mock_config, storage_root):
        sink = ScriptedSink()
        assert run_play(storage_root, mock_config, sink, 't4') == 0
        assert len(sink.loaded_uris) == 1

    def test_failed_advance_stops_with_error(self, mock_config, storage_root, capsys):
        """t1 ends, then fetching t2 fails with a 404."""
        sink = ScriptedSink()
        assert run_play(storage_root, mock_config, sink, 't1') == 1
        assert len(sink.loaded_uris) == 1
        assert 's2.mp3' in capsys.readouterr().err

    def test_sink_error_stops_with_error(self, mock_config, storage_root, capsys):
        sink = ScriptedSink(error='decoder crashed')
        assert run_play(storage_root, mock_config, sink, 't1') == 1
        assert 'decoder crashed' in capsys.readouterr().err

    def test_sink_closed_after_play(self, mock_config, storage_root):
        sink = ScriptedSink()
        run_play(storage_root, mock_config, sink, 't3')
        assert sink.close_count >= 1
