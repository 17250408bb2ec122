#!/usr/bin/env python3
"""Cloud Player - Main entry point."""

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import List, Optional

from cloudplayer.config import get_config
from cloudplayer.credentials import CredentialStore
from cloudplayer.events import EventBus
from cloudplayer.exceptions import AuthError, CloudPlayerError
from cloudplayer.logging import AppLogger, get_logger
from cloudplayer.models import format_time

logger = get_logger(__name__)


class PlayerSession:
    """One playback session: wires the core to the proxy client and a GStreamer sink."""

    def __init__(self, config, credentials: CredentialStore, sink=None):
        from cloudplayer.api import ProxyClient
        from cloudplayer.library_store import LibraryStore
        from cloudplayer.play_queue import PlayQueue
        from cloudplayer.playback_controller import PlaybackController
        from cloudplayer.playback_engine import PlaybackEngine

        if sink is None:
            from cloudplayer.gst_sink import GstSink
            sink = GstSink()

        self.events = EventBus()
        self.client = ProxyClient(config.proxy_url, credentials, timeout=config.request_timeout)
        self.store = LibraryStore(self.events)
        self.queue = PlayQueue(self.store, self.events)
        self.engine = PlaybackEngine(
            self.events, sink, self.client.fetch_audio_bytes, resource_dir=config.stream_dir
        )
        self.controller = PlaybackController(self.store, self.queue, self.engine, self.events)
        self.engine.set_volume(config.get_float('audio', 'volume', 1.0))

        # Set once nothing more will play: natural end of the queue, or a failure
        self.finished = asyncio.Event()
        self.failed = False
        self.events.subscribe(EventBus.TRACK_CHANGED, self._on_track_changed)
        self.events.subscribe(EventBus.PLAYER_PROGRESS, self._on_progress)
        self.events.subscribe(EventBus.PLAYER_ENDED, lambda _: self.finished.set())
        self.events.subscribe(EventBus.PLAYER_FAILED, self._on_failed)
        self.events.subscribe(EventBus.PLAYER_STATE_CHANGED, self._on_state_changed)

    def _on_track_changed(self, track) -> None:
        if track is None:
            return
        album = self.store.album_for(track)
        print(f"\n> {track.title} - {self.store.artist_for(track)}"
              f"{f' ({album.name})' if album and album.name else ''}")

    def _on_progress(self, data) -> None:
        sys.stdout.write(
            f"\r  {format_time(data['current_time'])} / {format_time(data['duration'])}"
        )
        sys.stdout.flush()

    def _on_failed(self, data) -> None:
        print(f"\n! {data['message']}", file=sys.stderr)

    def _on_state_changed(self, data) -> None:
        from cloudplayer.playback_engine import EngineState

        state = data["state"]
        if state == EngineState.FAILED:
            self.failed = True
        if state in (EngineState.FAILED, EngineState.DESTROYED):
            self.finished.set()

    async def close(self) -> None:
        self.controller.cleanup()
        await self.client.close()


async def _play(args, config, credentials: CredentialStore, sink=None) -> int:
    from cloudplayer.play_queue import RepeatMode

    repeat = args.repeat or config.get('playback', 'repeat', 'off')
    try:
        repeat_mode = RepeatMode(repeat)
    except ValueError:
        print(f"Invalid repeat mode {repeat!r} (expected off, track or queue)", file=sys.stderr)
        return 1

    session = PlayerSession(config, credentials, sink=sink)
    try:
        session.store.init(await session.client.fetch_metadata())

        if args.query:
            matches = session.store.filter(args.query)
            if not matches:
                print(f"No tracks match {args.query!r}")
                return 1
            session.queue.set_queue([t.id for t in matches])

        session.queue.set_repeat_mode(repeat_mode)
        session.queue.set_shuffle(args.shuffle)

        first = args.track or next(iter(session.queue.queue), None)
        if first is None:
            print("Library is empty")
            return 1
        if not await session.controller.play_track(first):
            print(f"Unknown track: {first}")
            return 1
        await session.finished.wait()
        print()
        return 1 if session.failed else 0
    except AuthError as e:
        credentials.clear()
        print(f"Authentication failed ({e}); run 'login' again", file=sys.stderr)
        return 2
    finally:
        await session.close()


async def _list(args, config, credentials: CredentialStore) -> int:
    from cloudplayer.api import ProxyClient
    from cloudplayer.library_store import LibraryStore

    store = LibraryStore(EventBus())
    async with ProxyClient(config.proxy_url, credentials, timeout=config.request_timeout) as client:
        try:
            store.init(await client.fetch_metadata())
        except AuthError as e:
            credentials.clear()
            print(f"Authentication failed ({e}); run 'login' again", file=sys.stderr)
            return 2
    for track in store.filter(args.query or ""):
        print(f"{track.id}\t{format_time(track.duration)}\t{track.title} - {store.artist_for(track)}")
    return 0


async def _upload(manifest, config, credentials: CredentialStore) -> None:
    from cloudplayer.api import ProxyClient

    async with ProxyClient(config.proxy_url, credentials, timeout=config.request_timeout) as client:
        await client.upload_metadata(manifest)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="cloudplayer", description="Cloud music library player")
    sub = parser.add_subparsers(dest="command", required=True)

    login = sub.add_parser("login", help="Store the proxy token")
    login.add_argument("token")
    login.add_argument("--session", action="store_true", help="Do not persist the token")

    sub.add_parser("logout", help="Forget the proxy token")

    play = sub.add_parser("play", help="Play the library")
    play.add_argument("--query", help="Only queue tracks matching this search")
    play.add_argument("--track", help="Start with this track id")
    play.add_argument("--shuffle", action="store_true")
    play.add_argument("--repeat", choices=["off", "track", "queue"])

    lst = sub.add_parser("list", help="List tracks")
    lst.add_argument("--query")

    serve = sub.add_parser("serve", help="Run the byte-range proxy")
    serve.add_argument("--root", type=Path, help="Storage root with db.json, music/ and art/")
    serve.add_argument("--host")
    serve.add_argument("--port", type=int)

    build = sub.add_parser("build-manifest", help="Scan a music folder into db.json")
    build.add_argument("music_dir", type=Path)
    build.add_argument("--art-dir", type=Path, help="Write embedded cover art here")
    build.add_argument("--output", type=Path, help="Write the manifest to this file")
    build.add_argument("--upload", action="store_true", help="PUT the manifest to the proxy")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = _build_parser().parse_args(argv)

    # Initialize config (creates directories, loads settings)
    config = get_config()

    # Initialize logging (uses config for log directory)
    AppLogger(log_dir=config.log_dir)

    credentials = CredentialStore(config.credential_file)

    try:
        if args.command == "login":
            try:
                credentials.set(args.token, remember=not args.session)
            except ValueError as e:
                print(f"Error: {e}", file=sys.stderr)
                return 1
            return 0
        if args.command == "logout":
            credentials.clear()
            return 0
        if args.command == "play":
            return asyncio.run(_play(args, config, credentials))
        if args.command == "list":
            return asyncio.run(_list(args, config, credentials))
        if args.command == "serve":
            from cloudplayer.proxy import run_proxy
            run_proxy(
                args.root or config.storage_root,
                config.server_auth_token,
                host=args.host or config.get('server', 'host', '127.0.0.1'),
                port=args.port or config.get_int('server', 'port', 8787),
            )
            return 0
        if args.command == "build-manifest":
            from cloudplayer.manifest import build_manifest
            manifest = build_manifest(args.music_dir, args.art_dir)
            text = json.dumps(manifest, ensure_ascii=False, indent=2)
            if args.output:
                args.output.write_text(text, encoding="utf-8")
            elif not args.upload:
                print(text)
            if args.upload:
                asyncio.run(_upload(manifest, config, credentials))
            return 0
    except KeyboardInterrupt:
        return 130
    except CloudPlayerError as e:
        logger.error("%s", e)
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 1


if __name__ == '__main__':
    sys.exit(main())
