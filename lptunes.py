#!/usr/bin/env python3
"""
lptunes - play a whole album from the terminal.

    lptunes.py --reindex ~/Music    build the database and search index
    lptunes.py "kind of blue"       find one album and play it

While playing: space pauses, n/down and p/up skip, digits jump to a track
number and q quits.
"""

__version__ = "1.0.0"
__author__ = "lptunes Team"
__description__ = "A terminal album player with cover art, search, and keyboard control."

# =============================================================================
# Imports
# =============================================================================
import asyncio
import locale
import signal
import sys
from pathlib import Path
from typing import List, Optional

from logging_config import setup_logging, get_logger, LpTunesError
from src.catalog import sort_album, Album
from src.config import ConfigManager, load_config
from src.engine import create_engine
from src.library import INDEX_FILE, load_database, reindex
from src.search import SearchIndex
from src.session import PlaybackSession
from src.terminal import KeyReader, TerminalImageProtocol, TerminalRenderer

logger = get_logger('main')

USAGE = """Usage:
  python3 lptunes.py <query>            # Play the album matching <query>
  python3 lptunes.py --reindex <dir>    # Rebuild the database from <dir>
  python3 lptunes.py --version          # Show version info
  python3 lptunes.py --help             # Show this help"""


# =============================================================================
# Album lookup
# =============================================================================
def find_album(manager: ConfigManager, query: str) -> Optional[Album]:
    """Look up exactly one album; print why not and return None otherwise."""
    database_dir = manager.get_database_directory_path()
    albums = load_database(database_dir)
    index = SearchIndex.open(database_dir / INDEX_FILE)
    try:
        results = index.search(query)
    finally:
        index.close()

    if not results:
        print("Found no albums")
        return None
    if len(results) > 1:
        print("Found multiple albums:")
        print()
        for ref in results:
            print(f"- {ref}")
        print()
        print("Please narrow your search")
        return None

    tracks = albums.get(results[0])
    if not tracks:
        print(f"Album {results[0]} is missing from the database")
        return None
    return sort_album(tracks)


# =============================================================================
# Playback
# =============================================================================
async def run_session(manager: ConfigManager, album: Album) -> None:
    config = manager.config
    engine = create_engine(config.audio_player)
    engine.init(2, album.best_sample_rate())
    engine.play()
    for track in album:
        engine.queue(track.path)

    loop = asyncio.get_running_loop()
    renderer = TerminalRenderer(
        sys.stdout,
        cover_width=config.cover_width,
        use_colors=config.use_colors,
        image_protocol=TerminalImageProtocol.detect(config.image_protocol),
    )
    session = PlaybackSession(engine, album, renderer, loop, config=config)
    reader = KeyReader(loop, sys.stdin.fileno(), session.handle_key)
    session.key_reader = reader

    for sig in (signal.SIGINT, signal.SIGTERM, signal.SIGHUP):
        loop.add_signal_handler(sig, session.quit)
    try:
        reader.start()
        await session.open()
    finally:
        reader.close()
        for sig in (signal.SIGINT, signal.SIGTERM, signal.SIGHUP):
            loop.remove_signal_handler(sig)
        engine.close()
        print()


def play(manager: ConfigManager, query: str) -> int:
    if not sys.stdin.isatty():
        print("Error: Must run in interactive terminal")
        return 1

    album = find_album(manager, query)
    if album is None:
        return 1
    asyncio.run(run_session(manager, album))
    return 0


def run_reindex(manager: ConfigManager, directory: str) -> int:
    music_dir = Path(directory).expanduser()
    if not music_dir.is_dir():
        print(f"Error: Not a directory: {music_dir}")
        return 1
    counts = reindex(music_dir, manager.get_database_directory_path())
    print(f"Indexed {counts['tracks']} tracks in {counts['albums']} albums "
          f"({counts['covers']} covers)")
    return 0


# =============================================================================
# Main Function
# =============================================================================
def main(argv: Optional[List[str]] = None) -> int:
    """Entry point; returns the process exit status."""
    args = sys.argv[1:] if argv is None else argv

    if "--version" in args or "-v" in args:
        print(f"lptunes {__version__}")
        print(f"{__description__}")
        return 0
    if not args or "--help" in args or "-h" in args:
        print(f"lptunes {__version__}")
        print("")
        print(USAGE)
        return 0 if args else 1

    try:
        # album order collates titles with the user's locale
        locale.setlocale(locale.LC_COLLATE, "")
    except locale.Error as e:
        logger.debug(f"Keeping C collation: {e}")

    manager = load_config()
    config = manager.config
    reindexing = args[0] == "--reindex"

    try:
        manager.require_valid()
        # the playback panel owns the terminal, so it only logs to a file
        setup_logging(config.log_level,
                      Path(config.log_file).expanduser() if config.log_file else None,
                      console=reindexing)
        if reindexing:
            if len(args) < 2:
                print(USAGE)
                return 1
            return run_reindex(manager, args[1])
        return play(manager, " ".join(args))
    except LpTunesError as e:
        print(f"Error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
