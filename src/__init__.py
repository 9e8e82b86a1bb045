"""
lptunes - Terminal album player.
"""

__version__ = "1.0.0"
__author__ = "lptunes Team"
__description__ = "A terminal album player with cover art, search, and keyboard control."

# Import all modules
from . import catalog
from . import config
from . import cover
from . import engine
from . import library
from . import navigator
from . import reconciler
from . import search
from . import session
from . import terminal

# Re-export key classes and functions
from .catalog import Album, EmbeddedCover, SiblingCover, Track, sort_album
from .config import AppConfig, ConfigManager, load_config
from .cover import CoverCache
from .engine import CurrentSong, EngineAdapter, SubprocessEngine, create_engine
from .navigator import TrackNavigator
from .reconciler import PlaybackClock, elapsed_ms, format_time
from .session import Display, PlaybackSession

__all__ = [
    # Catalog
    'Album',
    'EmbeddedCover',
    'SiblingCover',
    'Track',
    'sort_album',

    # Engine
    'CurrentSong',
    'EngineAdapter',
    'SubprocessEngine',
    'create_engine',

    # Session
    'CoverCache',
    'Display',
    'PlaybackClock',
    'PlaybackSession',
    'TrackNavigator',
    'elapsed_ms',
    'format_time',

    # Config
    'AppConfig',
    'ConfigManager',
    'load_config',
]
