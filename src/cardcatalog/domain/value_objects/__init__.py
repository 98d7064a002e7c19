"""Domain value objects."""

from collections.abc import Iterable
from pathlib import Path

# Hey future me - this is the single source of truth for "what counts as audio".
# Playlists (.m3u/.m3u8) report a duration to some tag readers but are NOT audio,
# so they must never end up in here.
AUDIO_EXTENSIONS = frozenset(
    {
        ".aac",
        ".aif",
        ".aiff",
        ".alac",
        ".ape",
        ".flac",
        ".m4a",
        ".mp3",
        ".mp4",
        ".mpc",
        ".ogg",
        ".oga",
        ".opus",
        ".wav",
        ".wma",
        ".wv",
    }
)

PLAYLIST_EXTENSIONS = frozenset({".m3u", ".m3u8", ".pls"})


def normalize_extensions(extensions: Iterable[str]) -> frozenset[str]:
    """Lower-case extensions and make sure each starts with a dot."""
    normalized = set()
    for ext in extensions:
        ext = ext.strip().lower()
        if not ext:
            continue
        normalized.add(ext if ext.startswith(".") else f".{ext}")
    return frozenset(normalized - PLAYLIST_EXTENSIONS)


def is_audio_file(path: Path, extensions: frozenset[str] = AUDIO_EXTENSIONS) -> bool:
    """Check a path against the audio extension allow-list."""
    return path.suffix.lower() in extensions
