"""Read tags and duration from audio files with mutagen."""

import logging
from pathlib import Path
from typing import Any

from mutagen import File as MutagenFile  # type: ignore[attr-defined]
from mutagen import MutagenError

from cardcatalog.domain.entities import TrackMetadata
from cardcatalog.domain.exceptions import ExtractionFailed
from cardcatalog.domain.value_objects import PLAYLIST_EXTENSIONS

logger = logging.getLogger(__name__)

# Hey future me - one flat map for all three tag families mutagen hands us. First hit wins
# per field, which is why TIT2/TPE1 come before the Vorbis keys: an MP3 never has Vorbis
# comments, a FLAC never has ID3 frames, so order only matters inside one family.
TAG_MAPPINGS = {
    # ID3 (MP3, AIFF, WAV)
    "TIT2": "title",
    "TPE1": "artist",
    "TALB": "album",
    "TRCK": "track_number",
    # Vorbis comments (FLAC, OGG, Opus)
    "title": "title",
    "artist": "artist",
    "album": "album",
    "tracknumber": "track_number",
    # MP4 (M4A, ALAC)
    "©nam": "title",
    "©ART": "artist",
    "©alb": "album",
    "trkn": "track_number",
    # APEv2 (Musepack, WavPack, Monkey's Audio)
    "Title": "title",
    "Artist": "artist",
    "Album": "album",
    "Track": "track_number",
}


def _first_value(value: Any) -> Any:
    """Unwrap mutagen's list/frame containers to a single value."""
    if isinstance(value, list):
        value = value[0] if value else None
    if hasattr(value, "text"):
        text = value.text
        value = text[0] if isinstance(text, list) and text else text
    return value


def _parse_track_number(value: Any) -> int:
    # "3/12" (ID3/Vorbis), (3, 12) (MP4)
    if isinstance(value, tuple):
        value = value[0] if value else 0
    if isinstance(value, str):
        value = value.split("/")[0].strip()
    try:
        number = int(str(value))
    except (ValueError, TypeError):
        return 0
    return max(number, 0)


def _clean_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).replace("\x00", "").strip()
    return text or None


class MetadataExtractor:
    """Produces a TrackMetadata record for one file."""

    def extract(self, path: Path) -> TrackMetadata:
        """Read tags and duration.

        Args:
            path: File to read

        Returns:
            Metadata, text fields None and numbers 0 where absent

        Raises:
            ExtractionFailed: File unreadable or not audio
        """
        if path.suffix.lower() in PLAYLIST_EXTENSIONS:
            raise ExtractionFailed(path, "playlist file, not audio")

        try:
            audio = MutagenFile(path)
        except (MutagenError, OSError) as e:
            raise ExtractionFailed(path, str(e)) from e

        if audio is None:
            raise ExtractionFailed(path, "not a recognized audio file")

        duration = 0
        length = getattr(getattr(audio, "info", None), "length", None)
        if length:
            duration = max(round(length), 0)

        fields = self._extract_tags(audio.tags) if getattr(audio, "tags", None) else {}
        title = fields.get("title")
        return TrackMetadata(
            title=title,
            artist=fields.get("artist"),
            album=fields.get("album"),
            track=title,
            track_number=fields.get("track_number", 0),
            duration_seconds=duration,
        )

    def _extract_tags(self, audio_tags: Any) -> dict[str, Any]:
        """Map format-specific tag keys to our field names."""
        tags: dict[str, Any] = {}
        for tag_key, field_name in TAG_MAPPINGS.items():
            if field_name in tags:
                continue
            try:
                if tag_key not in audio_tags:
                    continue
                raw = audio_tags[tag_key]
            except (KeyError, ValueError):
                # Vorbis keys reject some characters (©) - just means "not this family"
                continue

            value = _first_value(raw)
            if field_name == "track_number":
                tags[field_name] = _parse_track_number(value)
            else:
                text = _clean_text(value)
                if text is not None:
                    tags[field_name] = text
        return tags
