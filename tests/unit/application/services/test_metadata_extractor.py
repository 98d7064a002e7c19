"""Tests for MetadataExtractor."""

from pathlib import Path
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from mutagen import MutagenError

from cardcatalog.application.services.metadata_extractor import MetadataExtractor
from cardcatalog.domain.exceptions import ExtractionFailed

MUTAGEN_FILE = "cardcatalog.application.services.metadata_extractor.MutagenFile"


def _audio(tags, length=180.4):
    audio = MagicMock()
    audio.info.length = length
    audio.tags = tags
    return audio


class TestMetadataExtractor:
    """Test tag and duration extraction."""

    def test_vorbis_tags(self, mocker):
        """FLAC/OGG style comments map to our fields."""
        mocker.patch(
            MUTAGEN_FILE,
            return_value=_audio(
                {
                    "title": ["Foo"],
                    "artist": ["Bar"],
                    "album": ["Baz"],
                    "tracknumber": ["3/12"],
                }
            ),
        )

        metadata = MetadataExtractor().extract(Path("/music/foo.flac"))

        assert metadata.title == "Foo"
        assert metadata.track == "Foo"
        assert metadata.artist == "Bar"
        assert metadata.album == "Baz"
        assert metadata.track_number == 3
        assert metadata.duration_seconds == 180

    def test_id3_frames(self, mocker):
        """ID3 frames carry their values in .text."""
        mocker.patch(
            MUTAGEN_FILE,
            return_value=_audio(
                {
                    "TIT2": SimpleNamespace(text=["Song"]),
                    "TPE1": SimpleNamespace(text=["Artist"]),
                    "TRCK": SimpleNamespace(text=["7"]),
                }
            ),
        )

        metadata = MetadataExtractor().extract(Path("/music/song.mp3"))

        assert metadata.title == "Song"
        assert metadata.artist == "Artist"
        assert metadata.album is None
        assert metadata.track_number == 7

    def test_mp4_track_tuple(self, mocker):
        mocker.patch(
            MUTAGEN_FILE,
            return_value=_audio({"©nam": ["Tune"], "trkn": [(4, 10)]}),
        )

        metadata = MetadataExtractor().extract(Path("/music/tune.m4a"))

        assert metadata.title == "Tune"
        assert metadata.track_number == 4

    def test_untagged_file_keeps_duration(self, mocker):
        mocker.patch(MUTAGEN_FILE, return_value=_audio(None, length=61.6))

        metadata = MetadataExtractor().extract(Path("/music/raw.wav"))

        assert metadata.title is None
        assert metadata.track_number == 0
        assert metadata.duration_seconds == 62

    def test_garbage_track_number_is_zero(self, mocker):
        mocker.patch(MUTAGEN_FILE, return_value=_audio({"tracknumber": ["A-side"]}))
        assert MetadataExtractor().extract(Path("/m/x.ogg")).track_number == 0

    def test_blank_text_is_none(self, mocker):
        mocker.patch(MUTAGEN_FILE, return_value=_audio({"title": ["  \x00 "]}))
        assert MetadataExtractor().extract(Path("/m/x.ogg")).title is None

    def test_unrecognized_file_fails(self, mocker):
        mocker.patch(MUTAGEN_FILE, return_value=None)
        with pytest.raises(ExtractionFailed):
            MetadataExtractor().extract(Path("/music/notes.mp3"))

    def test_mutagen_error_fails(self, mocker):
        mocker.patch(MUTAGEN_FILE, side_effect=MutagenError("truncated"))
        with pytest.raises(ExtractionFailed) as exc_info:
            MetadataExtractor().extract(Path("/music/broken.mp3"))
        assert "truncated" in exc_info.value.reason

    def test_playlist_rejected_without_opening(self, mocker):
        """A playlist may report a duration, it is still not audio."""
        mutagen_file = mocker.patch(MUTAGEN_FILE)

        with pytest.raises(ExtractionFailed):
            MetadataExtractor().extract(Path("/music/mix.m3u"))

        mutagen_file.assert_not_called()
