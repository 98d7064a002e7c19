"""Tests for PathEnumerator."""

import os
from pathlib import Path

import pytest

from cardcatalog.application.services.path_enumerator import PathEnumerator


def _touch(path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(b"")
    return path


@pytest.fixture
def library(tmp_path: Path) -> Path:
    root = tmp_path / "music"
    _touch(root / "Artist" / "Album" / "01 - Intro.flac")
    _touch(root / "Artist" / "Album" / "02 - Song.MP3")
    _touch(root / "Artist" / "Album" / "cover.jpg")
    _touch(root / "Artist" / "Album" / "._02 - Song.MP3")
    _touch(root / "Artist" / "mix.m3u")
    _touch(root / ".Trash" / "deleted.flac")
    return root


class TestPathEnumerator:
    """Test library traversal."""

    def test_yields_audio_files_only(self, library: Path):
        paths = list(PathEnumerator().iter_paths([library]))

        assert [p.name for p in paths] == ["01 - Intro.flac", "02 - Song.MP3"]
        assert all(p.is_absolute() for p in paths)

    def test_extension_filter(self, library: Path):
        paths = list(PathEnumerator(extensions=["mp3"]).iter_paths([library]))
        assert [p.name for p in paths] == ["02 - Song.MP3"]

    def test_playlist_extension_is_ignored_even_if_configured(self, library: Path):
        paths = list(PathEnumerator(extensions=["m3u", "flac"]).iter_paths([library]))
        assert [p.name for p in paths] == ["01 - Intro.flac"]

    def test_missing_root_is_recorded_not_raised(self, tmp_path: Path, library: Path):
        enumerator = PathEnumerator()

        paths = list(enumerator.iter_paths([tmp_path / "gone", library]))

        assert len(paths) == 2
        assert len(enumerator.errors) == 1
        assert "gone" in enumerator.errors[0].path

    def test_overlapping_roots_yield_each_path_once(self, library: Path):
        paths = list(PathEnumerator().iter_paths([library, library / "Artist"]))
        assert len(paths) == 2

    def test_restartable(self, library: Path):
        enumerator = PathEnumerator()
        first = list(enumerator.iter_paths([library]))
        second = list(enumerator.iter_paths([library]))
        assert first == second

    @pytest.mark.skipif(not hasattr(os, "symlink"), reason="needs symlinks")
    def test_symlink_cycle_terminates(self, library: Path):
        (library / "Artist" / "loop").symlink_to(library, target_is_directory=True)
        enumerator = PathEnumerator(follow_symlinks=True)

        paths = list(enumerator.iter_paths([library]))

        assert len(paths) == 2
        assert any("cycle" in e.reason for e in enumerator.errors)
