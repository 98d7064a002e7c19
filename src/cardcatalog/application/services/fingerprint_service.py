"""Chromaprint fingerprinting via the fpcalc binary."""

import json
import logging
import shutil
import subprocess
from pathlib import Path

from cardcatalog.config.settings import FingerprintSettings
from cardcatalog.domain.entities import AudioFingerprint
from cardcatalog.domain.exceptions import ConfigurationError, FingerprintFailed
from cardcatalog.domain.ports import IFingerprintComputer

logger = logging.getLogger(__name__)


class FingerprintService(IFingerprintComputer):
    """Compute fingerprints with fpcalc (chromaprint).

    Hey future me - compute() BLOCKS (fpcalc decodes the audio with ffmpeg, easily a second
    per file). The pipeline runs it on the CPU thread pool, never on the event loop.
    Each call re-opens the file on its own, so a decode crash here doesn't take the
    metadata we already read down with it.
    """

    def __init__(self, settings: FingerprintSettings) -> None:
        self.settings = settings

    def check_available(self) -> None:
        """Fail fast if fpcalc is missing - otherwise EVERY file would fail the same way.

        Raises:
            ConfigurationError: If the fpcalc binary can't be found
        """
        if shutil.which(self.settings.fpcalc_path) is None:
            raise ConfigurationError(
                f"fpcalc binary not found ({self.settings.fpcalc_path}). Install chromaprint: "
                "apt-get install libchromaprint-tools (Debian/Ubuntu) or "
                "brew install chromaprint (macOS)"
            )

    def compute(self, path: Path) -> AudioFingerprint:
        """Run fpcalc on one file.

        Args:
            path: Audio file

        Returns:
            Fingerprint and full-file duration (whole seconds)

        Raises:
            FingerprintFailed: fpcalc missing, timed out, failed or printed garbage
        """
        cmd = [
            self.settings.fpcalc_path,
            "-json",
            "-length",
            str(self.settings.length_seconds),
            str(path),
        ]
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=self.settings.timeout_seconds,
                check=False,
            )
        except FileNotFoundError as e:
            raise FingerprintFailed(path, f"fpcalc not found: {e}") from e
        except subprocess.TimeoutExpired as e:
            raise FingerprintFailed(
                path, f"fpcalc timed out after {self.settings.timeout_seconds}s"
            ) from e
        except OSError as e:
            raise FingerprintFailed(path, f"fpcalc could not be started: {e}") from e

        if result.returncode != 0:
            stderr = result.stderr.strip().splitlines()
            reason = stderr[-1] if stderr else f"exit code {result.returncode}"
            raise FingerprintFailed(path, f"fpcalc failed: {reason}")

        try:
            data = json.loads(result.stdout)
            fingerprint = data["fingerprint"]
            duration = float(data["duration"])
        except (ValueError, KeyError, TypeError) as e:
            raise FingerprintFailed(path, f"unreadable fpcalc output: {e}") from e

        if not fingerprint:
            raise FingerprintFailed(path, "fpcalc returned an empty fingerprint")

        logger.debug(f"Fingerprinted {path}: duration={duration:.1f}s")
        return AudioFingerprint(fingerprint=fingerprint, duration_seconds=round(duration))
