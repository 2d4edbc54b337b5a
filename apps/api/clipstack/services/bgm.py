"""Background music pool."""

from pathlib import Path
import random

_AUDIO_SUFFIXES = frozenset({".mp3", ".wav", ".m4a"})


class BgmLibrary:
    def __init__(self, directory: Path, *, rng: random.Random | None = None) -> None:
        self._directory = directory
        self._rng = rng or random.Random()

    def tracks(self) -> list[Path]:
        if not self._directory.is_dir():
            return []
        return sorted(
            path
            for path in self._directory.iterdir()
            if path.is_file() and path.suffix.lower() in _AUDIO_SUFFIXES
        )

    def pick(self) -> Path | None:
        tracks = self.tracks()
        if not tracks:
            return None
        return self._rng.choice(tracks)
