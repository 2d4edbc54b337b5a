"""Best-effort transcription tests."""

from __future__ import annotations

from pathlib import Path
import tempfile
import unittest

from clipstack.adapters.media import Transcriber
from media_fakes import SAMPLE_SRT, ScriptedRunner


class TranscriberTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name)
        self.audio = self.root / "job_audio_a.aac"
        self.audio.write_bytes(b"aac")
        self.runner = ScriptedRunner()
        self.transcriber = Transcriber(self.runner, binary="whisper", model="tiny", timeout=30)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    async def test_subtitles_are_read_from_stem_named_file(self) -> None:
        result = await self.transcriber.transcribe(self.audio, self.root)

        self.assertTrue(result.available)
        self.assertEqual(result.subtitle_path, self.root / "job_audio_a.srt")
        self.assertEqual(result.text, SAMPLE_SRT)
        self.assertEqual(
            self.runner.calls[-1],
            ["whisper", str(self.audio), "--model", "tiny", "--output_format", "srt", "--output_dir", str(self.root)],
        )

    async def test_failures_are_absorbed(self) -> None:
        scenarios = {
            "missing binary": lambda runner: runner.missing.add("whisper"),
            "crash": lambda runner: setattr(runner, "transcript", None),
            "timeout-like failure": lambda runner: setattr(runner, "fail_on", "--model"),
        }
        for name, arrange in scenarios.items():
            with self.subTest(name=name):
                runner = ScriptedRunner()
                arrange(runner)
                result = await Transcriber(runner).transcribe(self.audio, self.root)
                self.assertFalse(result.available)
                self.assertEqual(result.text, "")
                self.assertTrue(result.absent_reason)

    async def test_empty_transcript_is_not_available(self) -> None:
        self.runner.transcript = "   \n"
        result = await self.transcriber.transcribe(self.audio, self.root)

        self.assertFalse(result.available)
        self.assertEqual(result.text, "")
        self.assertEqual(result.absent_reason, "empty transcript")


if __name__ == "__main__":
    unittest.main()
