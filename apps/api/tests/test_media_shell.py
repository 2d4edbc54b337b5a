"""ffmpeg adapter tests against a scripted runner."""

from __future__ import annotations

from pathlib import Path
import tempfile
import unittest

from clipstack.adapters.media import MediaShell, MediaToolError, MediaToolNotFoundError
from clipstack.schemas.job import Layout
from media_fakes import ScriptedRunner, probe_text


class MediaShellTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name)
        self.runner = ScriptedRunner()
        self.media = MediaShell(self.runner, binary="ffmpeg", timeout=30)
        self.clip = self.root / "clip.mp4"
        self.clip.write_bytes(b"x" * 2048)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    async def test_probe_mines_diagnostic_output_and_reads_size_from_disk(self) -> None:
        self.runner.probes["clip.mp4"] = probe_text(duration=9.5, width=1280, height=720, fps=25, audio_kbps=96)

        metadata = await self.media.probe(self.clip)

        self.assertEqual(self.runner.calls[-1], ["ffmpeg", "-i", str(self.clip), "-hide_banner"])
        self.assertAlmostEqual(metadata.duration, 9.5)
        self.assertEqual((metadata.width, metadata.height), (1280, 720))
        self.assertEqual(metadata.fps, 25)
        self.assertEqual(metadata.audio_bitrate, 96)
        self.assertEqual(metadata.aspect_ratio, 1.78)
        self.assertEqual(metadata.file_size, 2048)

    async def test_probe_of_unrecognised_file_returns_zeroes(self) -> None:
        self.runner.probes["clip.mp4"] = "clip.mp4: Invalid data found when processing input\n"

        metadata = await self.media.probe(self.clip)

        self.assertEqual(metadata.duration, 0)
        self.assertEqual(metadata.width, 0)
        self.assertEqual(metadata.file_size, 2048)

    async def test_missing_binary_is_a_hard_failure(self) -> None:
        self.runner.missing.add("ffmpeg")
        with self.assertRaises(MediaToolNotFoundError):
            await self.media.probe(self.clip)

    async def test_non_zero_exit_carries_stderr(self) -> None:
        self.runner.fail_on = "-vn"
        with self.assertRaises(MediaToolError) as context:
            await self.media.extract_audio(self.clip, self.root / "audio.aac")
        self.assertIn("simulated failure", str(context.exception))
        self.assertIn("simulated failure", context.exception.diagnostics)

    async def test_merge_layout_command(self) -> None:
        output = self.root / "merged.mp4"
        await self.media.merge_layout(self.clip, self.clip, output, layout=Layout.STACK_VERTICAL, duration=7.25)

        argv = self.runner.calls[-1]
        self.assertEqual(argv[argv.index("-t") + 1], "7.250")
        self.assertIn("vstack=inputs=2", argv[argv.index("-filter_complex") + 1])
        self.assertEqual(argv[-2:], [str(output), "-y"])
        self.assertTrue(output.exists())

    async def test_final_mux_maps_watermarked_video_and_soundtrack(self) -> None:
        audio = self.root / "mix.aac"
        await self.media.mux_final(self.clip, audio, self.root / "final.mp4", watermark_text="wm", duration=4)

        argv = self.runner.calls[-1]
        self.assertEqual(argv[argv.index("-map") + 1], "[v]")
        self.assertIn("1:a", argv)
        self.assertEqual(argv[argv.index("-b:a") + 1], "192k")
        self.assertIn(str(audio), argv)

    async def test_thumbnail_seeks_to_fraction_of_duration(self) -> None:
        await self.media.extract_thumbnail(self.clip, self.root / "thumb.jpg", time_fraction=0.3, duration=20)

        argv = self.runner.calls[-1]
        self.assertEqual(argv[:3], ["ffmpeg", "-ss", "6.000"])
        self.assertIn("-vframes", argv)

    async def test_thumbnail_probes_when_duration_unknown(self) -> None:
        self.runner.probes["clip.mp4"] = probe_text(duration=10)
        await self.media.extract_thumbnail(self.clip, self.root / "thumb.jpg")

        self.assertEqual(self.runner.calls[0][-1], "-hide_banner")
        self.assertEqual(self.runner.calls[1][2], "3.000")


if __name__ == "__main__":
    unittest.main()
