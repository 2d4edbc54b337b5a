"""Filter graph builder tests."""

from __future__ import annotations

from pathlib import Path
import unittest

from clipstack.domain import filtergraph
from clipstack.domain.layouts import TARGET_FRAME, parse_layout
from clipstack.schemas.job import Layout


class LayoutGraphTests(unittest.TestCase):
    def test_vertical_stack_uses_half_height_cells(self) -> None:
        graph = filtergraph.layout_graph(Layout.STACK_VERTICAL, 12.5)

        self.assertIn("[0:v]scale=1080:960:force_original_aspect_ratio=decrease,pad=1080:960:(ow-iw)/2:(oh-ih)/2[first]", graph)
        self.assertIn("loop=loop=-1:size=1:start=0,setpts=N/FRAME_RATE/TB[second]", graph)
        self.assertIn("[first][second]vstack=inputs=2[stacked]", graph)
        self.assertTrue(graph.endswith("[stacked]trim=duration=12.500[v]"))

    def test_horizontal_stack_uses_half_width_cells(self) -> None:
        graph = filtergraph.layout_graph(Layout.STACK_HORIZONTAL, 3)

        self.assertIn("scale=540:1920:", graph)
        self.assertIn("hstack=inputs=2", graph)

    def test_cells_fill_target_frame(self) -> None:
        for layout in Layout:
            with self.subTest(layout=layout):
                cell = TARGET_FRAME.cell(layout)
                if layout is Layout.STACK_VERTICAL:
                    self.assertEqual((cell.width, cell.height * 2), (1080, 1920))
                else:
                    self.assertEqual((cell.width * 2, cell.height), (1080, 1920))

    def test_layout_aliases(self) -> None:
        self.assertIs(parse_layout("A_top_B_bottom"), Layout.STACK_VERTICAL)
        self.assertIs(parse_layout("A_left_B_right"), Layout.STACK_HORIZONTAL)
        self.assertIs(parse_layout(" stack_horizontal "), Layout.STACK_HORIZONTAL)
        self.assertIsNone(parse_layout("diagonal"))


class AudioAndOverlayGraphTests(unittest.TestCase):
    def test_mix_graph_keeps_primary_length(self) -> None:
        self.assertEqual(
            filtergraph.mix_audio_graph(0.25),
            "[0:a]volume=1.0[a0];[1:a]volume=0.25[a1];[a0][a1]amix=inputs=2:duration=first",
        )

    def test_subtitle_paths_are_escaped(self) -> None:
        self.assertEqual(
            filtergraph.subtitles_filter(Path("C:/clips/it's.srt")),
            "subtitles=C\\:/clips/it\\'s.srt",
        )

    def test_watermark_overlays_without_resizing_frame(self) -> None:
        graph = filtergraph.watermark_graph("50%: off", 8)

        self.assertIn("text='50\\%\\: off'", graph)
        self.assertIn("d=8.000", graph)
        self.assertIn("[0:v][wm]overlay=x=W-w-20:y=H-h-20", graph)
        self.assertTrue(graph.endswith("format=yuv420p[v]"))
        self.assertNotIn("[0:v]rotate", graph)

    def test_watermark_quotes_close_and_reopen_the_quoted_text(self) -> None:
        self.assertEqual(filtergraph.escape_drawtext("it's"), "it'\\''s")
        self.assertEqual(filtergraph.escape_drawtext("a\\'b"), "a\\\\'\\''b")
        self.assertIn("text='it'\\''s'", filtergraph.watermark_graph("it's", 5))


if __name__ == "__main__":
    unittest.main()
