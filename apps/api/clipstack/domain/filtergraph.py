"""Builders for the ffmpeg filter expressions used by the pipeline.

These functions only produce text; nothing here touches the filesystem or spawns
processes, so the exact graphs can be asserted in tests.
"""

from __future__ import annotations

from pathlib import Path

from clipstack.domain.layouts import TARGET_FRAME, Frame
from clipstack.schemas.job import Layout

WATERMARK_FONT_SIZE = 24
WATERMARK_MARGIN = 20
WATERMARK_ANGLE = "10*PI/180"


def format_seconds(value: float) -> str:
    return f"{value:.3f}"


def mix_audio_graph(bgm_volume: float) -> str:
    """Primary track at full volume, BGM attenuated, output length follows the primary."""
    return (
        "[0:a]volume=1.0[a0];"
        f"[1:a]volume={bgm_volume:g}[a1];"
        "[a0][a1]amix=inputs=2:duration=first"
    )


def _fit(cell: Frame) -> str:
    return (
        f"scale={cell.width}:{cell.height}:force_original_aspect_ratio=decrease,"
        f"pad={cell.width}:{cell.height}:(ow-iw)/2:(oh-ih)/2"
    )


def layout_graph(layout: Layout, duration: float, frame: Frame = TARGET_FRAME) -> str:
    """Scale+pad both inputs into half frames, hold B for A's duration and stack them."""
    cell = frame.cell(layout)
    stack = "vstack" if layout is Layout.STACK_VERTICAL else "hstack"
    return (
        f"[0:v]{_fit(cell)}[first];"
        f"[1:v]{_fit(cell)},loop=loop=-1:size=1:start=0,setpts=N/FRAME_RATE/TB[second];"
        f"[first][second]{stack}=inputs=2[stacked];"
        f"[stacked]trim=duration={format_seconds(duration)}[v]"
    )


def escape_filter_path(path: Path | str) -> str:
    text = str(path).replace("\\", "/")
    return text.replace(":", "\\:").replace("'", "\\'")


def subtitles_filter(srt_path: Path | str) -> str:
    return f"subtitles={escape_filter_path(srt_path)}"


def escape_drawtext(text: str) -> str:
    return text.replace("\\", "\\\\").replace(":", "\\:").replace("%", "\\%").replace("'", "'\\''")


def watermark_graph(text: str, duration: float) -> str:
    """Rotated translucent text badge anchored bottom-right for the whole clip.

    The text is drawn on its own transparent canvas and rotated there, so the output
    keeps the composite's frame size.
    """
    canvas_width = max(200, WATERMARK_FONT_SIZE * len(text))
    canvas_height = WATERMARK_FONT_SIZE * 3
    seconds = format_seconds(duration)
    return (
        f"color=c=black@0.0:s={canvas_width}x{canvas_height}:d={seconds},format=rgba,"
        f"drawtext=text='{escape_drawtext(text)}':fontsize={WATERMARK_FONT_SIZE}:fontcolor=white@0.6:"
        "x=(w-tw)/2:y=(h-th)/2:box=1:boxcolor=black@0.3:boxborderw=5,"
        f"rotate={WATERMARK_ANGLE}:c=none:ow=rotw({WATERMARK_ANGLE}):oh=roth({WATERMARK_ANGLE})[wm];"
        f"[0:v][wm]overlay=x=W-w-{WATERMARK_MARGIN}:y=H-h-{WATERMARK_MARGIN}:"
        f"enable='between(t,0,{seconds})',format=yuv420p[v]"
    )
