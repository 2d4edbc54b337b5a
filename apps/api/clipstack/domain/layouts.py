"""Output frame geometry and layout name handling."""

from dataclasses import dataclass

from clipstack.schemas.job import Layout

_LAYOUT_ALIASES: dict[str, Layout] = {
    "A_top_B_bottom": Layout.STACK_VERTICAL,
    "A_left_B_right": Layout.STACK_HORIZONTAL,
}


@dataclass(frozen=True, slots=True)
class Frame:
    width: int
    height: int

    def cell(self, layout: Layout) -> "Frame":
        """Size of each half of the composite for ``layout``."""
        if layout is Layout.STACK_VERTICAL:
            return Frame(self.width, self.height // 2)
        return Frame(self.width // 2, self.height)


# Single supported portrait target (TikTok).
TARGET_FRAME = Frame(width=1080, height=1920)


def parse_layout(value: str) -> Layout | None:
    """Resolve a submitted layout name, accepting the legacy A/B names."""
    normalized = value.strip()
    if normalized in _LAYOUT_ALIASES:
        return _LAYOUT_ALIASES[normalized]
    try:
        return Layout(normalized)
    except ValueError:
        return None
