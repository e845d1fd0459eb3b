"""Calendar color handling for Calmirror."""

from collections.abc import Sequence
from dataclasses import dataclass

# Native colors are device color-space channel tuples, e.g. (r, g, b, alpha)
NativeColor = tuple[float, ...]

# Shown for calendars that never reported a color
FALLBACK_SWATCH = (255, 204, 0)


@dataclass(frozen=True)
class RGB:
    """A normalized color with each channel in [0, 1]."""

    red: float
    green: float
    blue: float

    def to_hex(self) -> str:
        """Render as a #rrggbb string."""
        return "#" + "".join(f"{round(c * 255):02x}" for c in self.channels())

    def channels(self) -> tuple[float, float, float]:
        return (self.red, self.green, self.blue)


def resolve_color(native: Sequence[float] | None) -> RGB | None:
    """Convert a provider-native color into an RGB value.

    The first three channels are copied as-is; no clamping or gamma
    correction is applied.
    """
    if native is None:
        return None
    if len(native) < 3:
        raise ValueError(f"Expected at least 3 color channels, got {len(native)}")
    return RGB(red=float(native[0]), green=float(native[1]), blue=float(native[2]))


def parse_hex_color(value: str | None) -> NativeColor | None:
    """Parse a Google-style hex color ("#1a73e8") into a native channel tuple."""
    if not value:
        return None

    digits = value.lstrip("#")
    if len(digits) == 3:
        digits = "".join(d * 2 for d in digits)
    if len(digits) != 6:
        raise ValueError(f"Invalid hex color: {value!r}")

    channels = [int(digits[i : i + 2], 16) / 255 for i in (0, 2, 4)]
    return (channels[0], channels[1], channels[2], 1.0)


def ansi_swatch(rgb: RGB | None, text: str) -> str:
    """Wrap text in a 24-bit ANSI background of the given color."""
    if rgb is None:
        red, green, blue = FALLBACK_SWATCH
    else:
        red, green, blue = (min(255, max(0, round(c * 255))) for c in rgb.channels())
    return f"\033[48;2;{red};{green};{blue}m\033[97m {text} \033[0m"
