import math
from collections.abc import Mapping

from lumen.constants import FALLBACK_WIDTH, HIRES_SOURCE
from lumen.exceptions import ConfigError
from lumen.types import ResolutionDict, SizeLimit


def expand_resolutions(
    target_widths: Mapping[int, int],
    source_width: int,
    source_height: int,
    max_resolution: float = 2.0,
    resolution_step: float = 0.5,
    max_width: SizeLimit = HIRES_SOURCE,
    max_height: SizeLimit = HIRES_SOURCE,
    allow_upscale: bool = False,
) -> ResolutionDict:
    """
    Expands each viewport's target width into pixel-density variants
    (1x, 1.5x, 2x...) that fit within the source image and the size limits.

    Candidates wider than the effective max width, or taller than the max
    height once reproportioned, are dropped. The viewport-0 entry always
    ends up with at least one width.
    """
    if resolution_step <= 0:
        raise ConfigError(f"Resolution step must be positive, not {resolution_step}")
    if max_resolution < 1:
        raise ConfigError(f"Max resolution must be at least 1, not {max_resolution}")
    if source_width <= 0 or source_height <= 0:
        raise ConfigError(f"Invalid source size {source_width}x{source_height}")

    width_limit = effective_max_width(source_width, max_width, allow_upscale)
    if max_height == HIRES_SOURCE:
        height_limit = source_height
    else:
        height_limit = max_height

    densities = _densities(max_resolution, resolution_step)
    result: ResolutionDict = {}
    for viewport, image_width in target_widths.items():
        result[viewport] = {}
        for density in densities:
            candidate = math.floor(image_width * density)
            if width_limit is not None and candidate > width_limit:
                continue
            if height_limit:
                height = math.floor(candidate * source_height / source_width)
                if height > height_limit:
                    continue
            result[viewport][density_key(density)] = candidate

    if not result.get(0):
        fallback = FALLBACK_WIDTH
        if width_limit is not None:
            fallback = min(width_limit, FALLBACK_WIDTH)
        result[0] = {"1": fallback}
    return result


def effective_max_width(
    source_width: int, max_width: SizeLimit, allow_upscale: bool = False
) -> int | None:
    """
    Works out the widest variant we may produce. Without upscaling the
    source width is always a bound, whatever the numeric cap says.
    """
    if isinstance(max_width, int) and not isinstance(max_width, bool):
        if allow_upscale:
            return max_width
        return min(source_width, max_width)
    if allow_upscale and max_width is None:
        return None
    return source_width


def density_key(density: float) -> str:
    """
    Stringifies a density so that 1.0 becomes "1" and 1.5 stays "1.5".
    """
    return f"{round(density, 6):g}"


def density_descriptor(key: str) -> str:
    """
    Returns the srcset descriptor suffix for a density key; 1x is implied
    so it gets none.
    """
    if float(key) > 1:
        return f" {key}x"
    return ""


def all_widths(resolutions: ResolutionDict) -> list[int]:
    return sorted({w for entry in resolutions.values() for w in entry.values()})


def smallest_width(resolutions: ResolutionDict) -> int:
    widths = all_widths(resolutions)
    if not widths:
        return FALLBACK_WIDTH
    return widths[0]


def _densities(max_resolution: float, step: float) -> list[float]:
    # Multiply out rather than accumulate so 0.1 steps don't drift
    result = []
    i = 0
    while True:
        density = 1 + i * step
        if density > max_resolution + 1e-9:
            return result
        result.append(round(density, 6))
        i += 1
