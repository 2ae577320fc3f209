import math
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field

from lumen.constants import WIDTH_PRESETS
from lumen.exceptions import ConfigError


@dataclass(frozen=True)
class Preset:
    """
    A named fraction of the container width ("full", "half", ...)
    """

    name: str

    @property
    def fraction(self) -> float:
        try:
            return WIDTH_PRESETS[self.name]
        except KeyError:
            raise ConfigError(f"Unknown widths preset: {self.name}")


@dataclass(frozen=True)
class Fraction:
    """
    An arbitrary fraction of the container width, in (0, 1]
    """

    fraction: float

    def __post_init__(self):
        if not 0 < self.fraction <= 1:
            raise ConfigError(f"Width fraction must be in (0, 1], not {self.fraction}")


@dataclass(frozen=True)
class Explicit:
    """
    Caller-supplied viewport -> width mapping; no computation is done.
    """

    widths: Mapping[int, int]


@dataclass(frozen=True)
class Builder:
    """
    Per-viewport fractions collected by a WidthsBuilder.
    """

    breakpoints: Mapping[int, float] = field(default_factory=dict)


WidthsSpec = Preset | Fraction | Explicit | Builder


class WidthsBuilder:
    """
    Fluent builder for responsive width breakpoints.

        WidthsBuilder().full().at(800, "half").at(1024, "third")

    means full container width from 0px, half from 800px and a third from
    1024px upwards.
    """

    def __init__(self):
        self.breakpoints: dict[int, float] = {}

    def at(self, min_width: int, fraction: str | float) -> "WidthsBuilder":
        if isinstance(fraction, str):
            fraction = Preset(fraction).fraction
        self.breakpoints[min_width] = Fraction(fraction).fraction
        return self

    def full(self, min_width: int = 0) -> "WidthsBuilder":
        return self.at(min_width, "full")

    def half(self, min_width: int = 0) -> "WidthsBuilder":
        return self.at(min_width, "half")

    def third(self, min_width: int = 0) -> "WidthsBuilder":
        return self.at(min_width, "third")

    def quarter(self, min_width: int = 0) -> "WidthsBuilder":
        return self.at(min_width, "quarter")

    def two_thirds(self, min_width: int = 0) -> "WidthsBuilder":
        return self.at(min_width, "two-thirds")

    def build(self) -> Builder:
        return Builder(dict(self.breakpoints))


def coerce_widths(value) -> WidthsSpec:
    """
    Turns the loose forms accepted in config files and on the command line
    into a WidthsSpec.
    """
    if isinstance(value, (Preset, Fraction, Explicit, Builder)):
        return value
    if isinstance(value, WidthsBuilder):
        return value.build()
    if isinstance(value, str):
        # Allow "0.5" from the command line as well as preset names
        try:
            return Fraction(float(value))
        except ValueError:
            if value not in WIDTH_PRESETS:
                raise ConfigError(f"Unknown widths preset: {value}")
            return Preset(value)
    if isinstance(value, bool):
        raise ConfigError(f"Invalid widths configuration: {value!r}")
    if isinstance(value, (int, float)):
        return Fraction(float(value))
    if isinstance(value, Mapping):
        return Explicit({int(k): int(v) for k, v in value.items()})
    if isinstance(value, Sequence):
        widths = [int(w) for w in value]
        if not widths:
            raise ConfigError("Explicit widths list is empty")
        explicit = {w: w for w in widths}
        # The smallest width doubles as the default (no media query) entry
        explicit[0] = min(widths)
        return Explicit(explicit)
    raise ConfigError(f"Invalid widths configuration: {value!r}")


def resolve_widths(
    spec: WidthsSpec,
    containers: Mapping[str, int],
    breakpoints: Mapping[str, int],
    gutter: int = 0,
) -> dict[int, int]:
    """
    Resolves a widths spec into an ordered {viewport px: image px} mapping,
    largest viewport first.
    """
    if isinstance(spec, Explicit):
        return _sorted_desc(spec.widths)
    if isinstance(spec, Builder):
        return _resolve_builder(spec, containers, gutter)
    if isinstance(spec, (Preset, Fraction)):
        return _resolve_fraction(spec.fraction, containers, breakpoints, gutter)
    raise ConfigError(f"Invalid widths spec: {spec!r}")


def _resolve_fraction(
    fraction: float,
    containers: Mapping[str, int],
    breakpoints: Mapping[str, int],
    gutter: int,
) -> dict[int, int]:
    if not breakpoints or not containers:
        raise ConfigError("No breakpoints configured")
    widths: dict[int, int] = {}
    for name, viewport in breakpoints.items():
        try:
            container_width = containers[name]
        except KeyError:
            raise ConfigError(f"Breakpoint {name} has no matching container width")
        widths[viewport] = math.floor(container_width * fraction) - gutter
    # Below the smallest breakpoint, the smallest container applies
    widths[0] = math.floor(min(containers.values()) * fraction) - gutter
    return _sorted_desc(widths)


def _resolve_builder(
    spec: Builder, containers: Mapping[str, int], gutter: int
) -> dict[int, int]:
    if not spec.breakpoints:
        raise ConfigError("Widths builder has no breakpoints defined")
    ordered = sorted(spec.breakpoints.items())
    widths: dict[int, int] = {}
    for container_width in containers.values():
        # Largest builder breakpoint <= container wins, else the smallest one
        fraction = ordered[0][1]
        for min_width, candidate in ordered:
            if container_width >= min_width:
                fraction = candidate
        widths[container_width] = max(
            1, math.floor(container_width * fraction) - gutter
        )
    return _sorted_desc(widths)


def _sorted_desc(widths: Mapping[int, int]) -> dict[int, int]:
    return dict(sorted(widths.items(), key=lambda item: item[0], reverse=True))
