import logging
from dataclasses import dataclass
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from lumen.config import Config
from lumen.exceptions import ConfigError, ResizeError, SourceNotFoundError
from lumen.metacache import MemoryMetaCache, MetaCache
from lumen.request import mime_type
from lumen.resolutions import (
    all_widths,
    density_descriptor,
    expand_resolutions,
    smallest_width,
)
from lumen.types import ImageMeta, ResolutionDict
from lumen.widths import Preset, WidthsSpec, coerce_widths, resolve_widths

logger = logging.getLogger(__name__)


class RenderOptions(BaseModel):
    """
    Per-render options. Anything not listed here is rejected; unset values
    fall back to the config defaults.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    file: str = ""
    output_ext: str | None = None
    widths: Any = Preset("full")
    gutter: int = 0
    static: bool = False
    max_resolution: float | None = None
    resolution_step: float | None = None
    max_width: int | Literal["source"] = "source"
    max_height: int | Literal["source"] | None = "source"
    cache_version: str | None = None
    orig_width: int | None = None
    orig_height: int | None = None

    @field_validator("widths", mode="before")
    @classmethod
    def coerce(cls, value) -> WidthsSpec:
        return coerce_widths(value)


@dataclass(frozen=True)
class SourceSet:
    """
    One media-query worth of candidates for a <source> element.
    """

    min_width: int
    candidates: list[tuple[str, str]]
    media_type: str | None

    @property
    def media(self) -> str:
        return f"(min-width: {self.min_width}px)"

    @property
    def srcset(self) -> str:
        return ", ".join(f"{url}{descriptor}" for url, descriptor in self.candidates)


@dataclass(frozen=True)
class ImageSet:
    """
    Everything a template needs to emit a responsive image.
    """

    file: str
    width: int
    height: int
    resolutions: ResolutionDict
    fallback_url: str
    sources: list[SourceSet]
    static_srcset: list[tuple[str, str]]
    sizes: list[str]


class ResponsiveImage:
    """
    Works out which widths of an image a page should reference, and their
    versioned URLs.

    Options passed to load() apply to every later call; options passed to a
    call override them for that call only.
    """

    def __init__(self, config: Config, meta_cache: MetaCache | None = None):
        self.config = config
        self.meta_cache = meta_cache if meta_cache is not None else MemoryMetaCache()
        self.loaded_options: dict[str, Any] = {}

    def load(self, **options) -> "ResponsiveImage":
        """
        Sets options for later calls without reading the image.
        """
        options = _normalize(options)
        # Validate now, but keep them raw so later calls can merge over them
        self.options(**options)
        self.loaded_options = options
        return self

    def options(self, **options) -> RenderOptions:
        merged = {**self.loaded_options, **_normalize(options)}
        try:
            return RenderOptions(**merged)
        except ValidationError as e:
            raise ConfigError(f"Invalid render options: {e}") from e

    def load_meta(self, options: RenderOptions) -> ImageMeta:
        """
        Returns the source image's size, from the metadata cache if it is
        still current.
        """
        if not options.file:
            raise ConfigError('No source file specified. Use "src" or "file" option.')
        if options.orig_width and options.orig_height:
            return {"width": options.orig_width, "height": options.orig_height, "mtime": 0}
        source_path = self.config.source_file(options.file)
        try:
            mtime = int(source_path.stat().st_mtime)
        except FileNotFoundError:
            raise SourceNotFoundError(f"Image not found: {source_path}")
        key = str(source_path.resolve())
        meta = self.meta_cache.get(key)
        if meta is not None and meta["mtime"] == mtime:
            return meta
        try:
            size = self.config.make_transform().load(source_path)
        except ResizeError as e:
            raise SourceNotFoundError(f"Image not readable: {source_path}") from e
        meta = {"width": size["width"], "height": size["height"], "mtime": mtime}
        self.meta_cache.put(key, meta)
        logger.debug(f"Read size of {source_path}: {meta['width']}x{meta['height']}")
        return meta

    def resolution_dict(self, **options) -> ResolutionDict:
        resolved = self.options(**options)
        return self._resolutions(resolved, self.load_meta(resolved))

    def image_url(self, width: int | None = None, **options) -> str:
        """
        Returns one URL; with no width, the smallest one the layout uses.
        """
        resolved = self.options(**options)
        if width is None:
            width = smallest_width(self._resolutions(resolved, self.load_meta(resolved)))
        return self._url(resolved, width)

    def srcset(self, **options) -> list[SourceSet]:
        """
        Returns one SourceSet per non-default viewport, largest first.
        """
        resolved = self.options(**options)
        if resolved.static:
            return []
        return self._sources(resolved, self.resolution_dict(**options))

    def static_srcset(self, **options) -> list[tuple[str, str]]:
        resolved = self.options(**options)
        return self._static_srcset(resolved, self.resolution_dict(**options))

    def sizes(self, **options) -> list[str]:
        return self._sizes(self.resolution_dict(**options))

    def render(self, **options) -> ImageSet:
        """
        Works out everything in one pass, reading the source size once.
        """
        resolved = self.options(**options)
        meta = self.load_meta(resolved)
        resolutions = self._resolutions(resolved, meta)
        return ImageSet(
            file=resolved.file,
            width=meta["width"],
            height=meta["height"],
            resolutions=resolutions,
            fallback_url=self._url(resolved, smallest_width(resolutions)),
            # Static images are a single <img> with width descriptors
            sources=[] if resolved.static else self._sources(resolved, resolutions),
            static_srcset=self._static_srcset(resolved, resolutions),
            sizes=self._sizes(resolutions),
        )

    def _sources(
        self, options: RenderOptions, resolutions: ResolutionDict
    ) -> list[SourceSet]:
        output_ext = options.output_ext or self.config.config_data.default_output_ext
        media_type = mime_type(output_ext) if output_ext in ("webp", "avif") else None
        sources = []
        for viewport, entry in resolutions.items():
            if viewport == 0 or not entry:
                continue
            sources.append(
                SourceSet(
                    min_width=viewport,
                    candidates=[
                        (self._url(options, width), density_descriptor(density))
                        for density, width in entry.items()
                    ],
                    media_type=media_type,
                )
            )
        return sources

    def _static_srcset(
        self, options: RenderOptions, resolutions: ResolutionDict
    ) -> list[tuple[str, str]]:
        return [
            (self._url(options, width), f"{width}w") for width in all_widths(resolutions)
        ]

    def _resolutions(self, options: RenderOptions, meta: ImageMeta) -> ResolutionDict:
        defaults = self.config.config_data
        target_widths = resolve_widths(
            options.widths,
            self.config.containers,
            self.config.breakpoints,
            options.gutter,
        )
        return expand_resolutions(
            target_widths,
            meta["width"],
            meta["height"],
            max_resolution=options.max_resolution or defaults.default_max_resolution,
            resolution_step=options.resolution_step or defaults.default_resolution_step,
            max_width=options.max_width,
            max_height=options.max_height,
            allow_upscale=defaults.allow_upscale,
        )

    def _url(self, options: RenderOptions, width: int) -> str:
        return self.config.image_url(
            options.file,
            width,
            output_ext=options.output_ext,
            version=options.cache_version,
        )

    def _sizes(self, resolutions: ResolutionDict) -> list[str]:
        sizes = []
        for viewport, entry in resolutions.items():
            if viewport == 0 or not entry:
                continue
            sizes.append(f"(min-width: {viewport}px) {next(iter(entry.values()))}px")
        sizes.append(f"{next(iter(resolutions[0].values()))}px")
        return sizes


def _normalize(options: dict[str, Any]) -> dict[str, Any]:
    # "src" is accepted as a synonym for "file"
    if "src" in options:
        options = dict(options)
        options["file"] = options.pop("src")
    return options
