import pytest

from lumen.exceptions import ConfigError, SourceNotFoundError
from lumen.layout import RenderOptions, ResponsiveImage
from lumen.metacache import MemoryMetaCache
from lumen.widths import Fraction, Preset, WidthsBuilder

from conftest import SOURCE_MTIME, make_image

PHOTO = "products/photo.jpg"


def url(width, ext="webp", version=SOURCE_MTIME):
    return f"/img/{PHOTO}-w{width}-v{version}.{ext}"


class RecordingMetaCache(MemoryMetaCache):
    """
    Memory cache that remembers which keys were asked for and stored.
    """

    def __init__(self):
        super().__init__()
        self.gets = []
        self.puts = []

    def get(self, key):
        self.gets.append(key)
        return super().get(key)

    def put(self, key, meta):
        self.puts.append(key)
        super().put(key, meta)


@pytest.fixture
def image(counting_config, photo):
    return ResponsiveImage(counting_config)


class TestRender:
    """
    Full layouts against the default containers and breakpoints.
    """

    def test_full_width(self, image):
        image_set = image.render(file=PHOTO)
        assert (image_set.width, image_set.height) == (1200, 800)
        assert image_set.resolutions == {
            1400: {},
            1200: {"1": 1140},
            992: {"1": 960},
            768: {"1": 720, "1.5": 1080},
            576: {"1": 540, "1.5": 810, "2": 1080},
            0: {"1": 540, "1.5": 810, "2": 1080},
        }
        assert image_set.fallback_url == url(540)
        assert image_set.sizes == [
            "(min-width: 1200px) 1140px",
            "(min-width: 992px) 960px",
            "(min-width: 768px) 720px",
            "(min-width: 576px) 540px",
            "540px",
        ]

    def test_sources(self, image):
        sources = image.render(file=PHOTO).sources
        assert [source.min_width for source in sources] == [1200, 992, 768, 576]
        tablet = sources[2]
        assert tablet.media == "(min-width: 768px)"
        assert tablet.media_type == "image/webp"
        assert tablet.candidates == [(url(720), ""), (url(1080), " 1.5x")]
        assert tablet.srcset == f"{url(720)}, {url(1080)} 1.5x"

    def test_jpeg_sources_have_no_type(self, image):
        sources = image.render(file=PHOTO, output_ext="jpg").sources
        assert all(source.media_type is None for source in sources)
        assert sources[0].candidates == [(url(1140, "jpg"), "")]

    def test_static(self, image):
        image_set = image.render(file=PHOTO, static=True)
        assert image_set.sources == []
        assert image_set.static_srcset == [
            (url(w), f"{w}w") for w in (540, 720, 810, 960, 1080, 1140)
        ]

    def test_explicit_width_list(self, image):
        image_set = image.render(src=PHOTO, widths=[320, 640], static=True)
        assert [w for _, w in image_set.static_srcset] == ["320w", "480w", "640w", "960w"]
        assert image_set.fallback_url == url(320)

    def test_builder(self, image):
        spec = WidthsBuilder().full().at(800, "half")
        resolutions = image.resolution_dict(file=PHOTO, widths=spec, max_resolution=1)
        assert resolutions == {
            1320: {"1": 660},
            1140: {"1": 570},
            960: {"1": 480},
            720: {"1": 720},
            540: {"1": 540},
            0: {"1": 540},
        }

    def test_cache_version_override(self, image):
        image_set = image.render(file=PHOTO, cache_version="release7")
        assert image_set.fallback_url == url(540, version="release7")

    def test_missing_file_option(self, image):
        with pytest.raises(ConfigError):
            image.render()

    def test_missing_source(self, image):
        with pytest.raises(SourceNotFoundError):
            image.render(file="products/missing.jpg")

    def test_orig_dimensions_skip_reading(self, counting_config):
        image_set = ResponsiveImage(counting_config).render(
            file="not/on/disk.jpg",
            orig_width=800,
            orig_height=400,
            cache_version="1",
            widths="half",
            max_resolution=1,
        )
        assert (image_set.width, image_set.height) == (800, 400)
        assert image_set.fallback_url == "/img/not/on/disk.jpg-w270-v1.webp"


class TestOptions:
    """
    Option handling: load() defaults, per-call overrides and validation.
    """

    def test_loaded_options_are_defaults(self, image):
        image.load(src=PHOTO, output_ext="png")
        assert image.image_url(300) == url(300, "png")
        assert image.image_url(300, output_ext="jpg") == url(300, "jpg")

    def test_image_url_defaults_to_smallest(self, image):
        image.load(file=PHOTO)
        assert image.image_url() == url(540)

    def test_unknown_option(self, image):
        with pytest.raises(ConfigError):
            image.render(file=PHOTO, alt="A photo")

    def test_unknown_option_on_load(self, image):
        with pytest.raises(ConfigError):
            image.load(file=PHOTO, lazy=True)

    def test_widths_coerced(self):
        assert RenderOptions(widths="third").widths == Preset("third")
        assert RenderOptions(widths=0.4).widths == Fraction(0.4)
        assert RenderOptions().widths == Preset("full")

    def test_invalid_widths(self, image):
        with pytest.raises(ConfigError):
            image.render(file=PHOTO, widths="most")

    def test_split_operations_match_render(self, image):
        image.load(file=PHOTO, widths="half")
        image_set = image.render()
        assert image.srcset() == image_set.sources
        assert image.static_srcset() == image_set.static_srcset
        assert image.sizes() == image_set.sizes
        assert image.srcset(static=True) == []


class TestMetaCache:
    """
    Source sizes come from the injected metadata cache when current.
    """

    def test_miss_populates(self, counting_config, photo):
        cache = RecordingMetaCache()
        ResponsiveImage(counting_config, cache).render(file=PHOTO)
        key = str(photo.resolve())
        assert cache.gets == [key]
        assert cache.puts == [key]
        assert cache.entries[key] == {"width": 1200, "height": 800, "mtime": SOURCE_MTIME}

    def test_hit_skips_transform(self, counting_config, photo):
        cache = RecordingMetaCache()
        cache.put(str(photo.resolve()), {"width": 600, "height": 300, "mtime": SOURCE_MTIME})
        image_set = ResponsiveImage(counting_config, cache).render(file=PHOTO)
        assert (image_set.width, image_set.height) == (600, 300)
        assert len(cache.puts) == 1

    def test_stale_entry_is_refreshed(self, counting_config, photo):
        cache = RecordingMetaCache()
        cache.put(str(photo.resolve()), {"width": 600, "height": 300, "mtime": 1})
        image_set = ResponsiveImage(counting_config, cache).render(file=PHOTO)
        assert image_set.width == 1200
        assert cache.entries[str(photo.resolve())]["mtime"] == SOURCE_MTIME

    def test_shared_between_images(self, counting_config, photo):
        cache = RecordingMetaCache()
        ResponsiveImage(counting_config, cache).render(file=PHOTO)
        ResponsiveImage(counting_config, cache).render(file=PHOTO, widths="half")
        assert len(cache.puts) == 1


class TestPillowMeta:
    def test_real_image_size(self, config, source_root):
        make_image(source_root / "tall.png", size=(300, 900), fmt="PNG")
        meta = ResponsiveImage(config).load_meta(RenderOptions(file="tall.png"))
        assert (meta["width"], meta["height"]) == (300, 900)

    def test_corrupt_image(self, config, source_root):
        (source_root / "broken.jpg").write_bytes(b"not really a jpeg")
        with pytest.raises(SourceNotFoundError):
            ResponsiveImage(config).render(file="broken.jpg")
