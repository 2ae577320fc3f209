import re
from dataclasses import dataclass
from pathlib import PurePosixPath

from lumen.constants import MIME_TYPES
from lumen.exceptions import ConfigError, MalformedRequestError

# Version tokens are digits for mtime/time, and operator strings for app
VERSION_PATTERN = r"[A-Za-z0-9_.]+?"
VERSION_RE = re.compile(rf"^{VERSION_PATTERN}$")

FILENAME_RE = re.compile(
    rf"^(?P<base_path>.+)-w(?P<width>\d+)-v(?P<version>{VERSION_PATTERN})"
    r"\.(?P<output_ext>[A-Za-z0-9]+)$"
)


@dataclass(frozen=True)
class ImageRequest:
    """
    The identity of one cached variant: which source, how wide, which
    version of the source, and in what output format.

    base_path is relative to the source directory and keeps the source's own
    extension, e.g. "products/photo.jpg".
    """

    base_path: str
    width: int
    version: str
    output_ext: str

    def __post_init__(self):
        if self.width <= 0:
            raise ConfigError(f"Width must be positive, not {self.width}")
        if not VERSION_RE.match(self.version):
            raise ConfigError(f"Invalid version token: {self.version!r}")
        if self.output_ext.lower() not in MIME_TYPES:
            raise ConfigError(f"Unsupported output extension: {self.output_ext}")

    @property
    def original_ext(self) -> str:
        return PurePosixPath(self.base_path).suffix.lstrip(".").lower()

    @property
    def filename(self) -> str:
        return f"{self.base_path}-w{self.width}-v{self.version}.{self.output_ext}"

    @property
    def variant_glob(self) -> str:
        """
        Glob (relative to the cache root) matching every version of this
        base path, width and output extension.
        """
        return f"{glob_escape(self.base_path)}-w{self.width}-v*.{self.output_ext}"

    def with_version(self, version: str) -> "ImageRequest":
        return ImageRequest(self.base_path, self.width, version, self.output_ext)


def parse_request(path: str) -> ImageRequest:
    """
    Parses a cache filename (or the path portion of a public URL with the
    prefix removed) back into an ImageRequest.
    """
    path = path.lstrip("/")
    match = FILENAME_RE.match(path)
    if match is None:
        raise MalformedRequestError(f"Invalid image request: {path}")
    base_path = match["base_path"]
    if ".." in PurePosixPath(base_path).parts or "\\" in base_path:
        raise MalformedRequestError(f"Invalid image request: {path}")
    if int(match["width"]) == 0:
        raise MalformedRequestError(f"Invalid image width: {path}")
    output_ext = match["output_ext"].lower()
    if output_ext not in MIME_TYPES:
        raise MalformedRequestError(f"Unsupported output extension: {output_ext}")
    return ImageRequest(
        base_path=base_path,
        width=int(match["width"]),
        version=match["version"],
        output_ext=output_ext,
    )


def glob_escape(value: str) -> str:
    return re.sub(r"([\[\]*?])", r"[\1]", value)


def mime_type(ext: str) -> str:
    return MIME_TYPES.get(ext.lower(), "application/octet-stream")
