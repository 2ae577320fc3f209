from collections.abc import Callable
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, ValidationError, model_validator

# Imported for their registration side effects
import lumen.transforms.pillow  # noqa: F401
from lumen.constants import MIME_TYPES
from lumen.exceptions import ConfigError, SourceNotFoundError
from lumen.request import VERSION_RE, ImageRequest
from lumen.transforms.base import BaseTransform
from lumen.types import VersionMethod
from lumen.versioning import BaseVersioner

CONFIG_FILENAME = "lumen.yaml"

FileSaveHook = Callable[[Path, ImageRequest], None]


class TransformSchema(BaseModel):

    type: str = "pillow"
    options: dict[str, Any] = {}


class ConfigSchema(BaseModel):

    model_config = ConfigDict(extra="forbid")

    source_path: Path
    cache_path: Path
    public_url_prefix: str = "/img/"
    default_output_ext: str = "webp"
    containers: dict[str, int] = {
        "xxl": 1320,
        "xl": 1140,
        "lg": 960,
        "md": 720,
        "sm": 540,
    }
    breakpoints: dict[str, int] = {
        "xxl": 1400,
        "xl": 1200,
        "lg": 992,
        "md": 768,
        "sm": 576,
    }
    default_max_resolution: float = 2.0
    default_resolution_step: float = 0.5
    versioning: VersionMethod = "mtime"
    app_version: str = "1"
    allow_upscale: bool = False
    max_size: int = 3000
    cache_ttl: int = 0
    sweep_interval: float = 0
    lock_timeout: float | None = None
    transform: TransformSchema = TransformSchema()
    meta_cache: Path | None = None
    debug_headers: bool = False

    @model_validator(mode="after")
    def check_consistency(self) -> "ConfigSchema":
        if not self.containers or not self.breakpoints:
            raise ValueError("containers and breakpoints must not be empty")
        for name in self.breakpoints:
            if name not in self.containers:
                raise ValueError(f"breakpoint {name} has no container width")
        if any(width <= 0 for width in self.containers.values()):
            raise ValueError("container widths must be positive")
        if any(width < 0 for width in self.breakpoints.values()):
            raise ValueError("breakpoint widths must not be negative")
        self.default_output_ext = self.default_output_ext.lower()
        if self.default_output_ext not in MIME_TYPES:
            raise ValueError(f"unsupported output extension {self.default_output_ext}")
        if not VERSION_RE.match(self.app_version):
            raise ValueError(f"app_version {self.app_version!r} is not a valid token")
        if self.default_resolution_step <= 0 or self.default_max_resolution < 1:
            raise ValueError("invalid default resolution settings")
        if self.max_size < 0 or self.cache_ttl < 0:
            raise ValueError("max_size and cache_ttl must not be negative")
        self.public_url_prefix = "/" + self.public_url_prefix.strip("/") + "/"
        if self.public_url_prefix == "//":
            self.public_url_prefix = "/"
        return self


class Config:
    """
    Loaded, validated configuration plus the path and URL helpers that
    depend on it. Read-only once constructed.
    """

    on_file_save: FileSaveHook | None = None

    def __init__(self, schema: ConfigSchema, root_path: Path | None = None):
        self.config_data = schema
        # Relative paths in the config are relative to the config file
        self.root_path = (root_path or Path.cwd()).resolve()
        self.source_path = (self.root_path / schema.source_path.expanduser()).resolve()
        self.cache_path = (self.root_path / schema.cache_path.expanduser()).resolve()
        self.cache_path.mkdir(parents=True, exist_ok=True)
        self.meta_cache_path = None
        if schema.meta_cache is not None:
            self.meta_cache_path = self.root_path / schema.meta_cache.expanduser()

        # Set up the versioning policy
        versioner_class = BaseVersioner.implementation_get(schema.versioning)
        self.versioner = versioner_class(app_version=schema.app_version)

        # Check the transform exists now rather than on first cache miss
        try:
            self.transform_class = BaseTransform.implementation_get(
                schema.transform.type
            )
        except KeyError:
            raise ConfigError(f"Unknown transform type: {schema.transform.type}")

    @classmethod
    def from_file(cls, config_path: Path) -> "Config":
        with open(config_path) as fh:
            data = yaml.safe_load(fh.read()) or {}
        if not isinstance(data, dict):
            raise ConfigError(f"{config_path} does not contain a mapping")
        return cls.from_dict(data, root_path=config_path.resolve().parent)

    @classmethod
    def from_dict(cls, data: dict[str, Any], root_path: Path | None = None) -> "Config":
        try:
            schema = ConfigSchema(**data)
        except ValidationError as e:
            raise ConfigError(f"Invalid configuration: {e}") from e
        return cls(schema, root_path=root_path)

    @property
    def containers(self) -> dict[str, int]:
        return self.config_data.containers

    @property
    def breakpoints(self) -> dict[str, int]:
        return self.config_data.breakpoints

    def make_transform(self) -> BaseTransform:
        return self.transform_class(**self.config_data.transform.options)

    def source_file(self, base_path: str) -> Path:
        """
        Works out the on-disk source image for a base path.
        """
        return self.source_path / base_path.lstrip("/")

    def cache_file(self, request: ImageRequest) -> Path:
        """
        Works out the cache file for a request; matches the public filename.
        """
        return self.cache_path / request.filename.lstrip("/")

    def version_for(self, base_path: str, override: str | None = None) -> str:
        if override is not None:
            return override
        return self.versioner.version(self.source_file(base_path))

    def request_for(
        self,
        base_path: str,
        width: int,
        output_ext: str | None = None,
        version: str | None = None,
    ) -> ImageRequest:
        """
        Builds the current ImageRequest for a source and width.

        Raises SourceNotFoundError if no version is given and the source is
        missing, as the version cannot be derived without it.
        """
        base_path = base_path.lstrip("/")
        if version is None and not self.source_file(base_path).is_file():
            raise SourceNotFoundError(
                f"Image not found: {self.source_file(base_path)}"
            )
        if self.config_data.max_size > 0:
            width = min(width, self.config_data.max_size)
        return ImageRequest(
            base_path=base_path,
            width=width,
            version=self.version_for(base_path, version),
            output_ext=(output_ext or self.config_data.default_output_ext).lower(),
        )

    def image_url(
        self,
        base_path: str,
        width: int,
        output_ext: str | None = None,
        version: str | None = None,
    ) -> str:
        """
        Returns the public, versioned URL for a source at a given width.
        """
        request = self.request_for(base_path, width, output_ext, version)
        return self.url_for(request)

    def url_for(self, request: ImageRequest) -> str:
        return f"{self.config_data.public_url_prefix}{request.filename}"


def find_config(start_path: Path) -> Path:
    """
    Looks for a config file in start_path and each of its parents.
    """
    path = start_path.resolve()
    while True:
        candidate = path / CONFIG_FILENAME
        if candidate.is_file():
            return candidate
        # Check if we've reached the root directory
        if path.parent == path:
            raise ConfigError(f"No {CONFIG_FILENAME} found in directory hierarchy")
        path = path.parent
