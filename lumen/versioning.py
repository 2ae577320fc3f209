import time
from pathlib import Path
from typing import ClassVar


class BaseVersioner:
    """
    Root versioning policy class.

    A versioner turns a source file into the version token embedded in its
    cache filenames. When the token changes, every previously issued URL for
    that source becomes stale and is redirected to the new one.
    """

    type_aliases: list[str] = []

    implementation_registry: ClassVar[dict[str, type["BaseVersioner"]]] = {}

    def __init__(self, app_version: str = "1"):
        self.app_version = app_version

    def __init_subclass__(cls) -> None:
        if not cls.type_aliases:
            raise RuntimeError(
                "You must define at least one type alias per versioner implementation"
            )
        for alias in cls.type_aliases:
            BaseVersioner.implementation_registry[alias] = cls

    @classmethod
    def implementation_get(cls, alias: str):
        return cls.implementation_registry[alias]

    def version(self, source_path: Path) -> str:
        raise NotImplementedError()


class MtimeVersioner(BaseVersioner):
    """
    Uses the source file's modification time. Stable until the file changes.
    """

    type_aliases = ["mtime"]

    # Version used when the source file is missing
    missing_version = "0"

    def version(self, source_path: Path) -> str:
        try:
            return str(int(source_path.stat().st_mtime))
        except FileNotFoundError:
            return self.missing_version


class TimeVersioner(BaseVersioner):
    """
    Uses the current time, so every call produces a new URL. Only useful
    when you want to bypass caching entirely.
    """

    type_aliases = ["time"]

    def version(self, source_path: Path) -> str:
        return str(int(time.time()))


class AppVersioner(BaseVersioner):
    """
    Uses a single operator-supplied version for every image; bump it to
    invalidate everything at once.
    """

    type_aliases = ["app"]

    def version(self, source_path: Path) -> str:
        return self.app_version
