from pathlib import Path
from typing import ClassVar

from lumen.types import ImageSize


class BaseTransform:
    """
    Root image transform class that defines the decode/resize/encode
    interface the resizer drives.

    A transform instance handles one image at a time: load() it, then
    resize() it as many times as needed, then save() the resulting bytes.
    Instances are cheap and are made per resize, so they do not need to be
    thread-safe.

    Implementations must raise UnreadableSourceError when the source can be
    opened but not decoded, and ResizeError for every other failure, so
    callers can tell a bad image from a broken disk.
    """

    type_aliases: list[str] = []

    implementation_registry: ClassVar[dict[str, type["BaseTransform"]]] = {}

    def __init_subclass__(cls) -> None:
        if not cls.type_aliases:
            raise RuntimeError(
                "You must define at least one type alias per transform implementation"
            )
        for alias in cls.type_aliases:
            BaseTransform.implementation_registry[alias] = cls

    @classmethod
    def implementation_get(cls, alias: str):
        return cls.implementation_registry[alias]

    def load(self, path: Path) -> ImageSize:
        """
        Opens the source image and returns its (orientation-corrected) size.
        """
        raise NotImplementedError()

    def resize(self, width: int, height: int, output_ext: str) -> bytes:
        """
        Returns the loaded image resized to width x height, encoded for
        output_ext.
        """
        raise NotImplementedError()

    def save(self, content: bytes, path: Path):
        """
        Writes encoded image bytes to path.
        """
        with open(path, "wb") as fh:
            fh.write(content)
