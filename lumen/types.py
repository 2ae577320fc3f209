from typing import Literal, TypedDict


class ImageSize(TypedDict):
    width: int
    height: int


class ImageMeta(TypedDict):
    width: int
    height: int
    mtime: int


# viewport min-width -> {density descriptor: pixel width}
ResolutionDict = dict[int, dict[str, int]]

VersionMethod = Literal["mtime", "time", "app"]

SizeLimit = int | Literal["source"] | None
