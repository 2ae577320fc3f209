from pathlib import Path
from typing import Protocol, cast

import lmdb
import msgpack

from lumen.types import ImageMeta


class MetaCache(Protocol):
    """
    Source image metadata cache, keyed by resolved source path.

    Reading dimensions means opening the image, so layouts rendering the
    same image repeatedly share one of these.
    """

    def get(self, key: str) -> ImageMeta | None: ...

    def put(self, key: str, meta: ImageMeta) -> None: ...


class MemoryMetaCache:
    """
    In-memory metadata cache; make one per request or render batch.
    """

    def __init__(self):
        self.entries: dict[str, ImageMeta] = {}

    def get(self, key: str) -> ImageMeta | None:
        return self.entries.get(key)

    def put(self, key: str, meta: ImageMeta) -> None:
        self.entries[key] = meta

    def __len__(self) -> int:
        return len(self.entries)

    def close(self) -> None:
        self.entries.clear()


class DiskMetaCache:
    """
    Persistent metadata cache backed by LMDB.

    Keys are strings (encoded as UTF-8), values are serialized with msgpack.
    Safe to share between processes; LMDB handles the locking.
    """

    def __init__(self, path: Path, map_size: int = 64 * 1024 * 1024):
        """
        Args:
            path: Path to the LMDB environment directory.
            map_size: Maximum size of the database in bytes (default 64MB).
        """
        self.path = path
        path.mkdir(parents=True, exist_ok=True)
        self.env = lmdb.open(str(path), map_size=map_size)

    def get(self, key: str) -> ImageMeta | None:
        with self.env.begin() as txn:
            value = txn.get(key.encode("utf-8"))
            if value is None:
                return None
            return cast(ImageMeta, msgpack.unpackb(value))

    def put(self, key: str, meta: ImageMeta) -> None:
        with self.env.begin(write=True) as txn:
            txn.put(key.encode("utf-8"), msgpack.packb(dict(meta)))

    def delete(self, key: str) -> None:
        """
        Delete a key. Raises KeyError if not found.
        """
        with self.env.begin(write=True) as txn:
            if not txn.delete(key.encode("utf-8")):
                raise KeyError(key)

    def clear(self) -> None:
        with self.env.begin(write=True) as txn:
            txn.drop(self.env.open_db(), delete=False)

    def __len__(self) -> int:
        with self.env.begin() as txn:
            return txn.stat()["entries"]

    def close(self) -> None:
        self.env.close()
