import logging
import os
import time
from pathlib import Path

from lumen.config import Config
from lumen.constants import LOCK_SUFFIX
from lumen.exceptions import LumenError, MalformedRequestError, ResizeError
from lumen.locks import CacheLock
from lumen.request import ImageRequest, glob_escape, parse_request
from lumen.types import ImageSize

logger = logging.getLogger(__name__)

TEMP_SUFFIX = ".tmp"


class Resizer:
    """
    Generates cache entries on demand and manages the cache directory.

    ensure_cached() is safe to call concurrently for the same key from
    multiple threads or processes: one caller resizes, the rest wait on the
    key's lock and then find the file present. Files only ever appear at
    their final path fully written.

    The clean_* maintenance operations take no locks and should not be run
    against images that are being actively requested.
    """

    def __init__(self, config: Config):
        self.config = config

    ### Hot path ###

    def ensure_cached(
        self, request: ImageRequest, source_path: Path, cache_path: Path
    ) -> bool:
        """
        Makes sure cache_path holds the resized variant for request.

        Returns True if this call generated the file, False if it was
        already there.
        """
        # Unlocked fast path; a racing writer only ever renames a full file in
        if cache_path.exists():
            logger.debug(f"Cache hit: {request.filename}")
            return False

        cache_path.parent.mkdir(parents=True, exist_ok=True)
        lock_path = cache_path.with_name(cache_path.name + LOCK_SUFFIX)
        with CacheLock(lock_path, timeout=self.config.config_data.lock_timeout):
            # Someone else may have made it while we waited for the lock
            if cache_path.exists():
                logger.debug(f"Cache filled while waiting: {request.filename}")
                return False
            pruned = self.prune_versions(request, keep=cache_path)
            if pruned:
                logger.debug(f"Pruned {pruned} old versions of {request.filename}")
            self._generate(request, source_path, cache_path)
        return True

    def prune_versions(self, request: ImageRequest, keep: Path) -> int:
        """
        Deletes cached files for the same base path, width and output
        extension but a different version. Returns the number deleted.
        """
        count = 0
        for path in self.config.cache_path.glob(request.variant_glob):
            if path == keep or not path.is_file():
                continue
            try:
                other = parse_request(str(path.relative_to(self.config.cache_path)))
            except MalformedRequestError:
                continue
            # The glob can over-match base paths that themselves contain -w/-v
            if (other.base_path, other.width, other.output_ext) != (
                request.base_path,
                request.width,
                request.output_ext,
            ):
                continue
            try:
                path.unlink()
                count += 1
            except FileNotFoundError:
                pass
        return count

    def target_size(self, width: int, source: ImageSize) -> tuple[int, int]:
        """
        Works out the actual output size for a requested width, keeping the
        source aspect ratio.
        """
        ratio = source["width"] / source["height"]
        if not self.config.config_data.allow_upscale and width > source["width"]:
            width = source["width"]
        max_size = self.config.config_data.max_size
        if max_size > 0 and width > max_size:
            width = max_size
        return width, max(1, round(width / ratio))

    def _generate(self, request: ImageRequest, source_path: Path, cache_path: Path):
        temp_path = cache_path.with_name(cache_path.name + TEMP_SUFFIX)
        try:
            transform = self.config.make_transform()
            source_size = transform.load(source_path)
            width, height = self.target_size(request.width, source_size)
            content = transform.resize(width, height, request.output_ext)
            transform.save(content, temp_path)
            os.replace(temp_path, cache_path)
        except LumenError:
            logger.exception(f"Resize failed for {request.filename}")
            raise
        except Exception as e:
            logger.exception(f"Resize failed for {request.filename}")
            raise ResizeError(f"Resize failed for {request.filename}: {e}") from e
        finally:
            temp_path.unlink(missing_ok=True)
        logger.info(f"Generated {request.filename} ({width}x{height})")
        if self.config.on_file_save is not None:
            self.config.on_file_save(cache_path, request)

    ### Maintenance ###

    def clean_expired(self) -> int:
        """
        Deletes cache files older than the configured TTL.

        Returns the number of files deleted; always 0 with no TTL set.
        """
        ttl = self.config.config_data.cache_ttl
        if ttl <= 0:
            return 0
        expire_time = time.time() - ttl
        count = 0
        for path in self._cache_files():
            try:
                if path.stat().st_mtime < expire_time:
                    path.unlink()
                    count += 1
            except FileNotFoundError:
                continue
        if count:
            logger.info(f"{count} expired cache files deleted")
        return count

    def clean_image(self, base_path: str) -> int:
        """
        Deletes every cached variant of one source image.
        """
        count = 0
        pattern = f"{glob_escape(base_path.lstrip('/'))}-w*"
        for path in self.config.cache_path.glob(pattern):
            if not path.is_file() or path.name.endswith(LOCK_SUFFIX):
                continue
            try:
                path.unlink()
                count += 1
            except FileNotFoundError:
                pass
        logger.info(f"{count} cache files deleted for {base_path}")
        return count

    def clean_all(self) -> int:
        """
        Empties the entire cache directory.
        """
        count = 0
        for directory, subdirs, filenames in self.config.cache_path.walk(
            top_down=False
        ):
            for filename in filenames:
                try:
                    (directory / filename).unlink()
                    count += 1
                except FileNotFoundError:
                    pass
            if directory != self.config.cache_path:
                try:
                    directory.rmdir()
                except OSError:
                    pass
        logger.info(f"{count} cache files deleted")
        return count

    def _cache_files(self):
        for directory, _, filenames in self.config.cache_path.walk():
            for filename in filenames:
                if filename.endswith((LOCK_SUFFIX, TEMP_SUFFIX)):
                    continue
                yield directory / filename
