import logging
from dataclasses import dataclass, field
from email.utils import formatdate
from pathlib import Path

from lumen.config import Config
from lumen.constants import CACHE_CONTROL
from lumen.request import mime_type, parse_request
from lumen.resizer import Resizer

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Redirect:
    url: str
    status: int = 301


@dataclass(frozen=True)
class ServedFile:
    path: Path
    media_type: str
    headers: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class NotFound:
    reason: str


Response = Redirect | ServedFile | NotFound


class Responder:
    """
    Turns an inbound cache filename into what the transport should do with
    it: redirect a stale version, report a missing source, or serve the
    (generated if needed) cache file.
    """

    def __init__(self, config: Config, resizer: Resizer | None = None):
        self.config = config
        self.resizer = resizer or Resizer(config)

    def handle(self, request_path: str) -> Response:
        """
        Raises MalformedRequestError for paths that aren't cache filenames,
        and ResizeError if the variant could not be generated.
        """
        request = parse_request(request_path)

        # A missing source would otherwise redirect to its placeholder version
        source_path = self.config.source_file(request.base_path)
        if not source_path.is_file():
            logger.debug(f"Source not found: {source_path}")
            return NotFound(f"Image not found: {request.base_path}")

        # Stale URLs heal themselves by pointing at the current version
        current_version = self.config.version_for(request.base_path)
        if request.version != current_version:
            url = self.config.url_for(request.with_version(current_version))
            logger.warning(f"Stale version for {request.filename}, redirecting to {url}")
            return Redirect(url)

        cache_path = self.config.cache_file(request)
        generated = self.resizer.ensure_cached(request, source_path, cache_path)
        return ServedFile(
            path=cache_path,
            media_type=mime_type(request.output_ext),
            headers=self.headers(cache_path, source_path, generated),
        )

    def headers(self, cache_path: Path, source_path: Path, generated: bool):
        stat_result = cache_path.stat()
        headers = {
            "Content-Length": str(stat_result.st_size),
            "Last-Modified": formatdate(stat_result.st_mtime, usegmt=True),
            "Cache-Control": CACHE_CONTROL,
        }
        if self.config.config_data.debug_headers:
            headers["X-Lumen-Cache"] = "write" if generated else "hit"
            headers["X-Lumen-Source"] = str(source_path)
        return headers
