"""
HTTP front end for the image cache.
"""

import logging

from fastapi import FastAPI, HTTPException
from fastapi.responses import FileResponse, RedirectResponse

from lumen.config import Config
from lumen.exceptions import (
    LockTimeoutError,
    MalformedRequestError,
    ResizeError,
    SourceNotFoundError,
)
from lumen.responder import NotFound, Redirect, Responder

logger = logging.getLogger(__name__)


def create_app(config: Config, responder: Responder | None = None) -> FastAPI:
    responder = responder or Responder(config)
    prefix = config.config_data.public_url_prefix.rstrip("/")

    app = FastAPI(title="Lumen", description="Versioned on-demand image cache")

    @app.get("/healthz")
    def healthz():
        return {"status": "ok"}

    # Sync handler so blocking on a cache key lock happens in the threadpool
    @app.get(prefix + "/{path:path}")
    def serve_image(path: str):
        try:
            result = responder.handle(path)
        except MalformedRequestError as e:
            raise HTTPException(status_code=400, detail=str(e))
        except SourceNotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e))
        except LockTimeoutError as e:
            raise HTTPException(status_code=503, detail=str(e))
        except ResizeError:
            raise HTTPException(status_code=500, detail="Unable to resize image")
        if isinstance(result, Redirect):
            return RedirectResponse(result.url, status_code=result.status)
        if isinstance(result, NotFound):
            raise HTTPException(status_code=404, detail=result.reason)
        return FileResponse(
            result.path, media_type=result.media_type, headers=result.headers
        )

    return app
