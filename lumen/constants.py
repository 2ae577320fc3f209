# Used for the viewport-0 slot when no density survived the size limits
FALLBACK_WIDTH = 540

# Versioned URLs never change content, so they can be cached for a year
CACHE_CONTROL = "public, max-age=31536000, immutable"

LOCK_SUFFIX = ".lock"

# Size limit meaning "use the source image's own dimension"
HIRES_SOURCE = "source"

WIDTH_PRESETS: dict[str, float] = {
    "full": 1.0,
    "half": 0.5,
    "third": 1 / 3,
    "quarter": 0.25,
    "two-thirds": 2 / 3,
}

MIME_TYPES: dict[str, str] = {
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "webp": "image/webp",
    "avif": "image/avif",
}
