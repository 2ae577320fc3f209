class LumenError(Exception):
    """
    Base class for all errors raised by lumen.
    """


class ConfigError(LumenError):
    """
    Invalid configuration, breakpoints or render options.
    """


class MalformedRequestError(LumenError):
    """
    An inbound path does not match the cache filename grammar.
    """


class SourceNotFoundError(LumenError):
    """
    The source image for a request cannot be found.
    """


class ResizeError(LumenError):
    """
    The image transform failed; the cache is left untouched.
    """


class UnreadableSourceError(ResizeError):
    """
    The source exists but cannot be decoded (corrupt or unsupported format).
    """


class LockTimeoutError(LumenError):
    """
    A bounded wait for a cache key lock expired.
    """
