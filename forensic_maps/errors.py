"""Exception types raised by the forensic map toolkit."""


class ForensicError(Exception):
    """Base class for every error raised by ``forensic_maps``."""


class DecodeError(ForensicError):
    """The source could not be interpreted as a raster image."""


class EncodeError(ForensicError):
    """A working buffer could not be encoded to JPEG or PNG."""


class FetchError(ForensicError):
    """A remote image could not be retrieved."""
