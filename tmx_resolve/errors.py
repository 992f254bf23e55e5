"""
Error types raised while reading and resolving Tiled maps

Every failure aborts the whole resolution call: no partially resolved map is
ever returned. Nothing here is retried internally; a caller that catches
CompressionRequiresAsyncError can simply call the async resolver instead.
"""

from typing import Optional


class TiledError(Exception):
    """Base class for all tmx_resolve errors."""


class UnsupportedEncodingError(TiledError):
    """Tile payload uses an encoding other than base64, csv or none."""

    def __init__(self, encoding: Optional[str]):
        self.encoding = encoding
        super().__init__(f"Unsupported encoding: {encoding or 'unknown'}")


class UnsupportedCompressionError(TiledError):
    """Tile payload uses a compression this package cannot read."""

    def __init__(self, compression: str, message: Optional[str] = None):
        self.compression = compression
        super().__init__(message or f"{compression} compression is not supported")


class CompressionRequiresAsyncError(UnsupportedCompressionError):
    """
    gzip/zlib data reached the blocking decoder.

    Decompression is only available through the async stream, so the
    blocking entry points refuse compressed payloads outright.
    """

    def __init__(self, compression: str):
        super().__init__(
            compression,
            f"Compressed tile data ({compression}) requires the async resolver. "
            "Use resolve_map_async() instead of resolve_map() for compressed maps."
        )


class MissingExternalTilesetError(TiledError, LookupError):
    """A <tileset source="..."/> reference has no entry in the lookup table."""

    def __init__(self, source: str):
        self.source = source
        super().__init__(
            f'External tileset "{source}" not provided. '
            "Pass it via external_tilesets."
        )


class MalformedPayloadError(TiledError, ValueError):
    """Tile payload text could not be decoded (bad base64, bad CSV token)."""


class UnknownTileGidError(TiledError, LookupError):
    """A GID is below every tileset's firstgid (strict mode only)."""

    def __init__(self, gid: int):
        self.gid = gid
        super().__init__(f"No tileset contains GID {gid}")


class DocumentError(TiledError, ValueError):
    """The source document is not a TMX/TMJ map or TSX/TSJ tileset."""
