"""
Tile payload decoding

Turns a layer's (or chunk's) tile payload into a flat row-major list of raw
32-bit GIDs. Payloads come in several shapes:

    [1, 2, 3, 0]                         already numeric (TMJ arrays)
    "1,2,3,0"                            encoding="csv"
    "AQAAAAIAAAADAAAAAAAAAA=="           encoding="base64"
    "H4sIAAAAAAAA/2NkYGBgYmBgAAA..."     encoding="base64", compression="gzip"
    [<tile gid="1"/>, <tile gid="2"/>]   no encoding (XML tile entries)

=============================================================================
BLOCKING vs ASYNC
=============================================================================

gzip/zlib data is only ever decompressed through DecompressionStream, which
offers nothing but an async chunked read(). So there are two entry points:

    decode_layer_data()        refuses compressed payloads immediately
                               (CompressionRequiresAsyncError)
    decode_layer_data_async()  awaits the full decompressed stream

For every payload without compression both return the same result.
zstd is rejected by both.

=============================================================================
"""

import array
import asyncio
import base64
import binascii
import logging
import numbers
import zlib
from typing import Any, List, Optional, Sequence

import numpy as np

from ..errors import (
    UnsupportedEncodingError, UnsupportedCompressionError,
    CompressionRequiresAsyncError, MalformedPayloadError
)

logger = logging.getLogger(__name__)

# Bytes of compressed input fed to the decompressor per read()
DEFAULT_READ_SIZE = 64 * 1024

_STREAM_WBITS = {
    'gzip': 16 + zlib.MAX_WBITS,    # gzip header + trailer
    'zlib': zlib.MAX_WBITS,         # zlib header + adler32
}


# =============================================================================
# DECOMPRESSION STREAM
# =============================================================================

class DecompressionStream:
    """
    Async, chunked reader over gzip or zlib compressed bytes.

    Every read() yields control to the event loop once, then returns the
    next piece of decompressed output. An empty result means end of stream.

        stream = DecompressionStream(raw, 'zlib')
        async for chunk in stream:
            ...
    """

    def __init__(self, data: bytes, compression: str,
                 read_size: int = DEFAULT_READ_SIZE):
        if compression not in _STREAM_WBITS:
            raise UnsupportedCompressionError(compression)

        self.compression = compression
        self._data = memoryview(data)
        self._offset = 0
        self._read_size = read_size
        self._decompressor = zlib.decompressobj(_STREAM_WBITS[compression])
        self._finished = False

    async def read(self) -> bytes:
        await asyncio.sleep(0)

        while not self._finished:
            if self._decompressor.eof:
                output = self._next_member()
            elif self._offset < len(self._data):
                piece = self._data[self._offset:self._offset + self._read_size]
                self._offset += len(piece)
                output = self._decompress(piece)
            else:
                self._finished = True
                output = self._decompressor.flush()
                if not self._decompressor.eof:
                    raise MalformedPayloadError(f"Truncated {self.compression} tile data")
            if output:
                return output

        return b''

    def _decompress(self, piece) -> bytes:
        try:
            return self._decompressor.decompress(piece)
        except zlib.error as e:
            raise MalformedPayloadError(
                f"Corrupt {self.compression} tile data: {e}") from e

    def _next_member(self) -> bytes:
        """
        Continue after the current stream has ended.

        gzip allows several members back to back (gzip.decompress reads
        them all), so leftover input starts a fresh decompressor. A zlib
        stream must be the whole payload.
        """
        leftover = self._decompressor.unused_data
        if not leftover and self._offset >= len(self._data):
            self._finished = True
            return b''

        if self.compression != 'gzip':
            logger.debug("%d byte(s) after the end of the %s stream",
                         len(leftover) + len(self._data) - self._offset, self.compression)
            raise MalformedPayloadError(f"Trailing data after {self.compression} stream")

        self._decompressor = zlib.decompressobj(_STREAM_WBITS['gzip'])
        return self._decompress(leftover)

    def __aiter__(self):
        return self

    async def __anext__(self) -> bytes:
        chunk = await self.read()
        if not chunk:
            raise StopAsyncIteration
        return chunk


async def decompress_async(data: bytes, compression: str) -> bytes:
    """Read a DecompressionStream to the end and join the chunks in order."""
    chunks = []
    async for chunk in DecompressionStream(data, compression):
        chunks.append(chunk)
    return b''.join(chunks)


# =============================================================================
# PAYLOAD HELPERS
# =============================================================================

def _is_gid_sequence(data: Any) -> bool:
    if isinstance(data, (np.ndarray, array.array)):
        return True
    if isinstance(data, (list, tuple)):
        # Inspect the first entry only; structural entries are mappings/elements
        return len(data) == 0 or isinstance(data[0], numbers.Integral)
    return False


def _base64_bytes(text: Any) -> bytes:
    if not isinstance(text, (str, bytes)):
        raise MalformedPayloadError(
            f"base64 tile data must be text, got {type(text).__name__}")
    try:
        return base64.b64decode(text.strip())
    except (binascii.Error, ValueError) as e:
        raise MalformedPayloadError(f"Invalid base64 tile data: {e}") from e


def _bytes_to_gids(raw: bytes) -> List[int]:
    """
    Reinterpret bytes as consecutive little-endian uint32 values.

    A trailing remainder (len % 4 != 0) is dropped, which leaves the result
    shorter than the grid it should fill.
    """
    remainder = len(raw) % 4
    if remainder:
        logger.warning("Tile data has %d trailing byte(s); ignoring them", remainder)
    count = len(raw) // 4
    if count == 0:
        return []
    return np.frombuffer(raw, dtype='<u4', count=count).tolist()


def _parse_csv(text: Any) -> List[int]:
    if not isinstance(text, str):
        raise MalformedPayloadError(
            f"csv tile data must be text, got {type(text).__name__}")

    gids = []
    for token in text.split(','):
        token = token.strip()
        if not token:
            # Trailing commas and blank lines
            continue
        try:
            gids.append(int(token))
        except ValueError as e:
            raise MalformedPayloadError(f"Invalid CSV tile value: {token!r}") from e
    return gids


def _gids_from_entries(entries: Sequence[Any]) -> List[int]:
    # <tile gid="5"/> elements and {"gid": 5} mappings both offer .get()
    return [int(entry.get('gid', 0)) for entry in entries]


def _decode_uncompressed(data: Any, encoding: Optional[str]) -> List[int]:
    if encoding == 'csv':
        return _parse_csv(data)
    if encoding is None and not isinstance(data, (str, bytes)):
        return _gids_from_entries(data)

    logger.debug("Unsupported tile data encoding: %r", encoding)
    raise UnsupportedEncodingError(encoding)


def _check_plain_compression(compression: Optional[str]):
    if compression is not None:
        logger.debug("Unsupported tile data compression: %r", compression)
        raise UnsupportedCompressionError(compression)


# =============================================================================
# ENTRY POINTS
# =============================================================================

def decode_layer_data(data: Any, encoding: Optional[str] = None,
                      compression: Optional[str] = None) -> Sequence[int]:
    """
    Decode a tile payload into raw GIDs without suspending.

    Parameters:
    -----------
    data : list of int, str, or list of <tile>/{"gid"} entries
        Payload as stored in the document
    encoding : str, optional
        "base64", "csv" or None
    compression : str, optional
        "gzip", "zlib", "zstd", "" or None (base64 only)

    Returns:
    --------
    Sequence[int] : raw GIDs, flip bits included. Numeric input is returned
    as the very same object.

    Raises:
    -------
    CompressionRequiresAsyncError : gzip/zlib payload (use the async variant)
    UnsupportedCompressionError : zstd or unknown compression
    UnsupportedEncodingError : unknown encoding
    MalformedPayloadError : undecodable base64 text or CSV token
    """
    if _is_gid_sequence(data):
        return data

    if encoding == 'base64':
        compression = compression or None
        if compression in _STREAM_WBITS:
            logger.debug("Blocking decode refused %s-compressed tile data", compression)
            raise CompressionRequiresAsyncError(compression)
        _check_plain_compression(compression)
        return _bytes_to_gids(_base64_bytes(data))

    return _decode_uncompressed(data, encoding)


async def decode_layer_data_async(data: Any, encoding: Optional[str] = None,
                                  compression: Optional[str] = None) -> Sequence[int]:
    """
    Decode a tile payload into raw GIDs, awaiting decompression if needed.

    Same contract as decode_layer_data(), except gzip/zlib payloads are
    decompressed through DecompressionStream instead of being refused.
    """
    if _is_gid_sequence(data):
        return data

    if encoding == 'base64':
        compression = compression or None
        if compression not in _STREAM_WBITS:
            _check_plain_compression(compression)
            return _bytes_to_gids(_base64_bytes(data))

        raw = await decompress_async(_base64_bytes(data), compression)
        return _bytes_to_gids(raw)

    return _decode_uncompressed(data, encoding)
