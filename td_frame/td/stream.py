"""Streaming access to a job's result set.

Three layers, pulled from the top:

``ContentDownloader``
    raw bytes as they arrive on the wire; counts them and fires the
    progress callback once per chunk.
``GzipReader``
    inflates the downloader's bytes.
``iter_records``
    decodes MessagePack objects (one per row) from a ``GzipReader``.
"""
from __future__ import annotations

import logging
import zlib
from typing import Any, Callable, Iterator, Optional

import httpx
import msgpack

from ..errors import APIError, DecodeError, ResultIOError

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 16384


class ContentDownloader:
    def __init__(
        self,
        open_response: Callable[[], httpx.Response],
        callback: Optional[Callable[["ContentDownloader"], None]] = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> None:
        self._open_response = open_response
        self._callback = callback
        self.chunk_size = chunk_size
        self.downloaded_size = 0
        self._response: Optional[httpx.Response] = None
        self._chunks: Optional[Iterator[bytes]] = None
        self._buffer = b""
        self._eof = False
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def _ensure_open(self) -> Iterator[bytes]:
        if self._chunks is None:
            try:
                self._response = self._open_response()
            except (httpx.HTTPError, APIError) as exc:
                self._closed = True
                raise ResultIOError(f"cannot open result stream: {exc}") from exc
            self._chunks = self._response.iter_raw(self.chunk_size)
            logger.debug("opened result stream %s", self._response.url)
        return self._chunks

    def read(self, size: int = -1) -> bytes:
        if self._closed:
            raise ResultIOError("read from closed result stream")
        chunks = self._ensure_open()
        while not self._eof and (size < 0 or not self._buffer):
            try:
                chunk = next(chunks)
            except StopIteration:
                self._eof = True
                break
            except httpx.HTTPError as exc:
                self.close()
                raise ResultIOError(f"result download failed: {exc}") from exc
            self._buffer += chunk
        if size < 0:
            data, self._buffer = self._buffer, b""
        else:
            data, self._buffer = self._buffer[:size], self._buffer[size:]
        if data:
            self.downloaded_size += len(data)
            if self._callback is not None:
                self._callback(self)
        elif self._eof:
            self._release()
        return data

    readpartial = read

    def _release(self) -> None:
        if self._response is not None and not self._response.is_closed:
            self._response.close()
            logger.debug("closed result stream after %d bytes", self.downloaded_size)

    def close(self) -> None:
        self._closed = True
        self._release()

    def __enter__(self) -> "ContentDownloader":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()


class GzipReader:
    def __init__(self, raw: ContentDownloader, chunk_size: int = DEFAULT_CHUNK_SIZE) -> None:
        self.raw = raw
        self.chunk_size = chunk_size
        self._inflater = zlib.decompressobj(zlib.MAX_WBITS | 16)
        self._buffer = b""
        self._eof = False
        self._closed = False

    def _inflate(self, data: bytes) -> bytes:
        try:
            out = self._inflater.decompress(data)
            # a gzip stream may hold several members back to back
            while self._inflater.eof and self._inflater.unused_data:
                rest = self._inflater.unused_data
                self._inflater = zlib.decompressobj(zlib.MAX_WBITS | 16)
                out += self._inflater.decompress(rest)
        except zlib.error as exc:
            raise DecodeError(f"malformed gzip stream: {exc}") from exc
        return out

    def read(self, size: int = DEFAULT_CHUNK_SIZE) -> bytes:
        if self._closed:
            raise ResultIOError("read from closed result stream")
        while not self._eof and len(self._buffer) < size:
            compressed = self.raw.read(self.chunk_size)
            if not compressed:
                self._eof = True
                if not self._inflater.eof:
                    raise DecodeError("gzip stream ended before the end of its last member")
                break
            self._buffer += self._inflate(compressed)
            if self._buffer:
                break
        data, self._buffer = self._buffer[:size], self._buffer[size:]
        return data

    readpartial = read

    def close(self) -> None:
        self._closed = True
        self.raw.close()


def iter_records(reader: GzipReader, read_size: int = DEFAULT_CHUNK_SIZE) -> Iterator[Any]:
    unpacker = msgpack.Unpacker(raw=False, strict_map_key=False)
    fed = 0
    while True:
        chunk = reader.read(read_size)
        if not chunk:
            break
        unpacker.feed(chunk)
        fed += len(chunk)
        try:
            for record in unpacker:
                yield record
        except (ValueError, msgpack.UnpackException) as exc:
            raise DecodeError(f"malformed record stream: {exc}") from exc
    if unpacker.tell() != fed:
        raise DecodeError(f"record stream truncated after {unpacker.tell()} of {fed} bytes")
