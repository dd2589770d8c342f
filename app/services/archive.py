"""Streamed zip export.

The archive is encoded by a background producer task that pushes chunks
into a bounded queue; the HTTP response drains the queue. Headers therefore
go out before any storage fetch, memory holds at most ``queue_size`` chunks,
and a slow client throttles the storage reads.
"""
import asyncio
import logging
import posixpath
import stat
import time
from datetime import datetime
from typing import AsyncIterator, Awaitable, Callable, Iterable, List, Optional
from urllib.parse import quote

from fastapi.responses import StreamingResponse
from stream_zip import ZIP_64, async_stream_zip

from app.db.base import utcnow
from app.services.tree import ArchiveEntry

logger = logging.getLogger(__name__)

FILE_MODE = stat.S_IFREG | 0o644
ERROR_SUFFIX = ".error.txt"

OpenStream = Callable[[str], Awaitable[AsyncIterator[bytes]]]


class ArchiveEncodingError(Exception):
    """The zip encoder failed; the output stream cannot be completed"""


class ArchivePathAllocator:
    """Hands out unique entry names, suffixing " (n)" before the extension on collision"""

    def __init__(self):
        self._taken = set()

    def allocate(self, path: str) -> str:
        candidate = path
        if candidate in self._taken:
            head, tail = posixpath.split(path)
            stem, ext = posixpath.splitext(tail)
            n = 1
            while candidate in self._taken:
                candidate = posixpath.join(head, f"{stem} ({n}){ext}")
                n += 1
        self._taken.add(candidate)
        return candidate


def folder_archive_name(folder_name: str) -> str:
    return f"{folder_name}.zip"


def selection_archive_name(file_names: List[str], now: Optional[float] = None) -> str:
    if len(file_names) == 1:
        return f"{file_names[0]}.zip"
    timestamp = int((now if now is not None else time.time()) * 1000)
    return f"files_{timestamp}.zip"


def content_disposition(filename: str) -> str:
    ascii_name = filename.encode("ascii", "replace").decode("ascii").replace('"', "_").replace("?", "_")
    header = f'attachment; filename="{ascii_name}"'
    if ascii_name != filename:
        header += f"; filename*=UTF-8''{quote(filename)}"
    return header


class _Done:
    pass


class _Failed:
    def __init__(self, error: BaseException):
        self.error = error


_DONE = _Done()


class ArchiveStream:
    """Async iterable of zip bytes for a list of archive entries.

    A failing entry (storage miss, broken upstream stream) never aborts the
    archive: it is replaced by, or followed with, ``<path>.error.txt``. A
    failure of the encoder itself is re-raised to the consumer as
    ArchiveEncodingError so the transfer is cut off rather than completed.
    """

    def __init__(
        self,
        entries: Iterable[ArchiveEntry],
        open_stream: OpenStream,
        *,
        queue_size: int = 16,
        encoder=async_stream_zip,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.entries = list(entries)
        self.open_stream = open_stream
        self.encoder = encoder
        self.clock = clock
        self.failed_paths: List[str] = []
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=max(queue_size, 1))
        self._task: Optional[asyncio.Task] = None
        self._closed = False
        self._allocator = ArchivePathAllocator()

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._produce())

    async def __aiter__(self):
        self.start()
        try:
            while True:
                item = await self._queue.get()
                if item is _DONE:
                    return
                if isinstance(item, _Failed):
                    raise ArchiveEncodingError(str(item.error)) from item.error
                yield item
        finally:
            await self.aclose()

    async def aclose(self) -> None:
        """Stop producing; further storage fetches are not started"""
        self._closed = True
        task = self._task
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    async def _produce(self) -> None:
        try:
            async for chunk in self.encoder(self._member_files()):
                await self._queue.put(chunk)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Archive encoding failed: {e}", exc_info=True)
            await self._queue.put(_Failed(e))
            return
        await self._queue.put(_DONE)

    def _error_member(self, archive_path: str, error: BaseException):
        self.failed_paths.append(archive_path)
        name = self._allocator.allocate(f"{archive_path}{ERROR_SUFFIX}")
        body = f"Failed to download {archive_path}: {error}\n".encode("utf-8")
        return (name, self.clock(), FILE_MODE, ZIP_64, _single_chunk(body))

    async def _member_files(self):
        for entry in self.entries:
            if self._closed:
                logger.info("Archive consumer gone; stopping before remaining entries")
                return
            stream = None
            try:
                stream = await self.open_stream(entry.storage_key)
                first = await _first_chunk(stream)
            except Exception as e:
                logger.error(f"Failed to add {entry.archive_path} to zip: {e}")
                if stream is not None:
                    await _close_stream(stream)
                yield self._error_member(entry.archive_path, e)
                continue

            failure: List[BaseException] = []
            name = self._allocator.allocate(entry.archive_path)
            yield (
                name,
                entry.modified_at or self.clock(),
                FILE_MODE,
                ZIP_64,
                self._entry_chunks(entry.archive_path, first, stream, failure),
            )
            if failure:
                yield self._error_member(entry.archive_path, failure[0])

    async def _entry_chunks(self, path: str, first: bytes, stream, failure: List[BaseException]):
        # Errors after the first byte truncate this entry; the caller appends an error entry
        try:
            if first:
                yield first
            async for chunk in stream:
                if self._closed:
                    return
                yield chunk
        except Exception as e:
            logger.error(f"Stream for {path} failed mid-entry: {e}")
            failure.append(e)
        finally:
            await _close_stream(stream)


async def _close_stream(stream) -> None:
    aclose = getattr(stream, "aclose", None)
    if aclose is not None:
        await aclose()


async def _first_chunk(stream) -> bytes:
    try:
        return await stream.__anext__()
    except StopAsyncIteration:
        return b""


async def _single_chunk(data: bytes):
    yield data


class ArchiveResponse(StreamingResponse):
    """Streams an ArchiveStream; a failed socket write stops the producer"""

    def __init__(self, archive: ArchiveStream, filename: str):
        super().__init__(
            archive,
            media_type="application/zip",
            headers={"Content-Disposition": content_disposition(filename)},
        )
        self.archive = archive
        self.filename = filename

    async def stream_response(self, send) -> None:
        try:
            await super().stream_response(send)
        except OSError:
            logger.info(f"Client disconnected while downloading {self.filename}")
            raise
        finally:
            await self.archive.aclose()
        if self.archive.failed_paths:
            logger.warning(
                f"Archive {self.filename} completed with {len(self.archive.failed_paths)} failed entries"
            )
