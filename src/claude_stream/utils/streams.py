from __future__ import annotations

from collections.abc import AsyncIterator
import sys
from typing import Any

import anyio
from anyio.abc import ByteReceiveStream
from anyio.streams.buffered import BufferedByteReceiveStream

from ..decoder import StreamDecoder
from ..logging import get_logger, log_pipeline

logger = get_logger(__name__)


async def iter_bytes_lines(stream: ByteReceiveStream) -> AsyncIterator[bytes]:
    buffered = BufferedByteReceiveStream(stream)
    while True:
        try:
            line = await buffered.receive_until(b"\n", sys.maxsize)
        except anyio.IncompleteRead:
            # A final line without a trailing newline is still a line.
            tail = bytes(buffered.buffer)
            if tail:
                yield tail
            return
        yield line


async def iter_text_lines(stream: ByteReceiveStream) -> AsyncIterator[str]:
    async for line in iter_bytes_lines(stream):
        yield line.decode("utf-8", errors="replace").rstrip("\r")


async def feed_decoder(decoder: StreamDecoder, stream: ByteReceiveStream) -> int:
    """Ingest every line of ``stream`` in order; return how many were fed."""
    seq = 0
    async for line in iter_text_lines(stream):
        seq += 1
        events = decoder.ingest(line)
        log_pipeline(
            logger,
            "stream.line",
            jsonl_seq=seq,
            events=[type(evt).__name__ for evt in events],
        )
    return seq


async def drain_stderr(
    stream: ByteReceiveStream,
    logger: Any,
    tag: str,
) -> None:
    try:
        async for line in iter_text_lines(stream):
            log_pipeline(
                logger,
                "subprocess.stderr",
                tag=tag,
                line=line,
            )
    except (anyio.BrokenResourceError, anyio.ClosedResourceError) as exc:
        log_pipeline(
            logger,
            "subprocess.stderr.error",
            tag=tag,
            error=str(exc),
        )
