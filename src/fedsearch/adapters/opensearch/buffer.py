"""Bounded response buffering — Memory up to a threshold, then a temp file."""

from __future__ import annotations

import tempfile
from collections.abc import AsyncIterable, Iterator
from contextlib import contextmanager
from typing import IO

SPILL_THRESHOLD_BYTES = 1_000_000


@contextmanager
def spill_buffer(threshold: int = SPILL_THRESHOLD_BYTES) -> Iterator[IO[bytes]]:
    """Yield a binary buffer that spills to a temporary file past *threshold* bytes.

    The backing file is removed when the context exits, whether it exits
    normally, by exception or by cancellation.
    """
    with tempfile.SpooledTemporaryFile(max_size=threshold, mode="w+b") as buffer:
        yield buffer


async def fill_from(buffer: IO[bytes], chunks: AsyncIterable[bytes]) -> int:
    """Copy an async byte stream into *buffer* and rewind it.

    Returns:
        Number of bytes written.
    """
    total = 0
    async for chunk in chunks:
        buffer.write(chunk)
        total += len(chunk)
    buffer.seek(0)
    return total
