import asyncio
from typing import Iterator, Sequence, TypeVar

T = TypeVar("T")

SCAN_BATCH_SIZE = 100


async def yield_control() -> None:
    """Give other tasks on the event loop a chance to run."""
    await asyncio.sleep(0)


def iter_batches(items: Sequence[T], batch_size: int = SCAN_BATCH_SIZE) -> Iterator[Sequence[T]]:
    for start in range(0, len(items), batch_size):
        yield items[start:start + batch_size]
