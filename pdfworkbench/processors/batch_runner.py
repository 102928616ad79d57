import logging
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from typing import Callable, List, Sequence, TypeVar

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


class BatchRunner:
    """
    Apply one function to several inputs.

    With ``max_workers=1`` (the default) items run strictly one after another
    on the calling thread, so only one document's buffers are alive at a
    time. With more workers a ThreadPoolExecutor is used. Results always come
    back in input order. The first failure aborts the batch: pending items are
    cancelled and the exception propagates.
    """

    def __init__(self, max_workers: int = 1):
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self.max_workers = max_workers

    def run(self, items: Sequence[T], fn: Callable[[T], R]) -> List[R]:
        if self.max_workers == 1 or len(items) <= 1:
            return [fn(item) for item in items]

        results: List[R] = [None] * len(items)
        with ThreadPoolExecutor(max_workers=min(self.max_workers, len(items))) as executor:
            futures = {executor.submit(fn, item): index for index, item in enumerate(items)}
            done, pending = wait(futures, return_when=FIRST_EXCEPTION)

            for future in done:
                error = future.exception()
                if error is not None:
                    for other in pending:
                        other.cancel()
                    logger.error(f"Batch item {futures[future] + 1}/{len(items)} failed: {error}")
                    raise error

            for future, index in futures.items():
                results[index] = future.result()

        logger.info(f"Batch of {len(items)} items finished with {self.max_workers} workers")
        return results
