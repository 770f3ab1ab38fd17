"""Per-model advisory locking for registry and history mutations."""

from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

import portalocker

from shared.utils import get_logger

logger = get_logger(__name__)


class ModelLockTimeout(Exception):
    """Raised when another writer holds the model lock past the timeout."""

    def __init__(self, model_name: str, timeout: float) -> None:
        super().__init__(f"Model '{model_name}' is locked by another writer (waited {timeout}s)")
        self.model_name = model_name
        self.timeout = timeout


@contextmanager
def model_lock(lock_path: Path, model_name: str, timeout: float = 10.0) -> Iterator[None]:
    """Hold an exclusive lock on ``lock_path`` for the duration of the block.

    Args:
        lock_path: Lock file inside the model directory.
        model_name: Sanitized model name, for diagnostics.
        timeout: Seconds to wait before giving up.

    Raises:
        ModelLockTimeout: If the lock could not be acquired in time.
    """
    lock_path.parent.mkdir(parents=True, exist_ok=True)
    lock = portalocker.Lock(
        str(lock_path),
        mode="a",
        timeout=timeout,
        flags=portalocker.LockFlags.EXCLUSIVE | portalocker.LockFlags.NON_BLOCKING,
    )
    try:
        lock.acquire()
    except portalocker.LockException as e:
        logger.warning("model_lock_timeout", model_name=model_name, timeout=timeout)
        raise ModelLockTimeout(model_name, timeout) from e

    logger.debug("model_lock_acquired", model_name=model_name)
    try:
        yield
    finally:
        lock.release()
