import os
from pathlib import Path
from typing import Union, Optional

from ..logging import get_logger

logger = get_logger(__name__)


def temp_path_for(target_path: Union[str, Path]) -> Path:
    """Sibling temporary path used by atomic_write (``<path>.tmp``)."""
    target = Path(target_path)
    return target.with_name(target.name + ".tmp")


def atomic_write(target_path: Union[str, Path], data: Union[str, bytes], mode: Optional[int] = None):
    """
    Writes data to a file atomically via a sibling ``.tmp`` file.

    The canonical path always holds either the previous complete content or
    the new complete content. A crash between the write and the rename
    leaves only the ``.tmp`` file behind.
    """
    target = Path(target_path)
    target.parent.mkdir(parents=True, exist_ok=True)
    temp_name = temp_path_for(target)

    with open(temp_name, 'w' if isinstance(data, str) else 'wb') as tf:
        tf.write(data)
        tf.flush()
        os.fsync(tf.fileno())

    if mode is not None:
        os.chmod(temp_name, mode)

    try:
        os.replace(temp_name, target)
    except OSError as e:
        logger.error(f"Failed to perform atomic write to {target}: {e}")
        if os.path.exists(temp_name):
            os.unlink(temp_name)
        raise


def sanitize_filename(name: str) -> str:
    """
    Reduce an identity name to a safe file name component.

    Strips directory components and characters outside ``[A-Za-z0-9._@-]``.
    """
    safe_name = os.path.basename(name.replace("\\", "/"))
    cleaned = "".join(c if c.isalnum() or c in "._@-" else "_" for c in safe_name)
    return cleaned.lstrip(".") or "unnamed"
