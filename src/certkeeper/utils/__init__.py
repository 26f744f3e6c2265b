from .files import atomic_write, sanitize_filename
from .http import StandardClient

__all__ = ["atomic_write", "sanitize_filename", "StandardClient"]
