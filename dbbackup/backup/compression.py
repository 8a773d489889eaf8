"""
Gzip compression for database dumps.

Dumps can be arbitrarily large, so the file is streamed through gzip in
fixed-size chunks rather than read into memory.
"""

import gzip
import os
import shutil
import zlib

from .models import BackupError


GZIP_SUFFIX = '.gz'
CHUNK_SIZE = 1024 * 1024


class CompressionError(BackupError):
    """Raised when a dump cannot be compressed."""
    pass


def compressed_path_for(raw_path: str) -> str:
    """Return the gzip output path for a raw dump."""
    return f"{raw_path}{GZIP_SUFFIX}"


def compress_file(raw_path: str, compression_level: int = 9) -> str:
    """
    Compress a file into a single-stream gzip file next to it.

    The raw file is left in place; removing it is the caller's job.

    Args:
        raw_path: Path to the uncompressed dump
        compression_level: gzip level 1-9

    Returns:
        Path to the .gz file, written and closed

    Raises:
        CompressionError: On any read, compress or write failure
    """
    if not 1 <= compression_level <= 9:
        raise CompressionError(f"Invalid compression level: {compression_level}")

    output_path = compressed_path_for(raw_path)

    try:
        with open(raw_path, 'rb') as src:
            with gzip.open(output_path, 'wb', compresslevel=compression_level) as dst:
                shutil.copyfileobj(src, dst, CHUNK_SIZE)
    except (OSError, zlib.error) as e:
        raise CompressionError(f"Failed to compress {os.path.basename(raw_path)}: {e}")

    return output_path


def get_file_size(path: str) -> int:
    """
    Get the size of a file in bytes.

    Raises:
        CompressionError: If the file doesn't exist or cannot be accessed
    """
    try:
        return os.path.getsize(path)
    except FileNotFoundError:
        raise CompressionError(f"File not found: {path}")
    except OSError as e:
        raise CompressionError(f"Failed to get file size: {e}")
