"""Content equality of two files via SHA-256 digests."""

import hashlib
from pathlib import Path
from typing import Union

from ..exceptions import LocalFileError

CHUNK_SIZE = 64 * 1024


def file_digest(file_path: Union[str, Path]) -> bytes:
    """Stream a file through SHA-256.

    Args:
        file_path: File to hash

    Returns:
        Raw digest bytes

    Raises:
        LocalFileError: If the file cannot be opened or read
    """
    digest = hashlib.sha256()
    try:
        with open(file_path, 'rb') as f:
            for chunk in iter(lambda: f.read(CHUNK_SIZE), b''):
                digest.update(chunk)
    except OSError as e:
        raise LocalFileError(f"can't read file for checksum: {e}", path=file_path) from e
    return digest.digest()


def equal_content(path_a: Union[str, Path], path_b: Union[str, Path]) -> bool:
    """Check whether two files hold byte-identical content.

    An unreadable file is an error, never a mismatch.

    Raises:
        LocalFileError: If either file cannot be opened or read
    """
    return file_digest(path_a) == file_digest(path_b)
