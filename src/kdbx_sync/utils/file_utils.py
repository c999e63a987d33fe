"""File utility functions."""

import os
import shutil
from pathlib import Path
from typing import Union

PathLike = Union[str, Path]


class FileHelper:
    """Helper class for file operations."""

    @staticmethod
    def format_file_size(size_bytes: int) -> str:
        """Format file size in human readable format.

        Args:
            size_bytes: Size in bytes

        Returns:
            Formatted size string
        """
        if size_bytes == 0:
            return "0 B"

        size_names = ["B", "KB", "MB", "GB", "TB", "PB"]
        i = 0

        while size_bytes >= 1024 and i < len(size_names) - 1:
            size_bytes /= 1024.0
            i += 1

        return f"{size_bytes:.1f} {size_names[i]}"

    @staticmethod
    def is_hidden_name(name: str) -> bool:
        """Check if a directory entry name marks a hidden file.

        Args:
            name: Base name to check

        Returns:
            True if the name starts with the hidden-file marker
        """
        return name.startswith('.')

    @staticmethod
    def write_durable(file_path: PathLike, data: bytes, exclusive: bool = False) -> None:
        """Write bytes and flush them to durable storage before returning.

        Args:
            file_path: Destination path
            data: Content to write
            exclusive: Fail with FileExistsError instead of replacing an existing file
        """
        mode = 'xb' if exclusive else 'wb'
        with open(file_path, mode) as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())

    @staticmethod
    def copy_durable(source: PathLike, destination: PathLike) -> None:
        """Copy file content and flush the destination to durable storage.

        Args:
            source: File to copy
            destination: Path receiving the copy (replaced if present)

        Raises:
            shutil.SameFileError: If both paths name the same file
        """
        if os.path.exists(destination) and os.path.samefile(source, destination):
            raise shutil.SameFileError(f"{source} and {destination} are the same file")
        with open(source, 'rb') as src, open(destination, 'wb') as dst:
            shutil.copyfileobj(src, dst)
            dst.flush()
            os.fsync(dst.fileno())

    @staticmethod
    def replace_durable(file_path: PathLike, data: bytes) -> None:
        """Atomically replace a file's content via a sibling temp file.

        Args:
            file_path: File to replace
            data: New content
        """
        file_path = Path(file_path)
        tmp_path = file_path.with_name(f".{file_path.name}.part")
        FileHelper.write_durable(tmp_path, data)
        os.replace(tmp_path, file_path)
