"""Files received from multipart form uploads."""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from collections.abc import Iterable

_SIZE_RE = re.compile(r"^([0-9]+)(b|kb|mb|gb|tb)$")
_MAX_INT64 = 2**63 - 1
_UNIT_MULTIPLIERS = {
    "b": 1,
    "kb": 1024,
    "mb": 1024 * 1024,
    "gb": 1024 * 1024 * 1024,
    "tb": 1024 * 1024 * 1024 * 1024,
}


class UploadError(Exception):
    """Raised when an uploaded file cannot be stored."""


@dataclass
class FileInfo:
    """Metadata and content of one uploaded file."""

    filename: str = ""
    size: int = 0
    content_type: str = ""
    data: bytes = field(default=b"", repr=False)


@dataclass
class UploadedFile:
    """An uploaded file held in memory."""

    info: FileInfo

    @property
    def file_name(self) -> str:
        return self.info.filename

    @property
    def size(self) -> int:
        return self.info.size

    @property
    def content_type(self) -> str:
        return self.info.content_type

    @property
    def data(self) -> bytes:
        return self.info.data

    def save(self, destination: str | os.PathLike[str], name: str | None = None) -> None:
        """Write the file into *destination*, under *name* or its own file name."""
        if name is not None:
            full_path = os.path.join(destination, name)
        else:
            if not self.info.data:
                raise UploadError("no file available to save")
            full_path = os.path.join(destination, self.info.filename)

        try:
            os.makedirs(destination, exist_ok=True)
        except OSError as exc:
            raise UploadError("failed to create destination directory") from exc

        try:
            handle = open(full_path, "wb")
        except OSError as exc:
            raise UploadError("failed to create file on disk") from exc

        with handle:
            try:
                handle.write(self.info.data)
            except OSError as exc:
                raise UploadError("failed to save file") from exc


def save_all(files: Iterable[UploadedFile], destination: str | os.PathLike[str]) -> None:
    """Save every file into *destination*, stopping at the first failure."""
    for uploaded in files:
        uploaded.save(destination)


def parse_size(size_str: str) -> int:
    """Convert a size such as ``"10MB"`` into a number of bytes."""
    match = _SIZE_RE.match(size_str.strip().lower())
    if match is None:
        raise ValueError("invalid size format")
    value = int(match.group(1))
    if value > _MAX_INT64:
        raise ValueError("invalid size number")
    return value * _UNIT_MULTIPLIERS[match.group(2)]