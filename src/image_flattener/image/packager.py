"""Packaging of the merged tree as a portable tarball."""

import logging
import tarfile
from pathlib import Path
from typing import Optional, Protocol

from ..exceptions import ArchiveError

logger = logging.getLogger(__name__)


class Archiver(Protocol):
    """Serializes a directory tree into a single archive file."""

    def archive(self, source_dir: Path, archive_path: Path) -> Path: ...


def _numeric_owner(tarinfo: tarfile.TarInfo) -> Optional[tarfile.TarInfo]:
    """Drop user and group names so only numeric ids are stored."""
    tarinfo.uname = ""
    tarinfo.gname = ""
    return tarinfo


class TarArchiver:
    """Writes a gzip tarball rooted at ``.`` with numeric ownership.

    Permissions, symlinks, hard links, FIFOs and device nodes are kept as
    tar members; sockets are skipped.
    """

    def __init__(self, compression: str = "gz") -> None:
        self.compression = compression

    @property
    def mode(self) -> str:
        return f"w:{self.compression}" if self.compression else "w"

    def archive(self, source_dir: Path, archive_path: Path) -> Path:
        """Archive the contents of ``source_dir`` into ``archive_path``.

        Raises:
            ArchiveError: If the archive cannot be written
        """
        source_dir = Path(source_dir)
        archive_path = Path(archive_path)

        if not source_dir.is_dir():
            raise ArchiveError(f"Source is not a directory: {source_dir}")
        if archive_path.resolve().is_relative_to(source_dir.resolve()):
            raise ArchiveError(
                f"Archive {archive_path} must not be inside {source_dir}"
            )

        logger.info(f"Archiving {source_dir} -> {archive_path}")
        try:
            with tarfile.open(archive_path, self.mode) as tar:
                tar.add(source_dir, arcname=".", filter=_numeric_owner)
        except (tarfile.TarError, OSError) as e:
            raise ArchiveError(f"Failed to archive {source_dir}: {e}") from e

        return archive_path
