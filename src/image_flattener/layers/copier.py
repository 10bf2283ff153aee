"""Tree copy capabilities used to apply a layer onto the scratch tree."""

import logging
import os
import shutil
import stat
import subprocess
import sys
import uuid
from pathlib import Path
from typing import Protocol

logger = logging.getLogger(__name__)


class TreeCopier(Protocol):
    """Copies the contents of one directory onto another.

    Entries already present in ``destination`` are overwritten. Failures are
    raised as ``OSError`` or ``subprocess.SubprocessError``.
    """

    def copy_tree(self, source: Path, destination: Path) -> None: ...


def _make_writable_and_retry(func, path, _exc) -> None:
    if not os.path.lexists(path):
        return
    parent = os.path.dirname(path)
    os.chmod(parent, stat.S_IMODE(os.lstat(parent).st_mode) | stat.S_IRWXU)
    if os.path.isdir(path) and not os.path.islink(path):
        os.chmod(path, stat.S_IMODE(os.lstat(path).st_mode) | stat.S_IRWXU)
        if func is not os.rmdir:
            # the directory could not be listed, so its contents were skipped
            remove_tree(path)
            return
    func(path)


def remove_tree(path: str | Path) -> None:
    """Remove a directory tree, including read-only directories."""
    if sys.version_info >= (3, 12):
        shutil.rmtree(path, onexc=_make_writable_and_retry)
    else:
        shutil.rmtree(path, onerror=_make_writable_and_retry)


def remove_path(path: Path) -> None:
    """Remove a file, symlink or whole directory tree."""
    if os.path.isdir(path) and not os.path.islink(path):
        remove_tree(path)
    else:
        os.unlink(path)


class LocalTreeCopier:
    """In-process copier that keeps ownership, modes, timestamps and links.

    Symlinks are copied as links, hard links within one layer stay linked,
    and FIFOs, sockets and device nodes are recreated. Every non-directory
    entry is written under a temporary name and renamed over its target.
    Ownership is only restored when running as root.
    """

    def __init__(self, preserve_owner: bool | None = None) -> None:
        if preserve_owner is None:
            preserve_owner = os.geteuid() == 0
        self.preserve_owner = preserve_owner

    def copy_tree(self, source: Path, destination: Path) -> None:
        source = Path(source)
        destination = Path(destination)
        if not source.is_dir():
            raise NotADirectoryError(f"Layer content root is not a directory: {source}")
        destination.mkdir(parents=True, exist_ok=True)
        self._copy_entry(source, destination, {})

    def _copy_entry(
        self, src: Path, dst: Path, links: dict[tuple[int, int], Path]
    ) -> None:
        st = os.lstat(src)

        if stat.S_ISDIR(st.st_mode):
            self._copy_directory(src, dst, st, links)
            return

        key = (st.st_dev, st.st_ino)
        tmp = dst.parent / f".flatten-{uuid.uuid4().hex[:12]}"
        try:
            if st.st_nlink > 1 and key in links:
                os.link(links[key], tmp)
            else:
                self._create_node(src, tmp, st)
                self._apply_metadata(tmp, st)

            if os.path.isdir(dst) and not os.path.islink(dst):
                remove_tree(dst)
            os.replace(tmp, dst)
        except BaseException:
            if os.path.lexists(tmp):
                os.unlink(tmp)
            raise

        if st.st_nlink > 1:
            links.setdefault(key, dst)

    def _copy_directory(
        self,
        src: Path,
        dst: Path,
        st: os.stat_result,
        links: dict[tuple[int, int], Path],
    ) -> None:
        if os.path.lexists(dst) and not (
            os.path.isdir(dst) and not os.path.islink(dst)
        ):
            os.unlink(dst)

        if os.path.lexists(dst):
            # keep the directory writable until its children are in place
            current = stat.S_IMODE(os.lstat(dst).st_mode)
            os.chmod(dst, current | stat.S_IRWXU)
        else:
            os.mkdir(dst, stat.S_IMODE(st.st_mode) | stat.S_IRWXU)

        with os.scandir(src) as entries:
            names = sorted(entry.name for entry in entries)
        for name in names:
            self._copy_entry(src / name, dst / name, links)

        self._apply_metadata(dst, st)

    def _create_node(self, src: Path, dst: Path, st: os.stat_result) -> None:
        mode = st.st_mode
        if stat.S_ISREG(mode):
            shutil.copyfile(src, dst, follow_symlinks=False)
        elif stat.S_ISLNK(mode):
            os.symlink(os.readlink(src), dst)
        elif stat.S_ISFIFO(mode):
            os.mkfifo(dst, stat.S_IMODE(mode))
        elif stat.S_ISCHR(mode) or stat.S_ISBLK(mode) or stat.S_ISSOCK(mode):
            os.mknod(dst, mode, st.st_rdev)
        else:
            raise OSError(f"Unsupported file type {stat.S_IFMT(mode):o}: {src}")

    def _apply_metadata(self, path: Path, st: os.stat_result) -> None:
        is_link = stat.S_ISLNK(st.st_mode)
        if self.preserve_owner:
            os.chown(path, st.st_uid, st.st_gid, follow_symlinks=False)
        if not is_link:
            os.chmod(path, stat.S_IMODE(st.st_mode))
        if not is_link or os.utime in os.supports_follow_symlinks:
            os.utime(
                path, ns=(st.st_atime_ns, st.st_mtime_ns), follow_symlinks=False
            )


class RsyncCopier:
    """Copier that shells out to ``rsync``.

    Uses archive mode with hard links, sparse files, device and special
    files, staying on one filesystem.
    """

    def __init__(self, rsync: str = "rsync", use_sudo: bool = False) -> None:
        self.rsync = rsync
        self.use_sudo = use_sudo

    def command(self, source: Path, destination: Path) -> list[str]:
        cmd = [
            self.rsync,
            "-aHSx",
            "--devices",
            "--specials",
            f"{source}/",
            f"{destination}/",
        ]
        if self.use_sudo:
            cmd.insert(0, "sudo")
        return cmd

    def copy_tree(self, source: Path, destination: Path) -> None:
        Path(destination).mkdir(parents=True, exist_ok=True)
        cmd = self.command(Path(source), Path(destination))
        logger.debug(f"Running {' '.join(cmd)}")
        try:
            subprocess.run(cmd, check=True, capture_output=True, text=True)
        except subprocess.CalledProcessError as e:
            logger.error(f"rsync failed ({e.returncode}): {(e.stderr or '').strip()}")
            raise


def make_copier(name: str, use_sudo: bool = False) -> TreeCopier:
    """Create a copier by name (``python`` or ``rsync``)."""
    if name == "python":
        return LocalTreeCopier()
    if name == "rsync":
        return RsyncCopier(use_sudo=use_sudo)
    raise ValueError(f"Unsupported copier: {name}")
