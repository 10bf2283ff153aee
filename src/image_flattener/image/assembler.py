"""Assembly of the flattened image from an archive and inherited metadata."""

import asyncio
import logging
import shutil
import tempfile
from pathlib import Path
from typing import Optional, Protocol

import aiofiles

from ..core.types import FinalImage
from ..exceptions import ImageBuildError
from ..utils.names import normalize_name

logger = logging.getLogger(__name__)

DOCKERFILE_NAME = "Dockerfile"


class ImageBuilder(Protocol):
    """Builds a tagged image from a build context directory."""

    async def build(self, context_dir: Path, tag: str) -> None: ...


def _check_single_line(field: str, values: tuple[str, ...]) -> None:
    for value in values:
        if "\n" in value or "\r" in value:
            raise ImageBuildError(
                f"Inherited {field} spans several lines and cannot be written "
                f"to a Dockerfile: {value!r}"
            )


def render_dockerfile(final: FinalImage) -> str:
    """Render the build descriptor for a flattened image.

    Args:
        final: Image definition with its archive set

    Returns:
        Dockerfile text

    Raises:
        ImageBuildError: If the author, a port or a command token holds a line break
    """
    if final.archive is None:
        raise ValueError("Final image has no archive to add")
    _check_single_line("author", (final.author,) if final.author else ())
    _check_single_line("port", final.ports)
    _check_single_line("command", final.cmd)

    lines = [f"FROM {final.base}"]
    if final.author:
        lines.append(f"MAINTAINER {final.author}")
    lines.append(f"ADD {Path(final.archive).name} /")
    if final.has_ports:
        lines.append(f"EXPOSE {' '.join(final.ports)}")
    if final.has_cmd:
        lines.append(f"CMD {' '.join(final.cmd)}")
    return "\n".join(lines) + "\n"


async def prepare_build_context(
    final: FinalImage, build_root: Optional[Path] = None
) -> Path:
    """Create a build context holding the archive and its Dockerfile.

    Args:
        final: Image definition with its archive set
        build_root: Parent directory for the context (system temp by default)

    Returns:
        Path of the new build context directory
    """
    if final.archive is None:
        raise ValueError("Final image has no archive to add")
    dockerfile = render_dockerfile(final)

    loop = asyncio.get_event_loop()
    if build_root is not None:
        build_root.mkdir(parents=True, exist_ok=True)
    context_dir = Path(
        await loop.run_in_executor(
            None,
            lambda: tempfile.mkdtemp(
                prefix=f"{normalize_name(final.new_name)}-", dir=build_root
            ),
        )
    )
    logger.info(f"Preparing build context in {context_dir}")

    await loop.run_in_executor(None, shutil.copy2, final.archive, context_dir)

    async with aiofiles.open(context_dir / DOCKERFILE_NAME, "w") as f:
        await f.write(dockerfile)

    return context_dir


class DockerCliBuilder:
    """Builds images with ``docker build`` run inside the context directory."""

    def __init__(self, docker: str = "docker", use_sudo: bool = False) -> None:
        self.docker = docker
        self.use_sudo = use_sudo

    def command(self, tag: str) -> list[str]:
        cmd = [self.docker, "build", "-t", tag, "."]
        if self.use_sudo:
            cmd.insert(0, "sudo")
        return cmd

    async def build(self, context_dir: Path, tag: str) -> None:
        """Run the build with ``context_dir`` as working directory.

        Raises:
            ImageBuildError: If the builder cannot start or exits non-zero
        """
        cmd = self.command(tag)
        logger.info(f"Building {tag} in {context_dir}")
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                cwd=str(context_dir),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except OSError as e:
            raise ImageBuildError(f"Cannot run {cmd[0]}: {e}") from e

        output, _ = await process.communicate()
        if process.returncode != 0:
            text = output.decode("utf-8", errors="replace").strip()
            raise ImageBuildError(
                f"{' '.join(cmd)} exited with {process.returncode}: {text}"
            )


async def assemble_image(
    final: FinalImage, builder: ImageBuilder, build_root: Optional[Path] = None
) -> Path:
    """Build the flattened image.

    Args:
        final: Image definition with its archive set
        builder: Image builder to invoke
        build_root: Parent directory for the build context

    Returns:
        Path of the build context that was used
    """
    context_dir = await prepare_build_context(final, build_root)
    await builder.build(context_dir, final.new_name)
    logger.info(f"Built image {final.new_name}")
    return context_dir
