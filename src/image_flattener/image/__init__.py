"""Final image derivation, packaging and assembly."""

from .assembler import (
    DockerCliBuilder,
    assemble_image,
    prepare_build_context,
    render_dockerfile,
)
from .final import derive_final_image, normalize_command
from .packager import TarArchiver

__all__ = [
    "derive_final_image",
    "normalize_command",
    "TarArchiver",
    "DockerCliBuilder",
    "assemble_image",
    "prepare_build_context",
    "render_dockerfile",
]
