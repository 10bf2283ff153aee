"""Derivation of the flattened image definition from a layer chain."""

from collections.abc import Sequence
from pathlib import Path
from typing import Optional

from ..core.types import FinalImage, LayerChain
from ..exceptions import EmptyChainError

# Tokens assumed to be the runtime's shell wrapper, e.g. ["/bin/sh", "-c"]
SHELL_PREFIX_LENGTH = 2


def normalize_command(cmd: Sequence[str]) -> tuple[str, ...]:
    """Strip the shell wrapper from an inherited command.

    Runtimes record commands as ``["/bin/sh", "-c", ...]``. Any command
    longer than two tokens loses its first two; shorter commands yield an
    empty command. The tokens are not inspected, so a three-token command
    that was never wrapped in a shell is truncated as well.
    """
    if len(cmd) > SHELL_PREFIX_LENGTH:
        return tuple(cmd[SHELL_PREFIX_LENGTH:])
    return ()


def derive_final_image(
    chain: LayerChain,
    new_name: str,
    original_name: Optional[str] = None,
    archive: Optional[Path] = None,
) -> FinalImage:
    """Build the definition of the flattened image.

    The base layer of the chain becomes the new image's base; author, ports
    and command come from the most-derived layer.

    Raises:
        EmptyChainError: If the chain holds fewer than two layers
    """
    if len(chain) < 2:
        raise EmptyChainError(
            f"Need a base and at least one derived layer, got {len(chain)}"
        )

    head = chain.head
    return FinalImage(
        base=chain.base.id,
        new_name=new_name,
        original_name=original_name or head.id,
        author=head.author,
        ports=tuple(head.ports),
        cmd=normalize_command(head.cmd),
        archive=archive,
    )
