"""Build a layer chain from an image's history."""

import logging

from ..core.runtime_client import RuntimeClient
from ..core.types import Layer, LayerChain
from ..exceptions import LayerChainError

logger = logging.getLogger(__name__)


async def fetch_layer_chain(client: RuntimeClient, image: str) -> LayerChain:
    """Fetch the ancestry of an image as a validated chain.

    The history lists layers most-derived first; each one is inspected for
    its parent, author and runtime config.

    Args:
        client: Open runtime client
        image: Image name, tag or id

    Returns:
        LayerChain ordered from the image itself down to its base

    Raises:
        LayerNotFoundError: If the image or one of its layers is unknown
        RuntimeUnavailableError: If the runtime cannot be reached
        LayerChainError: If the parent links do not form a chain
    """
    history = await client.get_history(image)
    logger.info(f"Image {image} has {len(history)} history entries")

    layers: list[Layer] = []
    for entry in history:
        if not entry.id:
            raise LayerChainError(f"History of {image} contains an entry without id")
        layer = await client.inspect_layer(entry.id)
        logger.debug(f"Layer {layer.id} (parent: {layer.parent or '-'})")
        layers.append(layer)

    return LayerChain(layers)
