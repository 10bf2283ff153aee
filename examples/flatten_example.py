"""Example usage of the image flattener."""

import asyncio
import logging
import sys

from image_flattener import (
    FlattenConfig,
    FlattenError,
    RuntimeClient,
    RuntimeConfig,
    check_runtime_connectivity,
    flatten_image,
)
from image_flattener.layers import fetch_layer_chain

# Set up logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


async def show_chain(image: str) -> None:
    """Print the layer chain of an image, most-derived first."""
    async with RuntimeClient(RuntimeConfig.from_env()) as client:
        chain = await fetch_layer_chain(client, image)
        for layer in chain:
            marker = "base" if layer.is_base else f"parent {layer.parent[:12]}"
            logger.info(f"  {layer.id[:12]} ({marker}) cmd={list(layer.cmd)}")


async def main(image: str, new_name: str) -> None:
    """Flatten an image, keeping the scratch tree for inspection."""
    try:
        logger.info("Checking runtime connectivity...")
        if not await check_runtime_connectivity():
            logger.error("Runtime is not reachable")
            return

        logger.info(f"Layer chain of {image}:")
        await show_chain(image)

        config = FlattenConfig.from_env()
        final = await flatten_image(image, new_name, flatten_config=config)
        logger.info(f"✓ Built {final.new_name} on top of {final.base[:12]}")

    except FlattenError as e:
        logger.error(f"Flatten error: {e}")


if __name__ == "__main__":
    if len(sys.argv) != 3:
        print(f"usage: {sys.argv[0]} IMAGE NEW_TAG")
        sys.exit(1)
    asyncio.run(main(sys.argv[1], sys.argv[2]))
