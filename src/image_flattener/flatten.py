"""Async flatten pipeline: history, merge, archive, build."""

import asyncio
import dataclasses
import logging
from pathlib import Path
from typing import Optional

from .core.runtime_client import RuntimeClient
from .core.types import FinalImage, FlattenConfig, RuntimeConfig
from .image.assembler import DockerCliBuilder, ImageBuilder, assemble_image
from .image.final import derive_final_image
from .image.packager import Archiver, TarArchiver
from .layers.chain import fetch_layer_chain
from .layers.copier import TreeCopier, make_copier, remove_tree
from .layers.merger import LayerMerger
from .layers.store import LayerStore
from .utils.names import normalize_name

logger = logging.getLogger(__name__)

ROOTFS_DIRNAME = "rootfs"


async def check_runtime_connectivity(
    runtime_config: Optional[RuntimeConfig] = None,
) -> bool:
    """Check whether the container runtime can be reached.

    Args:
        runtime_config: Runtime connection settings (defaults from environment)

    Returns:
        bool: True if the runtime answered on the socket or the fallback endpoint
    """
    async with RuntimeClient(runtime_config or RuntimeConfig.from_env()) as client:
        return await client.ping()


async def flatten_image(
    image: str,
    new_name: str,
    runtime_config: Optional[RuntimeConfig] = None,
    flatten_config: Optional[FlattenConfig] = None,
    client: Optional[RuntimeClient] = None,
    copier: Optional[TreeCopier] = None,
    archiver: Optional[Archiver] = None,
    builder: Optional[ImageBuilder] = None,
) -> FinalImage:
    """Flatten ``image`` into a single-layer image tagged ``new_name``.

    The image's history is walked down to its base layer. Every layer above
    the base is merged into a scratch tree, whiteouts are resolved, and the
    tree is archived and added on top of the base layer by the builder.

    Args:
        image: Image to flatten (name, tag or id)
        new_name: Tag of the flattened image
        runtime_config: Runtime connection settings (defaults from environment)
        flatten_config: Storage settings (defaults from environment)
        client: Open runtime client to use instead of creating one
        copier: Tree copier used to apply layers
        archiver: Archiver used to package the merged tree
        builder: Image builder used to create the new image

    Returns:
        FinalImage: Definition of the image that was built

    Raises:
        LayerNotFoundError: If the image or one of its layers is unknown
        RuntimeUnavailableError: If the runtime or layer storage is unreachable
        EmptyChainError: If the image has nothing to flatten
        CopyFailedError: If a layer cannot be applied
        WhiteoutResolutionError: If whiteouts cannot be resolved
        ArchiveError: If the merged tree cannot be archived
        ImageBuildError: If the new image cannot be built

    Examples:
        final = await flatten_image("myapp:latest", "myapp:flat")
        print(f"Built {final.new_name} on top of {final.base}")
    """
    if client is None:
        async with RuntimeClient(runtime_config or RuntimeConfig.from_env()) as owned:
            return await flatten_image(
                image,
                new_name,
                flatten_config=flatten_config,
                client=owned,
                copier=copier,
                archiver=archiver,
                builder=builder,
            )

    config = flatten_config or FlattenConfig.from_env()

    logger.info(f"Fetching history of {image}")
    chain = await fetch_layer_chain(client, image)
    final = derive_final_image(chain, new_name, original_name=image)
    logger.info(
        f"Flattening {len(chain.derived_layers)} layers of {image} onto base {final.base}"
    )

    merger = LayerMerger(
        LayerStore(config.graph_root),
        copier or make_copier(config.copier, use_sudo=config.use_sudo),
        scratch_root=config.scratch_root,
    )
    archiver = archiver or TarArchiver()
    builder = builder or DockerCliBuilder(use_sudo=config.use_sudo)

    loop = asyncio.get_event_loop()
    scratch = await loop.run_in_executor(
        None, merger.allocate_scratch, f"{normalize_name(image)}-"
    )
    context_dir: Optional[Path] = None
    try:
        rootfs = await loop.run_in_executor(
            None, merger.merge, chain.derived_layers, scratch / ROOTFS_DIRNAME
        )

        archive_path = scratch / f"{scratch.name}.tar.gz"
        await loop.run_in_executor(None, archiver.archive, rootfs, archive_path)
        final = dataclasses.replace(final, archive=archive_path)

        context_dir = await assemble_image(final, builder, build_root=config.scratch_root)
    except Exception:
        logger.error(f"Flattening {image} failed, scratch tree left at {scratch}")
        raise

    if not config.keep_scratch:
        for path in (scratch, context_dir):
            if path is not None:
                try:
                    await loop.run_in_executor(None, remove_tree, path)
                except OSError as e:
                    logger.warning(f"Could not remove {path}, leaving it in place: {e}")
    else:
        logger.info(f"Keeping scratch tree {scratch} and build context {context_dir}")

    return final
