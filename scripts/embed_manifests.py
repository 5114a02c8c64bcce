"""Embed every record of the active global preview manifests.

Run after importing or regenerating global (CDN) manifests so their content
shows up in semantic search and context building.
"""

import asyncio
import sys

from forge.app.content import content_type_for_manifest
from forge.app.context.manifests import PreviewManifestStore
from forge.app.db.session import session_scope
from forge.app.embedding import ContentEmbedder


async def embed_manifests(manifest_types: list[str] | None = None, dry_run: bool = False) -> int:
    """Embed global manifests. Returns a process exit code.

    Args:
        manifest_types: Only these manifest types (default: all)
        dry_run: Only count records without calling the embedding provider
    """
    with session_scope() as session:
        manifests = PreviewManifestStore(session).list_global(manifest_types)

        total_records = sum(len(m.content or []) for m in manifests)
        print(f"\n{'='*60}")
        print("GLOBAL MANIFEST EMBEDDING")
        print(f"{'='*60}")
        print(f"Found {len(manifests)} manifests with {total_records} records")
        for manifest in manifests:
            content_type = content_type_for_manifest(manifest.manifest_type)
            print(
                f"  {manifest.manifest_type} -> {content_type.value}: "
                f"{len(manifest.content or [])} records (v{manifest.version})"
            )

        if dry_run:
            print("DRY RUN - nothing will be embedded")
            return 0

        if total_records == 0:
            print("✓ Nothing to embed")
            return 0

        embedder = ContentEmbedder()
        try:
            embedded = await embedder.embed_manifests(manifests)
        finally:
            await embedder.store.close()

    print(f"\n✓ Embedded {embedded}/{total_records} records")
    return 0


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Embed global preview manifests")
    parser.add_argument(
        "--type",
        dest="types",
        action="append",
        help="Manifest type to embed (repeatable, default: all)",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Only count records without embedding",
    )
    args = parser.parse_args()

    sys.exit(asyncio.run(embed_manifests(manifest_types=args.types, dry_run=args.dry_run)))
