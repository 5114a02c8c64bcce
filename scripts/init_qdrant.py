"""Create the per-content-type vector collections.

Safe to run repeatedly: existing collections are left untouched.
"""

import asyncio
import sys

from forge.app.config import get_qdrant_url
from forge.app.content import ContentType
from forge.app.vector import StoreUnavailable, VectorStore
from forge.app.vector.store import collection_name


async def init_qdrant(show_stats: bool = False) -> int:
    """Ensure collections exist. Returns a process exit code."""
    store = VectorStore()
    print(f"\n{'='*60}")
    print("QDRANT INITIALIZATION")
    print(f"{'='*60}")
    print(f"URL: {get_qdrant_url()}")

    try:
        created = await store.ensure_collections()
        for content_type in ContentType:
            name = collection_name(content_type)
            marker = "created" if name in created else "exists"
            print(f"  ✓ {name} ({marker})")

        if show_stats:
            stats = await store.get_stats()
            print("\nPoint counts:")
            for content_type, info in stats.items():
                print(f"  {content_type}: {info['points_count']} ({info['status']})")
    except StoreUnavailable as e:
        print(f"\n❌ Qdrant unavailable: {e}")
        return 1
    finally:
        await store.close()

    print(f"\nCreated {len(created)} new collections")
    return 0


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Create Qdrant content collections")
    parser.add_argument(
        "--stats", action="store_true", help="Print point counts after initialization"
    )
    args = parser.parse_args()

    sys.exit(asyncio.run(init_qdrant(show_stats=args.stats)))
