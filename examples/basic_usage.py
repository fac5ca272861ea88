"""
Basic usage example for eventbuffer.

Buffers a handful of events per user, lets the count threshold deliver a
batch, and shows that undelivered events survive a restart through the
file store.
"""

import asyncio
import sys
import tempfile
from pathlib import Path

# Add src to path for development
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from eventbuffer import MemorySink, RouterBuilder, configure_logging


async def main() -> None:
    """Demonstrate ingest, threshold flush and restart recovery."""
    configure_logging("INFO")
    state_dir = tempfile.mkdtemp(prefix="eventbuffer-")
    sink = MemorySink()

    router = (
        RouterBuilder()
        .with_max_event_count(3)
        .with_flush_interval_ms(5_000)
        .with_file_store(state_dir)
        .with_sink(sink)
        .build()
    )

    # Three events for alice trip the count threshold
    for page in ("/", "/pricing", "/signup"):
        await router.ingest("alice", {"ev": "pageview", "uid": "alice", "page": page})
    await router.ingest("bob", {"ev": "pageview", "uid": "bob", "page": "/"})
    await router.wait_idle()
    print(f"delivered batches: {sink.batches}")

    # Stop without flushing; bob's event stays on disk
    await router.close(flush=False)

    restarted = RouterBuilder().with_file_store(state_dir).with_sink(sink).build()
    async with restarted:
        core = await restarted.activate("bob")
        print(f"rehydrated for bob: {core.pending()}")

    print(f"all delivered events: {sink.events}")


if __name__ == "__main__":
    asyncio.run(main())
