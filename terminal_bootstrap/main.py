"""
kopf entry point for the terminal bootstrap controller.

Run with ``kopf run -m terminal_bootstrap.main --all-namespaces`` or the
``terminal-bootstrap`` console script. Startup bootstraps the garden cluster
once and starts the seed queue. Seed watch events submit seeds as they are
listed, added or changed, and a background resync resubmits all of them at
the configured interval. Seeds are only read, never patched.
"""
import asyncio
import contextlib
import logging
from urllib.parse import urlparse

import kopf

from terminal_bootstrap.audit import audit
from terminal_bootstrap.bootstrap import BootstrapPipeline, bootstrap_garden
from terminal_bootstrap.config import load_config
from terminal_bootstrap.garden import GARDEN_GROUP, GARDEN_VERSION, GardenClient
from terminal_bootstrap.k8s import ClusterClientSet
from terminal_bootstrap.models import Seed
from terminal_bootstrap.seed_queue import SeedBootstrapQueue

logger = logging.getLogger("terminal-bootstrap")

# Resolved once at import; handlers and the resync loop share it.
CONFIG = load_config()
LIVENESS_ENDPOINT = "http://0.0.0.0:8080/healthz"


class _LivenessCheckFilter(logging.Filter):
    """Drops kubelet requests to the kopf liveness endpoint from the access log."""

    def filter(self, record):
        return f"GET {urlparse(LIVENESS_ENDPOINT).path}" not in record.getMessage()


logging.getLogger("aiohttp.access").addFilter(_LivenessCheckFilter())


async def _bootstrap_garden(clients: ClusterClientSet) -> None:
    loop = asyncio.get_running_loop()
    try:
        await loop.run_in_executor(None, bootstrap_garden, clients, CONFIG)
        audit("garden.bootstrapped", clients.name)
    except Exception as e:
        logger.error(f"💥 failed to bootstrap terminal resources for garden cluster: {e}")
        audit("garden.failed", clients.name, error=str(e))


@kopf.on.startup()
async def startup(memo: kopf.Memo, **kwargs):
    logger.info("🚀 terminal bootstrap controller starting up")
    garden_clients = ClusterClientSet.in_cluster(name="garden")
    garden = GardenClient(
        garden_clients,
        credential_timeout_seconds=CONFIG.credential_timeout_seconds,
        credential_poll_seconds=CONFIG.credential_poll_seconds,
    )
    queue = SeedBootstrapQueue(CONFIG, BootstrapPipeline(CONFIG, garden))
    await queue.start()
    memo.bootstrap_queue = queue

    if not CONFIG.enabled:
        logger.info("⏸️  terminal bootstrap disabled, seeds will not be bootstrapped")
        return

    # Fire-and-forget: don't block kopf startup (and its liveness endpoint)
    # while talking to the garden API
    memo.garden_bootstrap = asyncio.create_task(_bootstrap_garden(garden_clients))
    memo.seed_resync = asyncio.create_task(_resync_seeds(garden, queue, CONFIG.resync_seconds))
    logger.info(f"✅ terminal bootstrap controller ready (resync={CONFIG.resync_seconds}s)")


@kopf.on.cleanup()
async def cleanup(memo: kopf.Memo, **kwargs):
    resync = memo.get("seed_resync")
    if resync is not None:
        resync.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await resync
    queue = memo.get("bootstrap_queue")
    if queue is not None:
        await queue.stop()


async def _resync_seeds(garden: GardenClient, queue: SeedBootstrapQueue, interval: float) -> None:
    """Resubmit every seed each ``interval`` seconds; Seed objects are never patched."""
    loop = asyncio.get_running_loop()
    while True:
        await asyncio.sleep(interval)
        try:
            seeds = await loop.run_in_executor(None, garden.list_seeds)
        except Exception as e:
            logger.error(f"💥 failed to list seeds for resync: {e}")
            continue
        logger.info(f"🔁 resyncing {len(seeds)} seed(s)")
        for seed in seeds:
            queue.submit(seed)


@kopf.on.event(GARDEN_GROUP, GARDEN_VERSION, "seeds")
async def seed_event(event, body, memo: kopf.Memo, **kwargs):
    """Submit a listed, added or modified seed; the queue applies the admission gates."""
    if event.get("type") == "DELETED":
        return
    memo.bootstrap_queue.submit(Seed.from_resource(body))


def run() -> None:
    kopf.configure(verbose=False)
    kopf.run(clusterwide=True, liveness_endpoint=LIVENESS_ENDPOINT)
