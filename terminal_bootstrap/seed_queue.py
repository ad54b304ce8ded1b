"""
Serializing bootstrap queue for seeds.

Seeds are admitted synchronously by ``submit`` and bootstrapped by a fixed
pool of asyncio workers, each running the blocking pipeline on the default
executor. With the default width of 1 bootstraps run strictly one after the
other. A seed is never queued twice: while it is enqueued or running, further
submissions for it are dropped.
"""
import asyncio
import logging
import time

from terminal_bootstrap.audit import audit
from terminal_bootstrap.bootstrap import BootstrapError, BootstrapPipeline
from terminal_bootstrap.config import TerminalConfig
from terminal_bootstrap.models import BootstrapResult, BootstrapTask, Seed, TaskState

logger = logging.getLogger("terminal-bootstrap")


def log_result(result: BootstrapResult) -> None:
    """Default observer: log the outcome and emit an audit line."""
    if result.succeeded:
        logger.info(f"✅ [{result.seed_name}] bootstrap finished in {result.duration_seconds:.1f}s")
        audit("bootstrap.succeeded", result.seed_name, duration=round(result.duration_seconds, 1))
        return
    logger.error(
        f"💥 [{result.seed_name}] failed to bootstrap terminal resources at step={result.step}: "
        f"{type(result.error).__name__}: {result.error}"
    )
    audit("bootstrap.failed", result.seed_name, step=result.step, error=str(result.error))


class SeedBootstrapQueue:
    def __init__(self, config: TerminalConfig, pipeline: BootstrapPipeline, observer=log_result):
        self.config = config
        self.pipeline = pipeline
        self.observer = observer
        self.width = max(1, config.queue_width)
        self._queue: asyncio.Queue | None = None
        self._workers: list[asyncio.Task] = []
        self._pending: set[str] = set()

    @property
    def running(self) -> bool:
        return bool(self._workers)

    async def start(self) -> None:
        if self._workers:
            return
        self._queue = asyncio.Queue()
        self._workers = [
            asyncio.create_task(self._worker(), name=f"terminal-bootstrap-worker-{i}")
            for i in range(self.width)
        ]
        logger.info(f"🚦 bootstrap queue started (width={self.width})")

    async def stop(self) -> None:
        """Cancel the workers. Queued tasks are dropped."""
        workers, self._workers = self._workers, []
        for worker in workers:
            worker.cancel()
        await asyncio.gather(*workers, return_exceptions=True)
        if self._queue is not None and not self._queue.empty():
            logger.warning(f"⚠️  bootstrap queue stopped with {self._queue.qsize()} task(s) dropped")
        self._pending.clear()
        logger.info("🛑 bootstrap queue stopped")

    async def join(self) -> None:
        """Wait until every submitted task has been processed."""
        if self._queue is not None:
            await self._queue.join()

    def submit(self, seed: Seed) -> None:
        """Admit ``seed`` for bootstrapping. Skipped seeds cause no API calls."""
        if self.config.disabled:
            logger.debug(f"terminal bootstrap disabled by config, skipping seed {seed.name}")
            return
        if not self.config.required_config_exists:
            logger.debug(f"terminal bootstrap required config missing, skipping seed {seed.name}")
            return
        if seed.bootstrap_disabled:
            logger.debug(f"terminal bootstrap disabled for seed {seed.name}")
            return
        if self._queue is None or not self._workers:
            raise RuntimeError("bootstrap queue is not started")
        if seed.name in self._pending:
            logger.debug(f"⏭️  [{seed.name}] already queued, skipping")
            return

        self._pending.add(seed.name)
        self._queue.put_nowait(BootstrapTask(seed=seed))
        logger.info(f"📥 [{seed.name}] queued for terminal bootstrap")

    async def _worker(self) -> None:
        while True:
            task = await self._queue.get()
            try:
                result = await self._run(task)
                try:
                    self.observer(result)
                except Exception as e:
                    logger.error(f"💥 [{task.seed.name}] bootstrap observer failed: {e}")
            finally:
                self._pending.discard(task.seed.name)
                self._queue.task_done()

    async def _run(self, task: BootstrapTask) -> BootstrapResult:
        loop = asyncio.get_running_loop()
        task.state = TaskState.RUNNING
        started = time.monotonic()
        try:
            await loop.run_in_executor(None, self.pipeline.run, task.seed)
        except Exception as e:
            task.state = TaskState.FAILED
            if isinstance(e, BootstrapError):
                step, error = e.step, e.cause
            else:
                step, error = None, e
            return BootstrapResult(
                seed_name=task.seed.name,
                succeeded=False,
                step=step,
                error=error,
                duration_seconds=time.monotonic() - started,
            )
        task.state = TaskState.COMPLETED
        return BootstrapResult(
            seed_name=task.seed.name,
            succeeded=True,
            duration_seconds=time.monotonic() - started,
        )
