# backend/drill_converter/worker.py
import asyncio
import os
import shutil
from typing import Dict, Optional

from .log import get_logger
from .models import ConversionStatus, utcnow
from .store import JobStore

logger = get_logger("worker")


class JobMissing(Exception):
    pass


def converted_path_for(upload_dir: str, job_id: str) -> str:
    return os.path.join(upload_dir, f"converted_{job_id}.mp3")


def _copy_original(source: str, destination: str) -> bool:
    if not os.path.exists(source):
        logger.warning("Original file not found: %s", source)
        return False
    try:
        shutil.copyfile(source, destination)
    except OSError:
        logger.exception("Error creating converted file: %s", destination)
        return False
    logger.info("Created converted file: %s", destination)
    return True


async def process_conversion(
    store: JobStore,
    job_id: str,
    upload_dir: str,
    total_steps: int = 10,
    step_delay: float = 2.0,
):
    """
    Simulated conversion run: sleeps through ``total_steps`` steps, bumping
    progress after each, then copies the original upload to the converted
    path. No audio processing happens here yet.

    A source file that vanished before the last step is logged and the job
    still completes. Any other error leaves the job failed with progress 0.
    """
    try:
        job = store.get(job_id)
        if job is None:
            raise JobMissing(job_id)

        for step in range(1, total_steps + 1):
            await asyncio.sleep(step_delay)
            progress = round(step / total_steps * 100)

            if step < total_steps:
                if store.update(job_id, status=ConversionStatus.PROCESSING, progress=progress) is None:
                    raise JobMissing(job_id)
                logger.debug("job_id=%s step=%d/%d progress=%d", job_id, step, total_steps, progress)
                continue

            output_path = converted_path_for(upload_dir, job_id)
            await asyncio.to_thread(_copy_original, job.original_file_path, output_path)

            updated = store.update(
                job_id,
                status=ConversionStatus.COMPLETED,
                progress=progress,
                converted_file_path=output_path,
                completed_at=utcnow(),
            )
            if updated is None:
                raise JobMissing(job_id)
            logger.info("job_id=%s completed output=%s", job_id, output_path)

    except asyncio.CancelledError:
        logger.info("job_id=%s cancelled", job_id)
        store.update(job_id, status=ConversionStatus.FAILED, progress=0)
        raise
    except Exception:
        logger.exception("Processing error job_id=%s", job_id)
        store.update(job_id, status=ConversionStatus.FAILED, progress=0)


class RunnerRegistry:
    """Keeps a handle on every in-flight run so it can be cancelled."""

    def __init__(self, store: JobStore, upload_dir: str, total_steps: int = 10, step_delay: float = 2.0):
        self.store = store
        self.upload_dir = upload_dir
        self.total_steps = total_steps
        self.step_delay = step_delay
        self._tasks: Dict[str, asyncio.Task] = {}

    def start(self, job_id: str) -> asyncio.Task:
        if self.is_running(job_id):
            raise RuntimeError(f"job {job_id} is already running")

        task = asyncio.create_task(
            process_conversion(
                self.store,
                job_id,
                self.upload_dir,
                total_steps=self.total_steps,
                step_delay=self.step_delay,
            ),
            name=f"conversion-{job_id}",
        )
        self._tasks[job_id] = task
        task.add_done_callback(lambda t, key=job_id: self._finished(key, t))
        return task

    def _finished(self, job_id: str, task: asyncio.Task):
        self._tasks.pop(job_id, None)
        if task.cancelled():
            # a task cancelled before its first step never enters process_conversion
            job = self.store.get(job_id)
            if job is not None and not job.status.is_terminal:
                self.store.update(job_id, status=ConversionStatus.FAILED, progress=0)

    def is_running(self, job_id: str) -> bool:
        task = self._tasks.get(job_id)
        return task is not None and not task.done()

    def get_task(self, job_id: str) -> Optional[asyncio.Task]:
        return self._tasks.get(job_id)

    def cancel(self, job_id: str) -> bool:
        task = self._tasks.get(job_id)
        if task is None or task.done():
            return False
        task.cancel()
        return True

    async def shutdown(self):
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
