# backend/drill_converter/poller.py
import asyncio
from typing import AsyncIterator, Awaitable, Callable, Optional, Union

import httpx

from .models import Conversion, ConversionStatus

UpdateCallback = Callable[[Conversion], Union[None, Awaitable[None]]]


class ConversionNotFound(Exception):
    def __init__(self, job_id: str):
        super().__init__(f"Conversion not found: {job_id}")
        self.job_id = job_id


def is_terminal(status: Union[str, ConversionStatus]) -> bool:
    return ConversionStatus(status).is_terminal


class ConversionPoller:
    """Client side status poller for the conversions API.

    Polls ``GET /api/conversions/{id}`` until the job reaches a terminal
    status. Cancelling the consuming task (or closing the iterator) stops
    polling right away.
    """

    def __init__(self, client: httpx.AsyncClient, interval: float = 2.0):
        self.client = client
        self.interval = interval

    async def fetch(self, job_id: str) -> Conversion:
        response = await self.client.get(f"/api/conversions/{job_id}")
        if response.status_code == 404:
            raise ConversionNotFound(job_id)
        response.raise_for_status()
        return Conversion.model_validate(response.json())

    async def watch(self, job_id: str) -> AsyncIterator[Conversion]:
        """Yield the job each time its status or progress changes."""
        last: Optional[Conversion] = None
        while True:
            current = await self.fetch(job_id)
            if last is None or current.status != last.status or current.progress != last.progress:
                last = current
                yield current
            if current.status.is_terminal:
                return
            await asyncio.sleep(self.interval)

    async def wait(self, job_id: str, on_update: Optional[UpdateCallback] = None) -> Conversion:
        final = None
        async for conversion in self.watch(job_id):
            final = conversion
            if on_update is not None:
                result = on_update(conversion)
                if asyncio.iscoroutine(result):
                    await result
        return final
