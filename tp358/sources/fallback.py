"""Source composition: real scanner first, simulated data if it fails."""

import asyncio
import logging
from typing import AsyncIterator

from tp358.shared.models import AdvertisementFrame
from .base import AdvertisementSource

logger = logging.getLogger(__name__)


class FallbackAdvertisementSource(AdvertisementSource):
    """Yields from a primary source and switches to a fallback for good
    once the primary fails or runs dry."""

    name = "fallback"

    def __init__(self, primary: AdvertisementSource, fallback: AdvertisementSource):
        self.primary = primary
        self.fallback = fallback
        self.using_fallback = False

    async def watch(self) -> AsyncIterator[AdvertisementFrame]:
        primary_frames = self.primary.watch()
        try:
            while True:
                try:
                    frame = await primary_frames.__anext__()
                except StopAsyncIteration:
                    logger.warning(
                        f"Primary source '{self.primary.name}' ended; "
                        f"switching to '{self.fallback.name}'"
                    )
                    break
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    logger.warning(
                        f"Primary source '{self.primary.name}' failed ({e}); "
                        f"switching to '{self.fallback.name}'"
                    )
                    break
                yield frame
        finally:
            await primary_frames.aclose()

        self.using_fallback = True
        fallback_frames = self.fallback.watch()
        try:
            async for frame in fallback_frames:
                yield frame
        finally:
            await fallback_frames.aclose()
