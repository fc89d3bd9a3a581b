"""Base class for advertisement sources."""

from abc import ABC, abstractmethod
from typing import AsyncIterator

from tp358.shared.models import AdvertisementFrame


class AdvertisementSource(ABC):
    """Base class for everything that produces advertisement frames."""

    name = "source"

    @abstractmethod
    def watch(self) -> AsyncIterator[AdvertisementFrame]:
        """Yield frames until cancelled.

        The sequence is potentially infinite and may raise at any time.
        Cancelling the consuming task stops the underlying scan.
        """
        pass
