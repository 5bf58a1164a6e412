from __future__ import annotations

from abc import ABC, abstractmethod

from lemobar_scan.core.models import AreaRecord, Coordinate


class AreaSource(ABC):
    provider_name: str

    @abstractmethod
    async def fetch_areas(self, coordinate: Coordinate) -> list[AreaRecord]:
        """Return the areas near ``coordinate`` or raise a ``FetchError``."""
        raise NotImplementedError
