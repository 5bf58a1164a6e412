"""Area source adapters."""

from lemobar_scan.providers.base import AreaSource
from lemobar_scan.providers.lemobar import LemobarAreaClient

__all__ = [
    "AreaSource",
    "LemobarAreaClient",
]
