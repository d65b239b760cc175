"""Source adapter registry.

Adding a platform means adding a ``Platform`` member, an adapter module in
this package, and one entry in ``_ADAPTERS`` below.
"""

from typing import Optional, Type

import httpx

from models.enums import Platform
from spiders.base import SourceAdapter, build_http_client
from spiders.browser import BrowserManager, EvasionLayer
from spiders.fanqie import FanqieAdapter
from spiders.qidian import QidianAdapter

_ADAPTERS: dict[Platform, Type[SourceAdapter]] = {
    Platform.FANQIE: FanqieAdapter,
    Platform.QIDIAN: QidianAdapter,
}


def get_adapter_class(platform: "Platform | str") -> Type[SourceAdapter]:
    """Return the adapter class for a platform.

    Raises:
        ConfigurationError: Unsupported platform name.
    """
    return _ADAPTERS[Platform.parse(platform)]


def create_adapter(
    platform: "Platform | str",
    client: httpx.AsyncClient,
    evasion: Optional[EvasionLayer] = None,
    evasion_visible: bool = False,
) -> SourceAdapter:
    return get_adapter_class(platform)(client, evasion=evasion, evasion_visible=evasion_visible)


__all__ = [
    "SourceAdapter",
    "FanqieAdapter",
    "QidianAdapter",
    "BrowserManager",
    "EvasionLayer",
    "build_http_client",
    "get_adapter_class",
    "create_adapter",
]
