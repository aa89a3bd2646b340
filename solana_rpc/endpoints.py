"""
Endpoint Rotator

Round-robin over equivalent RPC base addresses.
"""

import logging
from typing import Iterable, List

logger = logging.getLogger(__name__)


class EndpointRotator:
    """
    Hands out endpoints in order, wrapping to the first.

    The set is fixed at construction. next() is synchronous, so under a
    single event loop the advance-and-wrap can never interleave with
    another caller.
    """

    def __init__(self, urls: Iterable[str]):
        if isinstance(urls, str):
            urls = [urls]
        self._urls: List[str] = list(urls)
        if not self._urls:
            raise ValueError("EndpointRotator needs at least one url")
        self._index = 0

    def next(self) -> str:
        """Return the current endpoint and advance the cursor."""
        url = self._urls[self._index]
        self._index += 1
        if self._index >= len(self._urls):
            self._index = 0
        return url

    @property
    def cursor(self) -> int:
        return self._index

    @property
    def urls(self) -> List[str]:
        return list(self._urls)

    def __len__(self) -> int:
        return len(self._urls)

    def __contains__(self, url: str) -> bool:
        return url in self._urls
