from typing import Protocol


class DispatchChannel(Protocol):
    async def send(self, identifier: str, code: str) -> None:
        """Deliver ``code`` out-of-band; raises on failure."""
        ...
