from typing import Protocol, Optional


class AutomationEngine(Protocol):
    """Browser capability used by the step executor and rotation runner.

    One engine drives one page at a time. Timeouts are in milliseconds;
    a failed interaction raises.
    """

    async def start(self, headless: bool = True, user_data_dir: Optional[str] = None) -> None:
        ...

    async def stop(self) -> None:
        ...

    async def open_page(self) -> None:
        ...

    async def close_page(self) -> None:
        ...

    async def goto(self, url: str, timeout_ms: int = 30000) -> None:
        ...

    async def fill(self, selector: str, value: str, timeout_ms: int = 10000) -> None:
        ...

    async def click(self, selector: str, timeout_ms: int = 10000) -> None:
        ...

    async def wait_closed(self) -> None:
        ...
