from typing import Optional

from playwright.async_api import async_playwright, Browser, BrowserContext, Page, Playwright

LAUNCH_ARGS = ["--no-first-run", "--disable-infobars"]


class PlaywrightEngine:
    def __init__(self, channel: Optional[str] = None):
        self.channel = channel
        self._pw: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._context: Optional[BrowserContext] = None
        self._page: Optional[Page] = None

    async def start(self, headless: bool = True, user_data_dir: Optional[str] = None) -> None:
        self._pw = await async_playwright().start()
        launch_args = {"headless": headless, "args": LAUNCH_ARGS}
        if self.channel:
            launch_args["channel"] = self.channel
        if user_data_dir:
            # Persistent profile keeps cookies, so repeat logins skip MFA prompts
            self._context = await self._pw.chromium.launch_persistent_context(
                user_data_dir,
                viewport=None,
                ignore_default_args=["--enable-automation"],
                **launch_args,
            )
        else:
            self._browser = await self._pw.chromium.launch(**launch_args)
            self._context = await self._browser.new_context()

    async def stop(self) -> None:
        if self._context:
            await self._context.close()
        if self._browser:
            await self._browser.close()
        if self._pw:
            await self._pw.stop()
        self._page = None
        self._context = None
        self._browser = None
        self._pw = None

    async def open_page(self) -> None:
        assert self._context is not None, "engine not started"
        if self._page is not None and not self._page.is_closed():
            return
        pages = self._context.pages
        self._page = pages[0] if pages else await self._context.new_page()

    async def close_page(self) -> None:
        if self._page is not None:
            await self._page.close()
            self._page = None

    async def goto(self, url: str, timeout_ms: int = 30000) -> None:
        assert self._page is not None
        await self._page.goto(url, wait_until="networkidle", timeout=timeout_ms)

    async def fill(self, selector: str, value: str, timeout_ms: int = 10000) -> None:
        assert self._page is not None
        await self._page.fill(selector, value, timeout=timeout_ms)

    async def click(self, selector: str, timeout_ms: int = 10000) -> None:
        assert self._page is not None
        await self._page.click(selector, timeout=timeout_ms)

    async def wait_closed(self) -> None:
        assert self._context is not None
        await self._context.wait_for_event("close", timeout=0)
