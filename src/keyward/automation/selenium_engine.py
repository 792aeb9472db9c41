import asyncio
import time
from typing import Optional

try:
    from selenium import webdriver
    from selenium.webdriver.common.by import By
    from selenium.webdriver.chrome.options import Options as ChromeOptions
    SELENIUM_AVAILABLE = True
except Exception:  # pragma: no cover - optional dependency
    SELENIUM_AVAILABLE = False


class SeleniumEngine:
    """Selenium-backed engine. WebDriver calls block, so each runs in a worker thread."""

    def __init__(self):
        if not SELENIUM_AVAILABLE:
            raise RuntimeError("Selenium is not installed. Install with: pip install keyward[selenium]")
        self._driver: Optional["webdriver.Chrome"] = None

    async def start(self, headless: bool = True, user_data_dir: Optional[str] = None) -> None:
        options = ChromeOptions()
        if headless:
            options.add_argument("--headless=new")
        if user_data_dir:
            options.add_argument(f"--user-data-dir={user_data_dir}")
        self._driver = await asyncio.to_thread(webdriver.Chrome, options=options)

    async def stop(self) -> None:
        if self._driver:
            await asyncio.to_thread(self._driver.quit)
            self._driver = None

    async def open_page(self) -> None:
        assert self._driver is not None, "engine not started"

    async def close_page(self) -> None:
        if self._driver:
            await asyncio.to_thread(self._driver.get, "about:blank")

    async def goto(self, url: str, timeout_ms: int = 30000) -> None:
        assert self._driver is not None
        self._driver.set_page_load_timeout(timeout_ms / 1000.0)
        await asyncio.to_thread(self._driver.get, url)

    def _find(self, selector: str, timeout_ms: int):
        # Simple polling; users can replace with WebDriverWait if desired
        end = time.time() + timeout_ms / 1000.0
        while True:
            try:
                return self._driver.find_element(By.CSS_SELECTOR, selector)
            except Exception:
                if time.time() >= end:
                    raise TimeoutError(f"Timeout waiting for selector: {selector}")
                time.sleep(0.1)

    def _fill(self, selector: str, value: str, timeout_ms: int) -> None:
        elem = self._find(selector, timeout_ms)
        elem.clear()
        elem.send_keys(value)

    def _click(self, selector: str, timeout_ms: int) -> None:
        self._find(selector, timeout_ms).click()

    async def fill(self, selector: str, value: str, timeout_ms: int = 10000) -> None:
        assert self._driver is not None
        await asyncio.to_thread(self._fill, selector, value, timeout_ms)

    async def click(self, selector: str, timeout_ms: int = 10000) -> None:
        assert self._driver is not None
        await asyncio.to_thread(self._click, selector, timeout_ms)

    async def wait_closed(self) -> None:
        # WebDriver has no close event; poll until the window goes away
        while self._driver is not None:
            try:
                await asyncio.to_thread(lambda: self._driver.window_handles)
            except Exception:
                return
            await asyncio.sleep(1.0)
