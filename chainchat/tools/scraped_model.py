from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Protocol

from loguru import logger
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from playwright.async_api import async_playwright

from chainchat.config import settings
from chainchat.errors import AutomationError, ValidationError
from chainchat.services import logger as log_service
from chainchat.services.markdown import normalize
from chainchat.services.prompt_store import render_prompt

LAUNCH_ARGS = [
    "--disable-gpu",
    "--disable-dev-shm-usage",
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-accelerated-2d-canvas",
    "--no-zygote",
    "--disable-web-security",
]
VIEWPORT = {"width": 1280, "height": 1024}
USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
)
SUBMIT_SETTLE_SECONDS = 0.1


class PageDriver(Protocol):
    """DOM access the scraped client needs; one instance per browser session."""

    async def open(self) -> None: ...

    async def submit(self, prompt: str) -> None: ...

    async def wait_for_response(self) -> None: ...

    async def read_latest_response(self) -> str: ...

    async def close(self) -> None: ...


DriverFactory = Callable[[], PageDriver]
Clock = Callable[[], float]
Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True, slots=True)
class PollOutcome:
    text: str
    completed: bool
    polls: int


async def poll_for_stable_text(
    read_text: Callable[[], Awaitable[str]],
    prompt: str,
    *,
    interval: float,
    stable_checks: int,
    max_wait: float,
    clock: Clock = time.monotonic,
    sleep: Sleep = asyncio.sleep,
) -> PollOutcome:
    """Poll until the answer text stops changing or ``max_wait`` elapses.

    Empty reads and reads echoing the prompt are skipped. Text counts as
    complete after ``stable_checks`` consecutive reads identical to the last
    tracked text; any change resets the run. On timeout the last tracked
    text is returned with ``completed=False``.
    """
    prompt_key = prompt.strip().lower()
    last_text = ""
    stable = 0
    polls = 0
    start = clock()

    while clock() - start < max_wait:
        latest = (await read_text() or "").strip()
        polls += 1

        if latest and latest.lower() != prompt_key:
            if latest == last_text:
                stable += 1
                if stable >= stable_checks:
                    return PollOutcome(text=latest, completed=True, polls=polls)
            else:
                stable = 0
                last_text = latest

        await sleep(interval)

    return PollOutcome(text=last_text, completed=False, polls=polls)


class PlaywrightPageDriver:
    """Headless Chromium session against the Scira chat page."""

    def __init__(
        self,
        *,
        url: str | None = None,
        input_selector: str | None = None,
        response_selector: str | None = None,
        executable_path: str | None = None,
        navigation_timeout_ms: int | None = None,
        selector_timeout_ms: int | None = None,
    ):
        self.url = url or settings.scira_url
        self.input_selector = input_selector or settings.scira_input_selector
        self.response_selector = response_selector or settings.scira_response_selector
        self.executable_path = (
            settings.scira_browser_executable if executable_path is None else executable_path
        )
        self.navigation_timeout_ms = navigation_timeout_ms or settings.scira_navigation_timeout_ms
        self.selector_timeout_ms = selector_timeout_ms or settings.scira_selector_timeout_ms
        self._playwright = None
        self._browser = None
        self._context = None
        self._page = None

    async def open(self) -> None:
        try:
            self._playwright = await async_playwright().start()
            launch_kwargs = {"headless": True, "args": LAUNCH_ARGS}
            if self.executable_path:
                launch_kwargs["executable_path"] = self.executable_path
            self._browser = await self._playwright.chromium.launch(**launch_kwargs)
            self._context = await self._browser.new_context(
                viewport=VIEWPORT,
                user_agent=USER_AGENT,
            )
            self._page = await self._context.new_page()
        except Exception as e:
            raise AutomationError(f"Browser launch failed: {e}") from e

        self._page.set_default_navigation_timeout(self.navigation_timeout_ms)
        try:
            await self._page.goto(
                self.url,
                wait_until="domcontentloaded",
                timeout=self.navigation_timeout_ms,
            )
        except PlaywrightTimeoutError as e:
            raise AutomationError(
                f"Navigation to {self.url} timed out after {self.navigation_timeout_ms}ms"
            ) from e

        try:
            await self._page.wait_for_selector(
                self.input_selector,
                state="visible",
                timeout=self.selector_timeout_ms,
            )
        except PlaywrightTimeoutError as e:
            raise AutomationError(f"Input control '{self.input_selector}' not found") from e

    async def submit(self, prompt: str) -> None:
        await self._page.fill(self.input_selector, prompt)
        await asyncio.sleep(SUBMIT_SETTLE_SECONDS)
        await self._page.keyboard.press("Enter")

    async def wait_for_response(self) -> None:
        try:
            await self._page.wait_for_selector(
                self.response_selector,
                state="attached",
                timeout=self.selector_timeout_ms,
            )
        except PlaywrightTimeoutError as e:
            raise AutomationError("Response container not found") from e

    async def read_latest_response(self) -> str:
        elements = await self._page.query_selector_all(self.response_selector)
        if not elements:
            return ""
        return (await elements[-1].inner_text()).strip()

    async def close(self) -> None:
        """Release context, browser and driver; raise the first failure after trying all."""
        first_error: Exception | None = None
        for resource, method in (
            (self._context, "close"),
            (self._browser, "close"),
            (self._playwright, "stop"),
        ):
            if resource is None:
                continue
            try:
                await getattr(resource, method)()
            except Exception as e:
                first_error = first_error or e
        self._page = self._context = self._browser = self._playwright = None
        if first_error is not None:
            raise first_error


class ScrapedModelClient:
    """Ask Scira through a headless browser and return the normalized answer."""

    label = "Scira"

    def __init__(
        self,
        *,
        driver_factory: DriverFactory | None = None,
        poll_interval: float | None = None,
        stable_checks: int | None = None,
        max_wait: float | None = None,
        clock: Clock = time.monotonic,
        sleep: Sleep = asyncio.sleep,
    ):
        self._driver_factory = driver_factory or PlaywrightPageDriver
        self.poll_interval = (
            settings.scira_poll_interval_seconds if poll_interval is None else poll_interval
        )
        self.stable_checks = settings.scira_stable_checks if stable_checks is None else stable_checks
        self.max_wait = settings.scira_max_wait_seconds if max_wait is None else max_wait
        self._clock = clock
        self._sleep = sleep

    async def ask(self, prompt: str) -> str:
        if not isinstance(prompt, str) or not prompt.strip():
            raise ValidationError("Prompt must be a non-empty string")

        started = time.monotonic()
        driver = self._driver_factory()
        try:
            await driver.open()
            await driver.submit(prompt)
            await driver.wait_for_response()
            outcome = await poll_for_stable_text(
                driver.read_latest_response,
                prompt,
                interval=self.poll_interval,
                stable_checks=self.stable_checks,
                max_wait=self.max_wait,
                clock=self._clock,
                sleep=self._sleep,
            )
        except Exception as e:
            message = e.message if isinstance(e, AutomationError) else (str(e) or type(e).__name__)
            log_service.log_llm_call(
                model="scira",
                caller=self.label,
                duration_ms=int((time.monotonic() - started) * 1000),
                status="error",
                error=message,
                prompt_chars=len(prompt),
            )
            raise AutomationError(
                f"Failed to get response from Scira: {message}",
                details=message,
            ) from e
        finally:
            await self._teardown(driver)

        if outcome.completed:
            logger.info(f"Scira response ({len(outcome.text)} chars) stabilized after {outcome.polls} polls")
            text = outcome.text
        else:
            logger.warning(
                f"Scira timed out after {self.max_wait}s; returning partial response ({len(outcome.text)} chars)"
            )
            text = outcome.text or render_prompt("scira.no_response")

        answer = normalize(text)
        log_service.log_llm_call(
            model="scira",
            caller=self.label,
            duration_ms=int((time.monotonic() - started) * 1000),
            status="success" if outcome.completed else "partial",
            prompt_chars=len(prompt),
            response_chars=len(answer),
        )
        return answer

    async def _teardown(self, driver: PageDriver) -> None:
        try:
            await driver.close()
        except Exception as e:
            logger.error(f"Failed to close Scira browser session: {e}")
