import asyncio
import logging
from typing import Mapping, Sequence

from .engine import AutomationEngine
from .sites.models import PLACEHOLDER_RE, ClickStep, FillStep, Step, WaitStep

logger = logging.getLogger(__name__)

DEFAULT_STEP_TIMEOUT_MS = 10000


class UnresolvedPlaceholder(ValueError):
    pass


def render_template(template: str, values: Mapping[str, str]) -> str:
    """Substitute every ``{placeholder}`` in a fill template.

    Raises:
        UnresolvedPlaceholder: If a placeholder has no value
    """
    def substitute(match):
        name = match.group(1)
        value = values.get(name)
        if value is None:
            raise UnresolvedPlaceholder(f"no value for {{{name}}}")
        return value

    return PLACEHOLDER_RE.sub(substitute, template)


class StepExecutor:
    """Runs a site's step list against the engine's current page."""

    def __init__(self, engine: AutomationEngine, step_timeout_ms: int = DEFAULT_STEP_TIMEOUT_MS):
        self.engine = engine
        self.step_timeout_ms = step_timeout_ms

    async def run(self, steps: Sequence[Step], values: Mapping[str, str]) -> bool:
        """Execute steps in order, stopping at the first failure.

        Steps are not retried individually; the caller decides whether to
        run the whole sequence again.

        Returns:
            True if every step completed
        """
        for index, step in enumerate(steps):
            try:
                await self._execute(step, values)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                # Never log the rendered value, it may be a password
                logger.warning(f"Step {index} ({type(step).__name__}) failed: {e}")
                return False
        return True

    async def _execute(self, step: Step, values: Mapping[str, str]) -> None:
        if isinstance(step, FillStep):
            value = render_template(step.value, values)
            await self.engine.fill(step.selector, value, timeout_ms=self.step_timeout_ms)
        elif isinstance(step, ClickStep):
            await self.engine.click(step.selector, timeout_ms=self.step_timeout_ms)
        elif isinstance(step, WaitStep):
            await asyncio.sleep(step.duration_ms / 1000.0)
        else:
            raise TypeError(f"Unknown step type: {type(step).__name__}")
