"""
Password rotation.

Each credential goes through::

    FETCH -> GENERATE -> LOGIN -> NAVIGATE_CHANGE -> CHANGE_STEPS -> PERSIST_HISTORY -> DONE

The previous secret is appended to the credential's history once the
change-password page has been reached and before any change step runs, so an
interrupted rotation can only leave "old secret recorded, site maybe not yet
changed". PERSIST_HISTORY then stores the new secret in the vault; if that
fails, the new secret goes into the history too so it is never lost.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

from ..core.generator import generate_password, mask_password
from ..core.history import HistoryStore
from ..core.models import CredentialSummary
from ..core.vault_client import VaultClient, VaultError, VaultUnavailable
from .engine import AutomationEngine
from .policy import PasswordGenerator, generate_for_site
from .sites import SiteConfig, SiteDirectory
from .steps import DEFAULT_STEP_TIMEOUT_MS, StepExecutor
from .types import RotationReason, RotationResult, RotationState, RotationSummary

logger = logging.getLogger(__name__)

AGENT_ID = "keyward-rotate"
UNSAVED_NEW_SECRET = "unsaved_new_secret"
DEFAULT_PAUSE_SECONDS = 2.0
NAVIGATION_TIMEOUT_MS = 30000


@dataclass
class RotationSelector:
    site: Optional[str] = None


class RotationRunner:
    def __init__(
        self,
        vault: VaultClient,
        engine: AutomationEngine,
        history: HistoryStore,
        dry_run: bool = False,
        pause_seconds: float = DEFAULT_PAUSE_SECONDS,
        step_timeout_ms: int = DEFAULT_STEP_TIMEOUT_MS,
        navigation_timeout_ms: int = NAVIGATION_TIMEOUT_MS,
        generator: PasswordGenerator = generate_password,
    ):
        self.vault = vault
        self.engine = engine
        self.history = history
        self.dry_run = dry_run
        self.pause_seconds = pause_seconds
        self.navigation_timeout_ms = navigation_timeout_ms
        self.generator = generator
        self.executor = StepExecutor(engine, step_timeout_ms)

    def select(self, entries: Iterable[CredentialSummary], directory: SiteDirectory,
               selector: Optional[RotationSelector] = None) -> List[Tuple[CredentialSummary, SiteConfig]]:
        """Pair credentials with their site configuration, dropping those without one."""
        wanted = (selector.site or "").lower() if selector else ""
        targets: List[Tuple[CredentialSummary, SiteConfig]] = []
        for entry in entries:
            site = directory.resolve_url(entry.url)
            if site is None:
                logger.debug(f"No site configuration for {entry.name}, manual rotation only")
                continue
            if wanted and wanted not in site.key:
                continue
            targets.append((entry, site))
        return targets

    async def rotate(self, entries: Iterable[CredentialSummary], directory: SiteDirectory,
                     selector: Optional[RotationSelector] = None) -> RotationSummary:
        """Rotate every selected credential, one at a time with a pause in between.

        Raises:
            VaultUnavailable: If the vault daemon goes away mid-run
        """
        summary = RotationSummary()
        targets = self.select(entries, directory, selector)
        logger.info(f"{len(targets)} credentials can be rotated automatically")

        for index, (entry, site) in enumerate(targets):
            if index:
                await asyncio.sleep(self.pause_seconds)
            try:
                result = await self.rotate_one(entry, site)
            except VaultUnavailable:
                logger.error(f"Vault connection lost after {len(summary.results)} of {len(targets)} credentials")
                raise
            if result.reason:
                logger.info(f"{entry.name}: {result.status.value} ({result.reason_code}) {result.detail}".rstrip())
            else:
                logger.info(f"{entry.name}: {result.status.value}")
            summary.add(result)
        return summary

    async def rotate_one(self, entry: CredentialSummary, site: SiteConfig) -> RotationResult:
        """Run the rotation state machine for one credential.

        Failures stay local to this credential. Cancellation and a lost vault
        connection propagate.

        Raises:
            VaultUnavailable: If the vault daemon went away
        """
        state = RotationState.FETCH
        try:
            record = await self.vault.get(entry.id, agent_id=AGENT_ID, purpose="rotating password")
            old_password = record.value.decode("utf-8")
        except VaultUnavailable:
            raise
        except (VaultError, UnicodeDecodeError) as e:
            return RotationResult.failed(entry.id, entry.name, RotationReason.FETCH_FAILED, str(e), state)

        state = RotationState.GENERATE
        new_password = generate_for_site(site, self.generator)
        preview = mask_password(new_password)
        logger.info(f"Rotating {entry.name} ({entry.username}) -> {preview}")

        if self.dry_run:
            return RotationResult.success(entry.id, entry.name, preview=preview, dry_run=True)

        if not site.rotatable:
            return RotationResult.skipped(entry.id, entry.name, RotationReason.MFA_REQUIRED,
                                          "site requires a manual password change")

        change = site.change_password
        values = {
            "username": entry.username or record.username,
            "password": old_password,
            "old_password": old_password,
            "new_password": new_password,
        }
        page_open = False
        try:
            await self.engine.open_page()
            page_open = True

            state = RotationState.LOGIN
            if not await self._navigate(site.login.url):
                return RotationResult.failed(entry.id, entry.name, RotationReason.NAVIGATION_FAILED,
                                             site.login.url, state)
            if not await self.executor.run(site.login.steps, values):
                return RotationResult.failed(entry.id, entry.name, RotationReason.LOGIN_FAILED, state=state)

            state = RotationState.NAVIGATE_CHANGE
            if not await self._navigate(change.url):
                return RotationResult.failed(entry.id, entry.name, RotationReason.NAVIGATION_FAILED,
                                             change.url, state)

            self.history.append(entry.id, record.value)

            state = RotationState.CHANGE_STEPS
            if not await self.executor.run(change.steps, values):
                return RotationResult.failed(entry.id, entry.name, RotationReason.CHANGE_FAILED, state=state)

            state = RotationState.PERSIST_HISTORY
            try:
                await self.vault.replace(record, new_password.encode("utf-8"))
            except VaultError as e:
                self.history.append(entry.id, new_password.encode("utf-8"), note=UNSAVED_NEW_SECRET)
                logger.error(f"{entry.name}: site password changed but vault update failed; "
                             f"new password kept in history")
                if isinstance(e, VaultUnavailable):
                    raise
                return RotationResult.failed(entry.id, entry.name, RotationReason.VAULT_UPDATE_FAILED,
                                             str(e), state)

            return RotationResult.success(entry.id, entry.name, preview=preview)

        except VaultUnavailable:
            raise
        except Exception as e:
            logger.debug(f"Rotation of {entry.name} failed in state {state.value}", exc_info=True)
            return RotationResult.failed(entry.id, entry.name, RotationReason.ERROR, str(e), state)
        finally:
            if page_open:
                try:
                    await self.engine.close_page()
                except Exception as e:
                    logger.debug(f"Closing page failed: {e}")

    async def _navigate(self, url: str) -> bool:
        try:
            await self.engine.goto(url, timeout_ms=self.navigation_timeout_ms)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"Navigation to {url} failed: {e}")
            return False
        return True
