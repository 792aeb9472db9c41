import asyncio
import logging
from dataclasses import dataclass

from ..core.vault_client import DEFAULT_CATEGORY, VaultClient
from ..exceptions import KeywardError
from .engine import AutomationEngine
from .sites import SiteConfigNotFound, SiteDirectory
from .steps import DEFAULT_STEP_TIMEOUT_MS, StepExecutor

logger = logging.getLogger(__name__)

AGENT_ID = "keyward-login"


class CredentialNotFound(KeywardError):
    """No stored credential belongs to the requested site."""
    pass


@dataclass
class LoginOutcome:
    site: str
    credential_id: str
    username: str
    success: bool
    url: str = ""


async def login_to_site(
    client: VaultClient,
    engine: AutomationEngine,
    directory: SiteDirectory,
    identifier: str,
    step_timeout_ms: int = DEFAULT_STEP_TIMEOUT_MS,
    category: str = DEFAULT_CATEGORY,
) -> LoginOutcome:
    """Log into a site with its stored credential, leaving the page open.

    Args:
        client: Connected, unlocked vault client
        engine: Started automation engine
        directory: Site configurations
        identifier: Site key, name or URL
        step_timeout_ms: Timeout for each fill/click

    Returns:
        LoginOutcome describing which credential was used

    Raises:
        SiteConfigNotFound: If no site matches the identifier
        CredentialNotFound: If the vault holds no credential for the site
    """
    site = directory.resolve(identifier)
    if site is None:
        raise SiteConfigNotFound(f"No site configuration matches '{identifier}'")

    entries = await client.list(category)
    summary = directory.find_credential(site, entries)
    if summary is None:
        raise CredentialNotFound(f"No stored credential for {site.name}")

    record = await client.get(summary.id, agent_id=AGENT_ID, purpose=f"login to {site.name}")
    values = {
        "username": summary.username or record.username,
        "password": record.secret,
        "old_password": record.secret,
    }
    logger.info(f"Logging into {site.name} as {values['username']}")

    await engine.open_page()
    try:
        await engine.goto(site.login.url)
    except asyncio.CancelledError:
        raise
    except Exception as e:
        logger.warning(f"Navigation to {site.login.url} failed: {e}")
        success = False
    else:
        success = await StepExecutor(engine, step_timeout_ms).run(site.login.steps, values)
    if not success:
        logger.warning(f"Login steps for {site.name} did not complete")

    return LoginOutcome(
        site=site.key,
        credential_id=summary.id,
        username=values["username"],
        success=success,
        url=site.login.url,
    )
