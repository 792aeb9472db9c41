"""
Declarative site configuration.

A site configuration document looks like::

    {"sites": {"github": {
        "name": "GitHub",
        "domains": ["github.com"],
        "login": {"url": "...", "steps": [...]},
        "change_password": {"url": "...", "requires_mfa": false, "steps": [...]},
        "password_length": 20
    }}}

Each step is one of ``{"fill": selector, "value": template}``,
``{"click": selector}`` or ``{"wait": milliseconds}``. A step object that
carries more than one action is split into fill, click, wait in that order.
Templates may only reference the placeholders in :data:`PLACEHOLDERS`.
"""
import re
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, List, Optional, Tuple, Union

from ...exceptions import KeywardError

PLACEHOLDERS = ("username", "password", "old_password", "new_password")
PLACEHOLDER_RE = re.compile(r"\{(\w+)\}")
DEFAULT_PASSWORD_LENGTH = 20


class SiteConfigError(KeywardError):
    """A site configuration document is missing or malformed."""
    pass


class SiteConfigNotFound(KeywardError):
    """No configured site matches an identifier."""
    pass


@dataclass(frozen=True)
class FillStep:
    selector: str
    value: str


@dataclass(frozen=True)
class ClickStep:
    selector: str


@dataclass(frozen=True)
class WaitStep:
    duration_ms: int


Step = Union[FillStep, ClickStep, WaitStep]


@dataclass(frozen=True)
class LoginFlow:
    url: str
    steps: Tuple[Step, ...] = ()


@dataclass(frozen=True)
class ChangePasswordFlow:
    url: str
    steps: Tuple[Step, ...] = ()
    requires_mfa: bool = False


@dataclass(frozen=True)
class SiteConfig:
    key: str
    name: str
    domains: FrozenSet[str]
    login: LoginFlow
    change_password: Optional[ChangePasswordFlow] = None
    password_length: int = DEFAULT_PASSWORD_LENGTH

    @property
    def rotatable(self) -> bool:
        """True when the password can be changed without a human."""
        cp = self.change_password
        return cp is not None and not cp.requires_mfa and bool(cp.steps)


def _check_template(template: str, where: str) -> None:
    for name in PLACEHOLDER_RE.findall(template):
        if name not in PLACEHOLDERS:
            raise SiteConfigError(f"{where}: unknown placeholder {{{name}}}")


def parse_steps(raw_steps: Any, where: str) -> Tuple[Step, ...]:
    if not isinstance(raw_steps, list):
        raise SiteConfigError(f"{where}: steps must be a list")
    steps: List[Step] = []
    for index, raw in enumerate(raw_steps):
        at = f"{where} step {index}"
        if not isinstance(raw, dict):
            raise SiteConfigError(f"{at}: expected an object")
        before = len(steps)
        if "fill" in raw:
            value = raw.get("value")
            if not isinstance(raw["fill"], str) or not isinstance(value, str):
                raise SiteConfigError(f"{at}: fill needs a selector and a string value")
            _check_template(value, at)
            steps.append(FillStep(selector=raw["fill"], value=value))
        if "click" in raw:
            if not isinstance(raw["click"], str) or not raw["click"]:
                raise SiteConfigError(f"{at}: click needs a selector")
            steps.append(ClickStep(selector=raw["click"]))
        if "wait" in raw:
            duration = raw["wait"]
            if isinstance(duration, bool) or not isinstance(duration, (int, float)) or duration < 0:
                raise SiteConfigError(f"{at}: wait needs a non-negative number of milliseconds")
            steps.append(WaitStep(duration_ms=int(duration)))
        if len(steps) == before:
            raise SiteConfigError(f"{at}: no fill, click or wait action")
    return tuple(steps)


def _require_url(raw: Dict[str, Any], where: str) -> str:
    url = raw.get("url")
    if not isinstance(url, str) or not url:
        raise SiteConfigError(f"{where}: url is required")
    return url


def site_from_dict(key: str, data: Dict[str, Any]) -> SiteConfig:
    """Validate one site entry and build its configuration."""
    where = f"site '{key}'"
    if not isinstance(data, dict):
        raise SiteConfigError(f"{where}: expected an object")

    domains = data.get("domains") or []
    if not isinstance(domains, list) or not all(isinstance(d, str) and d for d in domains):
        raise SiteConfigError(f"{where}: domains must be a list of non-empty strings")

    login_raw = data.get("login")
    if not isinstance(login_raw, dict):
        raise SiteConfigError(f"{where}: login section is required")
    login = LoginFlow(
        url=_require_url(login_raw, f"{where} login"),
        steps=parse_steps(login_raw.get("steps", []), f"{where} login"),
    )

    change_password = None
    cp_raw = data.get("change_password")
    if cp_raw is not None:
        if not isinstance(cp_raw, dict):
            raise SiteConfigError(f"{where}: change_password must be an object")
        change_password = ChangePasswordFlow(
            url=_require_url(cp_raw, f"{where} change_password"),
            steps=parse_steps(cp_raw.get("steps", []), f"{where} change_password"),
            requires_mfa=bool(cp_raw.get("requires_mfa", False)),
        )

    length = data.get("password_length", DEFAULT_PASSWORD_LENGTH)
    if isinstance(length, bool) or not isinstance(length, int) or length < 4:
        raise SiteConfigError(f"{where}: password_length must be an integer of at least 4")

    return SiteConfig(
        key=key.lower(),
        name=data.get("name") or key,
        domains=frozenset(d.lower() for d in domains),
        login=login,
        change_password=change_password,
        password_length=length,
    )
