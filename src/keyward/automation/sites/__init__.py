"""Site directory: declarative login and change-password flows per site."""

from .models import (
    PLACEHOLDERS,
    ChangePasswordFlow,
    ClickStep,
    FillStep,
    LoginFlow,
    SiteConfig,
    SiteConfigError,
    SiteConfigNotFound,
    Step,
    WaitStep,
    parse_steps,
    site_from_dict,
)
from .directory import SiteDirectory, domain_matches, hostname_of

__all__ = [
    'PLACEHOLDERS',
    'ChangePasswordFlow',
    'ClickStep',
    'FillStep',
    'LoginFlow',
    'SiteConfig',
    'SiteConfigError',
    'SiteConfigNotFound',
    'SiteDirectory',
    'Step',
    'WaitStep',
    'domain_matches',
    'hostname_of',
    'parse_steps',
    'site_from_dict',
]
