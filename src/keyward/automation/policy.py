from typing import Callable, Optional

from ..core.generator import DEFAULT_LENGTH, generate_password
from .sites.models import SiteConfig

PasswordGenerator = Callable[[int], str]


def password_length_for(site: Optional[SiteConfig]) -> int:
    return site.password_length if site is not None else DEFAULT_LENGTH


def generate_for_site(site: Optional[SiteConfig],
                      generator: PasswordGenerator = generate_password) -> str:
    return generator(password_length_for(site))
