# Avoid importing heavy submodules at top-level to prevent side effects
__version__ = "0.1.0"
__all__ = ["VaultClient", "SiteDirectory", "RotationRunner", "generate_password"]

def __getattr__(name):
    if name == "VaultClient":
        from .core.vault_client import VaultClient
        return VaultClient
    if name == "SiteDirectory":
        from .automation.sites import SiteDirectory
        return SiteDirectory
    if name == "RotationRunner":
        from .automation.runner import RotationRunner
        return RotationRunner
    if name == "generate_password":
        from .core.generator import generate_password
        return generate_password
    raise AttributeError(name)
