"""Email provider configuration utilities."""

from .config import EmailConfig, load_email_config
from .providers import DevPrintProvider, EmailProvider, SMTPProvider, create_email_provider

__all__ = [
    "DevPrintProvider",
    "EmailConfig",
    "EmailProvider",
    "SMTPProvider",
    "create_email_provider",
    "load_email_config",
]
