"""
Data sources for Token Meter.

Remote utilization, credential providers and the legacy ccusage binary.
"""

from .credentials import CredentialProvider, default_credential_provider
from .legacy import LegacySourceError, LegacyUsageSource
from .remote import RemoteUsageClient

__all__ = [
    "CredentialProvider",
    "default_credential_provider",
    "LegacySourceError",
    "LegacyUsageSource",
    "RemoteUsageClient",
]
