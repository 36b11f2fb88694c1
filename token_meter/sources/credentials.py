"""
Bearer token providers.

The token is opaque to Token Meter; providers only know where to read it.
"""

import json
import logging
import os
from pathlib import Path
from typing import Optional, Sequence

logger = logging.getLogger(__name__)

TOKEN_ENV_VAR = "TOKEN_METER_OAUTH_TOKEN"


class CredentialProvider:
    """Yields a bearer token, or None when unavailable."""

    def read_token(self) -> Optional[str]:
        raise NotImplementedError


class EnvCredentialProvider(CredentialProvider):
    """Reads the token from an environment variable."""

    def __init__(self, var: str = TOKEN_ENV_VAR):
        self.var = var

    def read_token(self) -> Optional[str]:
        return os.environ.get(self.var) or None


class FileCredentialProvider(CredentialProvider):
    """Reads ``claudeAiOauth.accessToken`` from the CLI's credentials file."""

    def __init__(self, path: str):
        self.path = Path(path).expanduser()

    def read_token(self) -> Optional[str]:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as e:
            logger.debug("Cannot read credentials from %s: %s", self.path, e)
            return None

        oauth = data.get("claudeAiOauth") if isinstance(data, dict) else None
        token = oauth.get("accessToken") if isinstance(oauth, dict) else None
        return token if isinstance(token, str) and token else None


class ChainedCredentialProvider(CredentialProvider):
    """Returns the first token any of its providers yields."""

    def __init__(self, providers: Sequence[CredentialProvider]):
        self.providers = list(providers)

    def read_token(self) -> Optional[str]:
        for provider in self.providers:
            token = provider.read_token()
            if token:
                return token
        return None


def default_credential_provider(credentials_path: str) -> CredentialProvider:
    """Environment variable first, then the credentials file."""
    return ChainedCredentialProvider([
        EnvCredentialProvider(),
        FileCredentialProvider(credentials_path),
    ])
