"""
Purpose: Bearer-token providers for the Reddit OAuth API.
Constraints: Token acquisition only; no listing or search calls.
"""

# Imports
from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from typing import Optional

import prawcore

from mention_monitor.core.config_models import ApiCreds
from mention_monitor.core.errors import ConfigError


# Public API
class TokenProvider(ABC):
    @abstractmethod
    def get_access_token(self) -> str:
        """Return a currently valid bearer token, refreshing if needed."""


class StaticTokenProvider(TokenProvider):
    def __init__(self, token: str):
        self._token = token

    def get_access_token(self) -> str:
        return self._token


class PrawcoreTokenProvider(TokenProvider):
    """Script-app password grant via prawcore; caches the token until it expires."""

    def __init__(self, creds: ApiCreds, timeout: float = 25.0, requestor: Optional[prawcore.Requestor] = None):
        if not creds.complete:
            raise ConfigError("Missing Reddit API credentials. Please check your environment variables.")
        self._creds = creds
        self._timeout = timeout
        self._requestor = requestor
        self._authorizer: Optional[prawcore.ScriptAuthorizer] = None
        self._lock = threading.Lock()

    def _build_authorizer(self) -> prawcore.ScriptAuthorizer:
        requestor = self._requestor or prawcore.Requestor(self._creds.user_agent, timeout=self._timeout)
        authenticator = prawcore.TrustedAuthenticator(
            requestor, self._creds.client_id, self._creds.client_secret
        )
        return prawcore.ScriptAuthorizer(authenticator, self._creds.username, self._creds.password)

    def get_access_token(self) -> str:
        with self._lock:
            if self._authorizer is None:
                self._authorizer = self._build_authorizer()
            if not self._authorizer.is_valid():
                self._authorizer.refresh()
            return self._authorizer.access_token
