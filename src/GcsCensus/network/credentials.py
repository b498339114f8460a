"""Bearer-token credentials for outgoing requests.

Responsibilities
----------------
- Resolve the configured OAuth scopes into a credential source, either from an
  explicit credentials file or from ambient (application default) discovery.
- Hand out cached tokens, refreshing them once when they expire even when many
  requests arrive during the refresh.
- Attach ``Authorization: Bearer <token>`` to every request passing through
  :class:`CredentialsTransport`, failing with :class:`AuthenticationError`
  before the inner transport is reached when no usable token exists.

Design Notes
------------
- Refresh de-duplication is the credential source's job; the transport only
  asks for a credential per request.
- Tokens live in memory only.
"""

from __future__ import annotations

import abc
import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Sequence, Tuple

import google.auth
import google.auth.credentials
import google.auth.exceptions
import google.auth.transport.requests
import httpx

from GcsCensus.config.models import CredentialsConfig
from GcsCensus.errors import AuthenticationError, PipelineInitError
from GcsCensus.network._requests import clone_request

LOGGER = logging.getLogger(__name__)

_SCOPE_PREFIX = "https://www.googleapis.com/auth/"


# ============================================================================
# Credential Model
# ============================================================================


@dataclass(frozen=True)
class Credential:
    """An opaque bearer token with its expiry (UTC, ``None`` = never expires)."""

    token: str
    expiry: Optional[datetime] = None
    quota_project_id: Optional[str] = None

    @property
    def expired(self) -> bool:
        if self.expiry is None:
            return False
        expiry = self.expiry
        if expiry.tzinfo is None:
            expiry = expiry.replace(tzinfo=timezone.utc)
        return datetime.now(timezone.utc) >= expiry

    def __repr__(self) -> str:
        return f"Credential(token='***', expiry={self.expiry!r})"


def normalize_scopes(scopes: Sequence[str]) -> Tuple[str, ...]:
    """Expand short scope aliases and reject malformed entries.

    ``devstorage.read_write`` becomes
    ``https://www.googleapis.com/auth/devstorage.read_write``; full URLs pass
    through. Raises :class:`ValueError` for empty lists, whitespace, or
    non-https scopes.
    """
    if not scopes:
        raise ValueError("at least one scope is required")
    resolved = []
    for scope in scopes:
        scope = scope.strip()
        if not scope or any(ch.isspace() for ch in scope):
            raise ValueError(f"invalid scope {scope!r}")
        if "://" not in scope:
            scope = _SCOPE_PREFIX + scope
        if not scope.startswith("https://"):
            raise ValueError(f"scope must be an https URL: {scope!r}")
        resolved.append(scope)
    return tuple(dict.fromkeys(resolved))


# ============================================================================
# Credential Sources
# ============================================================================


class CredentialSource(abc.ABC):
    """Something that can produce a currently valid :class:`Credential`."""

    scopes: Tuple[str, ...] = ()

    @abc.abstractmethod
    def get_credential(self) -> Credential:
        """Return a valid credential, refreshing it if needed."""


class StaticCredentialSource(CredentialSource):
    """Always returns the same token (emulators, tests)."""

    def __init__(
        self,
        token: str,
        *,
        scopes: Sequence[str] = (),
        quota_project_id: Optional[str] = None,
    ) -> None:
        self._credential = Credential(token=token, quota_project_id=quota_project_id)
        self.scopes = tuple(scopes)

    def get_credential(self) -> Credential:
        return self._credential


class GoogleCredentialSource(CredentialSource):
    """Credential source backed by ``google-auth`` credentials.

    Args:
        scopes: OAuth scopes (short aliases allowed)
        credentials_file: Service account / authorized user JSON; when
            omitted, application default credentials are discovered
        quota_project_id: Overrides the quota project from the credentials
        credentials: Pre-built ``google.auth`` credentials (skips discovery)

    Raises:
        PipelineInitError: If scopes are invalid or no credentials are found
    """

    def __init__(
        self,
        scopes: Sequence[str],
        *,
        credentials_file: Optional[str] = None,
        quota_project_id: Optional[str] = None,
        credentials: Optional[google.auth.credentials.Credentials] = None,
    ) -> None:
        try:
            self.scopes = normalize_scopes(scopes)
        except ValueError as e:
            raise PipelineInitError(str(e), layer="credentials") from e

        if credentials is None:
            credentials = self._discover(self.scopes, credentials_file)
        self._credentials = credentials
        self._quota_project_id = quota_project_id or getattr(
            credentials, "quota_project_id", None
        )
        self._lock = threading.Lock()
        self._auth_request = google.auth.transport.requests.Request()

    @staticmethod
    def _discover(
        scopes: Tuple[str, ...], credentials_file: Optional[str]
    ) -> google.auth.credentials.Credentials:
        try:
            if credentials_file:
                credentials, _project = google.auth.load_credentials_from_file(
                    credentials_file, scopes=list(scopes)
                )
            else:
                credentials, _project = google.auth.default(scopes=list(scopes))
        except google.auth.exceptions.GoogleAuthError as e:
            raise PipelineInitError(f"cannot load credentials: {e}", layer="credentials") from e
        LOGGER.debug(
            "credentials resolved",
            extra={"source": credentials_file or "application-default", "scopes": list(scopes)},
        )
        return credentials

    def get_credential(self) -> Credential:
        creds = self._credentials
        if not creds.valid:
            with self._lock:
                # Another thread may have refreshed while we waited for the lock.
                if not creds.valid:
                    LOGGER.debug("refreshing access token")
                    creds.refresh(self._auth_request)
        return Credential(
            token=creds.token or "",
            expiry=creds.expiry,
            quota_project_id=self._quota_project_id,
        )


def build_credential_source(cfg: CredentialsConfig) -> CredentialSource:
    """Build the credential source described by ``cfg``."""
    if cfg.static_token:
        return StaticCredentialSource(
            cfg.static_token, scopes=cfg.scopes, quota_project_id=cfg.quota_project_id
        )
    return GoogleCredentialSource(
        cfg.scopes,
        credentials_file=cfg.credentials_file,
        quota_project_id=cfg.quota_project_id,
    )


# ============================================================================
# Transport
# ============================================================================


class CredentialsTransport(httpx.BaseTransport):
    """Attach a bearer token from ``source`` to every request."""

    def __init__(self, inner: httpx.BaseTransport, source: CredentialSource) -> None:
        self._inner = inner
        self._source = source

    @property
    def inner(self) -> httpx.BaseTransport:
        return self._inner

    @property
    def source(self) -> CredentialSource:
        return self._source

    def handle_request(self, request: httpx.Request) -> httpx.Response:
        credential = self._acquire()
        headers = request.headers.copy()
        headers["Authorization"] = f"Bearer {credential.token}"
        if credential.quota_project_id:
            headers["x-goog-user-project"] = credential.quota_project_id
        return self._inner.handle_request(clone_request(request, headers=headers))

    def _acquire(self) -> Credential:
        try:
            credential = self._source.get_credential()
        except AuthenticationError:
            raise
        except Exception as e:
            LOGGER.warning("credential acquisition failed", extra={"error": type(e).__name__})
            raise AuthenticationError(f"cannot obtain access token: {e}") from e

        if not credential.token:
            raise AuthenticationError("credential source returned an empty token")
        if credential.expired:
            raise AuthenticationError("credential source returned an expired token")
        return credential

    def close(self) -> None:
        self._inner.close()
