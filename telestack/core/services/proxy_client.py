"""
Reverse-proxy control-plane client (Nginx Proxy Manager REST API).

Endpoints used:

    POST /api/tokens               {identity, secret} -> {token, expires}
    GET  /api/nginx/proxy-hosts    -> [{id, domain_names: [...], ...}]
    POST /api/nginx/proxy-hosts    ProxyHostRecord.to_payload() -> {id, ...}

Routes are create-only: a host whose ``domain_names`` already contains
the domain is left as it is, even if its forward target differs.
"""

from __future__ import annotations

import logging
from typing import Any

import requests

from telestack.core.errors import AuthError
from telestack.core.models.proxy import ProxyHostRecord
from telestack.core.reliability.retry import RetryExhausted, RetryPolicy, retry_on

logger = logging.getLogger(__name__)

# Credentials a fresh Nginx Proxy Manager install accepts.
DEFAULT_IDENTITY = "admin@example.com"
DEFAULT_SECRET = "changeme"

AUTH_ATTEMPTS = 5
AUTH_DELAY = 2.0

CREATED = "created"
EXISTS = "exists"
FAILED = "failed"


class TokenResponseError(ValueError):
    """The token endpoint answered without a usable token."""


class ProxyConfigClient:
    """Authenticated access to the proxy-host API.

    Args:
        base_url: Control-plane root, e.g. ``http://localhost:281``.
        timeout: Per-request timeout in seconds.
        session: Optional ``requests.Session`` (tests inject a fake).
        auth_policy: Retry policy for the token request.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 10.0,
        session: requests.Session | None = None,
        auth_policy: RetryPolicy | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.auth_policy = auth_policy or RetryPolicy(
            name="proxy-auth",
            attempts=AUTH_ATTEMPTS,
            delay=AUTH_DELAY,
            is_retryable=retry_on(requests.RequestException, ValueError),
        )

    def _url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    @staticmethod
    def _auth_headers(token: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {token}"}

    # ── Authentication ──────────────────────────────────────────

    def _request_token(self, identity: str, secret: str) -> str:
        resp = self.session.post(
            self._url("/api/tokens"),
            json={"identity": identity, "secret": secret},
            timeout=self.timeout,
        )
        resp.raise_for_status()
        data = resp.json()
        token = data.get("token") if isinstance(data, dict) else None
        if not token:
            raise TokenResponseError("token endpoint returned no token")
        return token

    def authenticate(self, identity: str, secret: str) -> str:
        """Get an API token.

        Tries ``identity``/``secret`` under the auth retry policy, then
        once with the install defaults.

        Raises:
            AuthError: Both the configured and the default login failed.
        """
        try:
            token = self.auth_policy.call(self._request_token, identity, secret)
        except RetryExhausted as e:
            logger.warning("Proxy login as %s failed (%s), trying default credentials",
                           identity, e.last_error)
            try:
                token = self._request_token(DEFAULT_IDENTITY, DEFAULT_SECRET)
            except (requests.RequestException, ValueError) as fallback_error:
                raise AuthError(
                    f"Proxy login failed at {self.base_url}: {fallback_error}"
                ) from fallback_error
            logger.warning("Logged in to proxy with default credentials; change them")
        else:
            logger.info("Authenticated to proxy control plane as %s", identity)
        return token

    # ── Proxy hosts ─────────────────────────────────────────────

    def list_proxy_hosts(self, token: str) -> list[dict[str, Any]]:
        """All proxy hosts.

        Raises:
            requests.RequestException: The API call failed.
        """
        resp = self.session.get(
            self._url("/api/nginx/proxy-hosts"),
            headers=self._auth_headers(token),
            timeout=self.timeout,
        )
        resp.raise_for_status()
        data = resp.json()
        return data if isinstance(data, list) else []

    def find_proxy_host(self, token: str, domain: str) -> dict[str, Any] | None:
        """First host whose ``domain_names`` contains ``domain`` (case-insensitive)."""
        wanted = domain.strip().lower()
        for host in self.list_proxy_hosts(token):
            names = host.get("domain_names") or []
            if any(str(n).strip().lower() == wanted for n in names):
                return host
        return None

    def ensure_proxy_host(self, token: str, record: ProxyHostRecord) -> str:
        """Create the route for ``record.domain`` unless one exists.

        Returns:
            ``"created"``, ``"exists"`` or ``"failed"``. Never raises for
            API errors; failures are logged.
        """
        try:
            existing = self.find_proxy_host(token, record.domain)
        except (requests.RequestException, ValueError) as e:
            logger.error("Could not list proxy hosts: %s", e)
            return FAILED

        if existing is not None:
            logger.info("Proxy host for %s exists (id=%s), leaving it",
                        record.domain, existing.get("id"))
            return EXISTS

        try:
            resp = self.session.post(
                self._url("/api/nginx/proxy-hosts"),
                json=record.to_payload(),
                headers=self._auth_headers(token),
                timeout=self.timeout,
            )
            resp.raise_for_status()
        except requests.RequestException as e:
            logger.error("Could not create proxy host for %s: %s", record.domain, e)
            return FAILED

        logger.info("Created proxy host %s -> %s:%d",
                    record.domain, record.forward_host, record.forward_port)
        return CREATED

    def create_proxy_host_if_absent(
        self,
        token: str,
        domain: str,
        forward_host: str,
        forward_port: int,
        websocket_enabled: bool = False,
    ) -> bool:
        """True only when a new record was created."""
        record = ProxyHostRecord(
            domain=domain,
            forward_host=forward_host,
            forward_port=forward_port,
            websocket_enabled=websocket_enabled,
        )
        return self.ensure_proxy_host(token, record) == CREATED
