"""
ProxyHostRecord — one hostname → backend route on the reverse proxy.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict


class ProxyHostRecord(BaseModel):
    """A route keyed by ``domain``. At most one record exists per domain."""

    model_config = ConfigDict(frozen=True)

    domain: str
    forward_host: str
    forward_port: int
    websocket_enabled: bool = False

    def to_payload(self) -> dict[str, Any]:
        """Control-plane payload with the fixed security defaults."""
        return {
            "domain_names": [self.domain],
            "forward_scheme": "http",
            "forward_host": self.forward_host,
            "forward_port": self.forward_port,
            "access_list_id": 0,
            "certificate_id": 0,
            "ssl_forced": True,
            "http2_support": True,
            "hsts_enabled": False,
            "hsts_subdomains": False,
            "block_exploits": True,
            "caching_enabled": False,
            "allow_websocket_upgrade": self.websocket_enabled,
            "advanced_config": "",
            "locations": [],
            "meta": {"letsencrypt_agree": False, "dns_challenge": False},
        }
