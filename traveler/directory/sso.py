"""
Traveler SSO Client: CAS 1.0 ticket validation over httpx.

    GET <cas>/validate?service=<service>&ticket=<ticket>
    -> "yes\\n<user>\\n"  validated
    -> "no\\n\\n"         rejected
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional
from urllib.parse import quote

import httpx

from traveler.engine.config import SSOConfig
from traveler.engine.errors import SSOError

logger = logging.getLogger("traveler.directory.sso")


@dataclass(frozen=True)
class CasValidation:
    validated: bool
    username: Optional[str] = None


class CasClient:
    """
    Validates CAS service tickets.

    ``transport`` is passed to ``httpx.AsyncClient`` (tests use
    ``httpx.MockTransport``).
    """

    def __init__(self, config: SSOConfig, transport: Optional[httpx.AsyncBaseTransport] = None):
        self._cas_url = config.cas_url.rstrip("/")
        self._service_url = config.service_url
        self._timeout = config.timeout
        self._transport = transport

    @property
    def service_url(self) -> str:
        return self._service_url

    def login_url(self) -> str:
        return f"{self._cas_url}/login?service={quote(self._service_url, safe='')}"

    async def validate(self, ticket: str) -> CasValidation:
        """
        Validate a service ticket.

        Raises:
            SSOError if CAS cannot be reached or answers with a non-200 status.
        """
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.get(
                    f"{self._cas_url}/validate",
                    params={"service": self._service_url, "ticket": ticket},
                )
        except httpx.HTTPError as e:
            logger.error(f"CAS validation request failed: {e}")
            raise SSOError(f"Cannot reach CAS: {e}") from e

        if response.status_code != 200:
            raise SSOError(
                f"CAS answered {response.status_code}",
                status_code=response.status_code,
            )

        lines = response.text.split("\n")
        if lines[0].strip() == "yes" and len(lines) > 1 and lines[1].strip():
            return CasValidation(validated=True, username=lines[1].strip())
        return CasValidation(validated=False)
