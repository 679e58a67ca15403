"""OFAC SDN screening against a static address blocklist.

The blocklist is a JSON file containing an array of address strings
(a curated subset of known sanctioned blockchain addresses).  Matching is
exact string equality only; there is no fuzzy or cluster matching, so
production deployments are expected to put a real-time analytics provider
behind the same :class:`ISanctionsProvider` interface and wrap it with
:class:`ProviderSanctionsScreener`.

Load-failure policy (``fail_closed``, default ``True``):

- fail-closed + initial load fails  -> construction raises
  :class:`SanctionsListUnavailable` (process must not start)
- fail-open  + initial load fails  -> construction succeeds, list unloaded
- screening with an unloaded list  -> ``error`` (fail-closed) or ``skip``
"""

from __future__ import annotations

import asyncio
import json
import logging
import threading
from datetime import datetime
from pathlib import Path

from pydantic import BaseModel, Field

from settlement_governance.core.enums import ScreeningStatus
from settlement_governance.core.errors import SanctionsListError, SanctionsListUnavailable
from settlement_governance.core.ids import utc_now
from settlement_governance.core.interfaces import ISanctionsProvider
from settlement_governance.observability import metrics

logger = logging.getLogger(__name__)

SDN_LIST = "SDN"


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

class ScreeningResult(BaseModel):
    """Outcome of screening a set of addresses."""

    status: ScreeningStatus
    screened_addresses: list[str] = Field(default_factory=list)
    matched_address: str | None = None
    matched_list: str | None = None
    error_detail: str | None = None


class ScreeningVerdict(BaseModel):
    """Outcome of screening one address with a single provider."""

    blocked: bool
    reason: str = ""
    match_type: str = "none"  # "exact", "cluster", "none"
    source: str = ""
    checked_at: datetime = Field(default_factory=utc_now)


# ---------------------------------------------------------------------------
# Static blocklist screener
# ---------------------------------------------------------------------------

def _read_blocklist(path: str | Path) -> set[str]:
    content = Path(path).read_text(encoding="utf-8")
    addresses = json.loads(content)
    if not isinstance(addresses, list):
        raise SanctionsListError("OFAC blocklist must be a JSON array of addresses")
    return {a for a in addresses if isinstance(a, str) and a}


class SanctionsScreener:
    """Screens addresses against an in-memory SDN blocklist.

    Parameters
    ----------
    blocklist_path:
        JSON file loaded at construction.  ``None`` leaves the list
        unloaded until :meth:`update_list` is called.
    fail_closed:
        Policy when the list is unavailable (see module docstring).
    """

    def __init__(
        self,
        blocklist_path: str | Path | None = None,
        fail_closed: bool = True,
    ) -> None:
        self._fail_closed = fail_closed
        self._lock = threading.Lock()
        self._blocklist: set[str] = set()
        self._last_updated: datetime | None = None

        if blocklist_path is not None:
            try:
                self._load(blocklist_path)
            except (OSError, ValueError, SanctionsListError) as exc:
                if fail_closed:
                    raise SanctionsListUnavailable(str(blocklist_path), str(exc)) from exc
                logger.warning(
                    "OFAC blocklist unavailable, continuing fail-open: path=%s error=%s",
                    blocklist_path,
                    exc,
                )

    # ------------------------------------------------------------------
    # Screening
    # ------------------------------------------------------------------

    async def screen(self, addresses: list[str]) -> ScreeningResult:
        addresses = list(addresses)
        with self._lock:
            loaded = self._last_updated is not None
            matched = next((a for a in addresses if a in self._blocklist), None)

        if not loaded:
            if self._fail_closed:
                return ScreeningResult(
                    status=ScreeningStatus.ERROR,
                    screened_addresses=addresses,
                    error_detail="OFAC blocklist not loaded (fail-closed mode)",
                )
            return ScreeningResult(
                status=ScreeningStatus.SKIP,
                screened_addresses=addresses,
                error_detail="OFAC blocklist not loaded (fail-open mode)",
            )

        if matched is not None:
            logger.warning("OFAC match: address=%s list=%s", matched, SDN_LIST)
            return ScreeningResult(
                status=ScreeningStatus.FAIL,
                screened_addresses=addresses,
                matched_address=matched,
                matched_list=SDN_LIST,
            )

        return ScreeningResult(status=ScreeningStatus.PASS, screened_addresses=addresses)

    async def screen_address(self, address: str) -> ScreeningVerdict:
        """Single-address form, so this screener is itself a provider."""
        with self._lock:
            loaded = self._last_updated is not None
            blocked = address in self._blocklist
        if not loaded:
            raise SanctionsListError("OFAC blocklist not loaded")
        return ScreeningVerdict(
            blocked=blocked,
            reason=f"Address listed on {SDN_LIST}" if blocked else "",
            match_type="exact" if blocked else "none",
            source=SDN_LIST,
        )

    # ------------------------------------------------------------------
    # List management
    # ------------------------------------------------------------------

    async def update_list(self, path: str | Path) -> None:
        """Reload the blocklist from *path*.

        Raises on failure; the previously loaded list stays in place.
        """
        await asyncio.to_thread(self._load, path)

    def last_updated(self) -> datetime | None:
        with self._lock:
            return self._last_updated

    def list_size(self) -> int:
        with self._lock:
            return len(self._blocklist)

    def _load(self, path: str | Path) -> None:
        addresses = _read_blocklist(path)
        with self._lock:
            self._blocklist = addresses
            self._last_updated = utc_now()
        metrics.set_sanctions_list_size(len(addresses))
        logger.info("OFAC blocklist loaded: path=%s size=%d", path, len(addresses))


# ---------------------------------------------------------------------------
# Provider adapter
# ---------------------------------------------------------------------------

class ProviderSanctionsScreener:
    """Adapts any :class:`ISanctionsProvider` to the multi-address contract.

    A provider exception is treated like an unloaded list: ``error`` when
    fail-closed, ``skip`` when fail-open.
    """

    def __init__(self, provider: ISanctionsProvider, fail_closed: bool = True) -> None:
        self._provider = provider
        self._fail_closed = fail_closed

    async def screen(self, addresses: list[str]) -> ScreeningResult:
        addresses = list(addresses)
        for address in addresses:
            try:
                verdict = await self._provider.screen_address(address)
            except Exception as exc:
                logger.error("Sanctions provider failed for %s: %s", address, exc)
                return ScreeningResult(
                    status=ScreeningStatus.ERROR if self._fail_closed else ScreeningStatus.SKIP,
                    screened_addresses=addresses,
                    error_detail=f"Sanctions provider error: {exc}",
                )
            if verdict.blocked:
                logger.warning(
                    "Sanctions match: address=%s source=%s match_type=%s",
                    address,
                    verdict.source,
                    verdict.match_type,
                )
                return ScreeningResult(
                    status=ScreeningStatus.FAIL,
                    screened_addresses=addresses,
                    matched_address=address,
                    matched_list=verdict.source or None,
                    error_detail=verdict.reason or None,
                )
        return ScreeningResult(status=ScreeningStatus.PASS, screened_addresses=addresses)


class NullSanctionsScreener:
    """Stand-in when screening is disabled.  Always ``skip``."""

    async def screen(self, addresses: list[str]) -> ScreeningResult:
        return ScreeningResult(status=ScreeningStatus.SKIP, screened_addresses=list(addresses))
