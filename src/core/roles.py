"""Sender-role registry.

Drivers and the validating entity may both write "DNI: ... CUPON: ...", so
the body alone cannot tell a request from a confirmation. The registry
answers who a sender is from verified sources first.
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional

from core.models import SenderRole
from core.phones import national_suffix
from core.ports import DirectoryPort, LedgerPort

LOGGER = logging.getLogger(__name__)


class SenderRoleRegistry:
    """Resolve a sender address to ENTITY, DRIVER or UNKNOWN.

    Order of evidence:
    - configured entity numbers, then configured driver numbers
    - a PENDING ledger row relayed to this number (we asked it to validate)
    - a directory agent record for this number (it is one of our drivers)
    """

    def __init__(
        self,
        ledger: LedgerPort,
        directory: Optional[DirectoryPort] = None,
        entity_numbers: Iterable[str] = (),
        driver_numbers: Iterable[str] = (),
    ) -> None:
        self._ledger = ledger
        self._directory = directory
        self._entities = {national_suffix(n) for n in entity_numbers if national_suffix(n)}
        self._drivers = {national_suffix(n) for n in driver_numbers if national_suffix(n)}

    async def resolve(self, sender: str) -> SenderRole:
        suffix = national_suffix(sender)
        if not suffix:
            return SenderRole.UNKNOWN
        if suffix in self._entities:
            return SenderRole.ENTITY
        if suffix in self._drivers:
            return SenderRole.DRIVER
        if self._ledger.find_pending_by_entity(suffix) is not None:
            return SenderRole.ENTITY
        if self._directory is not None:
            agent = await self._directory.find_agent(sender)
            if agent is not None:
                return SenderRole.DRIVER
        LOGGER.debug("Sender role unknown for %s", sender)
        return SenderRole.UNKNOWN
