"""
Fan-out refresh of user data after a booking changes server state.
Each data area is refetched independently; one failing area never
keeps the others from completing.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Protocol

from pydantic import BaseModel, ConfigDict

from core.settings import settings
from domain.enums import RefreshArea, SettlementStatus


logger = logging.getLogger(__name__)

RefreshOperation = Callable[[], Awaitable[Any]]


class UserDataStore(Protocol):
    """The fetch operations a host state store exposes."""

    async def fetch_my_reservations(self) -> Any: ...

    async def fetch_notifications(self, page: int, limit: int) -> Any: ...

    async def fetch_dashboard(self) -> Any: ...

    async def fetch_payments(self, page: int, limit: int) -> Any: ...

    async def fetch_receipts(self, page: int, limit: int) -> Any: ...


class RefreshOptions(BaseModel):
    """Which areas to refresh. Everything is refreshed by default."""

    include_reservations: bool = True
    include_notifications: bool = True
    include_dashboard: bool = True
    include_payments: bool = True
    include_receipts: bool = True
    silent: bool = False  # Skip failure logging

    model_config = ConfigDict(frozen=True, extra="forbid")

    def selected_areas(self) -> List[RefreshArea]:
        """Selected areas in fixed refresh order."""
        flags = [
            (RefreshArea.RESERVATIONS, self.include_reservations),
            (RefreshArea.NOTIFICATIONS, self.include_notifications),
            (RefreshArea.DASHBOARD, self.include_dashboard),
            (RefreshArea.PAYMENTS, self.include_payments),
            (RefreshArea.RECEIPTS, self.include_receipts),
        ]
        return [area for area, included in flags if included]


@dataclass(frozen=True)
class RefreshOutcome:
    """How one area's refresh settled."""
    area: RefreshArea
    status: SettlementStatus
    value: Any = None
    reason: Optional[BaseException] = None

    @property
    def label(self) -> str:
        return self.area.label

    @property
    def ok(self) -> bool:
        return self.status == SettlementStatus.FULFILLED


class RefreshCoordinator:
    """Runs the selected refresh operations concurrently and reports each outcome."""

    def __init__(self, operations: Mapping[RefreshArea, RefreshOperation]):
        """
        Initialize the coordinator.

        Args:
            operations: One zero-argument async callable per refreshable area
        """
        self._operations: Dict[RefreshArea, RefreshOperation] = dict(operations)

    @classmethod
    def from_store(cls, store: UserDataStore, page_size: Optional[int] = None) -> "RefreshCoordinator":
        """Bind every area to the store's fetch operations, first page only."""
        limit = page_size or settings.refresh_page_size
        return cls({
            RefreshArea.RESERVATIONS: store.fetch_my_reservations,
            RefreshArea.NOTIFICATIONS: lambda: store.fetch_notifications(page=1, limit=limit),
            RefreshArea.DASHBOARD: store.fetch_dashboard,
            RefreshArea.PAYMENTS: lambda: store.fetch_payments(page=1, limit=limit),
            RefreshArea.RECEIPTS: lambda: store.fetch_receipts(page=1, limit=limit),
        })

    @property
    def areas(self) -> List[RefreshArea]:
        return list(self._operations)

    async def _run(self, area: RefreshArea) -> Any:
        # Wrapping the call keeps a synchronous raise inside gather()
        return await self._operations[area]()

    async def refresh_user_data(
        self,
        options: Optional[RefreshOptions] = None,
        **flags: bool
    ) -> List[RefreshOutcome]:
        """
        Refresh the selected data areas.

        Args:
            options: Area selection; keyword flags build one when omitted
            **flags: Same fields as RefreshOptions (include_dashboard=False, silent=True, ...)

        Returns:
            One outcome per selected area, in selection order; empty when nothing was selected

        Raises:
            ValueError: If both options and flags are given
            KeyError: If a selected area has no operation
        """
        if options is not None and flags:
            raise ValueError("Pass either options or keyword flags, not both")
        if options is None:
            options = RefreshOptions(**flags)

        areas = options.selected_areas()
        if not areas:
            return []

        try:
            missing = [area.value for area in areas if area not in self._operations]
            if missing:
                raise KeyError(f"No refresh operation registered for: {', '.join(missing)}")

            results = await asyncio.gather(
                *(self._run(area) for area in areas),
                return_exceptions=True,
            )
        except Exception as e:
            if not options.silent:
                logger.error(f"Error refreshing user data: {e}")
            raise

        outcomes = []
        for area, result in zip(areas, results):
            if isinstance(result, BaseException):
                outcomes.append(RefreshOutcome(area=area, status=SettlementStatus.REJECTED, reason=result))
                if not options.silent:
                    logger.warning(f"Error refreshing {area.label}: {result}")
            else:
                outcomes.append(RefreshOutcome(area=area, status=SettlementStatus.FULFILLED, value=result))

        failed = sum(1 for outcome in outcomes if not outcome.ok)
        logger.debug(f"Refreshed {len(outcomes) - failed}/{len(outcomes)} areas")
        return outcomes
