"""
Pushes the locally kept cart and wishlist to the customer's server-side lists
once a session is established.

The local records stay authoritative for this client; the push only makes the
server aware of what was collected while signed out. Items are pushed at most
once per login, so a retry after a network failure does not double server
quantities.
"""

import asyncio
from typing import List, Optional, Set

from ..api.storefront_client import ApiRequest
from ..auth.credentials import CredentialManager
from ..auth.results import ErrorKind, OperationResult
from ..core.events import SESSION_ENDED, SESSION_ESTABLISHED, EventBus
from ..utils.logger import get_logger
from .cart import CartEngine
from .wishlist import WishlistEngine

logger = get_logger(__name__)


class CommerceSync:
    def __init__(
        self,
        credentials: CredentialManager,
        cart: CartEngine,
        wishlist: WishlistEngine,
        events: EventBus,
        enabled: bool = True,
    ):
        self.credentials = credentials
        self.cart = cart
        self.wishlist = wishlist
        self.enabled = enabled

        self._pending = False
        self._running = False
        self._epoch = 0
        self._pushed_cart: Set[str] = set()
        self._pushed_wishlist: Set[str] = set()
        self._task: Optional[asyncio.Task] = None
        self._unsubscribers = [
            events.subscribe(SESSION_ESTABLISHED, self._on_session_established),
            events.subscribe(SESSION_ENDED, self._on_session_ended),
        ]

    @property
    def pending(self) -> bool:
        """True while a login has happened whose local items are not fully pushed yet."""
        return self._pending

    def close(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        if self._task is not None and not self._task.done():
            self._task.cancel()

    def _on_session_established(self, **_) -> None:
        if not self.enabled:
            return
        self._epoch += 1
        self._pending = True
        self._pushed_cart = set()
        self._pushed_wishlist = set()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop: the caller runs sync_on_login() itself
            return
        self._task = loop.create_task(self.sync_on_login())

    def _on_session_ended(self, **_) -> None:
        self._epoch += 1
        self._pending = False

    async def wait(self) -> Optional[OperationResult]:
        """Await the push scheduled by the last login, if any."""
        task, self._task = self._task, None
        if task is None or task.cancelled():
            return None
        return await task

    async def sync_on_login(self) -> OperationResult:
        """
        Push cart line items (``POST /cart``) and wishlist entries
        (``POST /wishlist``) that have not been pushed since the last login.

        A network failure stops the push and leaves it pending for a later
        call. Items the backend refuses are skipped and not retried.
        """
        if not self._pending:
            return OperationResult.success({"cart_items": 0, "wishlist_items": 0, "skipped": []})
        if self._running:
            return OperationResult.failure(ErrorKind.INVALID_STATE, "Sync already in progress")
        if self.credentials.current_credential() is None:
            return OperationResult.failure(ErrorKind.INVALID_STATE, "Not signed in")

        epoch = self._epoch
        skipped: List[str] = []
        self._running = True
        try:
            for item in self.cart.items:
                if item.product_id in self._pushed_cart:
                    continue
                request = ApiRequest("POST", "/cart", json={"productId": item.product_id, "quantity": item.quantity})
                failure = await self._push(request, epoch, item.product_id, skipped)
                if failure is not None:
                    return failure
                self._pushed_cart.add(item.product_id)

            for entry in self.wishlist.entries:
                if entry.product_id in self._pushed_wishlist:
                    continue
                request = ApiRequest("POST", "/wishlist", json={"productId": entry.product_id})
                failure = await self._push(request, epoch, entry.product_id, skipped)
                if failure is not None:
                    return failure
                self._pushed_wishlist.add(entry.product_id)
        finally:
            self._running = False

        self._pending = False
        logger.info(
            "Local cart and wishlist pushed",
            cart_items=len(self._pushed_cart),
            wishlist_items=len(self._pushed_wishlist),
            skipped=len(skipped),
        )
        return OperationResult.success(
            {
                "cart_items": len(self._pushed_cart),
                "wishlist_items": len(self._pushed_wishlist),
                "skipped": skipped,
            }
        )

    async def _push(
        self, request: ApiRequest, epoch: int, product_id: str, skipped: List[str]
    ) -> Optional[OperationResult]:
        """Send one item; return a result only when the whole sync has to stop."""
        if epoch != self._epoch:
            return OperationResult.failure(ErrorKind.STALE_RESPONSE, "Session changed during sync")
        result = await self.credentials.send(request)
        if not result.ok and result.kind != ErrorKind.BACKEND_REJECTED:
            logger.warning("Sync interrupted", path=request.path, kind=result.kind.value, error=result.error)
            return result
        if epoch != self._epoch:
            return OperationResult.failure(ErrorKind.STALE_RESPONSE, "Session changed during sync")
        if not result.ok:
            logger.warning("Server refused synced item", path=request.path, product_id=product_id, error=result.error)
            skipped.append(product_id)
        return None
