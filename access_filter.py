import logging
from typing import Iterable, Optional, Tuple

from fastapi import Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict
from starlette.middleware.base import BaseHTTPMiddleware

from utils.result import Result

logger = logging.getLogger(__name__)

FORWARDED_FOR_HEADER = "x-forwarded-for"


class AllowList(BaseModel):
    """
    Immutable, ordered set of client addresses allowed to reach the API.

    Entries are exact address strings. Matching is a case-sensitive string
    comparison, no CIDR ranges or wildcards.
    """

    model_config = ConfigDict(frozen=True)

    addresses: Tuple[str, ...] = ()

    @classmethod
    def from_csv(cls, value: Optional[str]) -> "AllowList":
        """Build an allow-list from a comma-separated string, skipping blank entries."""
        return cls.from_entries((value or "").split(","))

    @classmethod
    def from_entries(cls, entries: Iterable[str]) -> "AllowList":
        addresses = []
        for entry in entries:
            entry = entry.strip()
            if entry and entry not in addresses:
                addresses.append(entry)
        return cls(addresses=tuple(addresses))

    def is_empty(self) -> bool:
        return not self.addresses

    def permits(self, address: Optional[str]) -> bool:
        # An empty allow-list permits nobody
        if not address:
            return False
        return address in self.addresses


def resolve_client_address(
    trusted_address: Optional[str],
    forwarded_for: Optional[str],
    peer_address: Optional[str]
) -> Optional[str]:
    """
    Resolve the single client address used for access decisions.

    The first non-empty candidate wins:
    1. the address the framework already trusts,
    2. the first entry of the x-forwarded-for header,
    3. the raw socket peer address.

    Args:
        trusted_address: Address provided by the framework, if any
        forwarded_for: Raw x-forwarded-for header value, if any
        peer_address: Socket peer address, if any

    Returns:
        The resolved address, or None when no candidate is available
    """
    if trusted_address and trusted_address.strip():
        return trusted_address.strip()

    if forwarded_for:
        first_hop = forwarded_for.split(",", 1)[0].strip()
        if first_hop:
            return first_hop

    if peer_address and peer_address.strip():
        return peer_address.strip()

    return None


def client_address_from_request(request: Request, trust_proxy: bool = False) -> Optional[str]:
    """
    Resolve the client address of a Starlette request.

    The ASGI server reports the connecting host in scope["client"]. When the
    service is not behind a proxy that host is the trusted address. Behind a
    proxy it is the proxy itself, so the forwarded-for header is consulted
    first and the socket peer is only the fallback.
    """
    peer_address = request.client.host if request.client else None
    trusted_address = None if trust_proxy else peer_address
    return resolve_client_address(
        trusted_address,
        request.headers.get(FORWARDED_FOR_HEADER),
        peer_address
    )


class AllowListMiddleware(BaseHTTPMiddleware):
    """
    Rejects every request whose resolved client address is not allow-listed.

    Runs before route dispatch, so a rejected request never reaches a handler.
    """

    def __init__(self, app, allow_list: AllowList, trust_proxy: bool = False):
        super().__init__(app)
        self.allow_list = allow_list
        self.trust_proxy = trust_proxy

    async def dispatch(self, request: Request, call_next):
        address = client_address_from_request(request, self.trust_proxy)
        if not self.allow_list.permits(address):
            logger.warning(
                f"Access denied for {address}",
                extra={"client_address": address, "path": request.url.path}
            )
            result = Result.forbidden()
            return JSONResponse(status_code=result.status_code.value, content=result.to_dict())
        return await call_next(request)
