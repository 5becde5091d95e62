"""
Keyed collection of beneficiary requests.

The store owns every ``TrustRequest`` and its activity log; callers get deep
copies and write back through ``update``. ``update`` is a generic merge used
for parse results, overrides and resolutions alike, and it is where the
lifecycle invariants are checked:

- ``resolution`` is present iff ``status`` is not pending;
- approved/denied requests are frozen;
- the activity log only ever grows at the end.
"""

from decimal import Decimal
from typing import Any, Iterable, List, Optional

from pydantic import ValidationError as PydanticValidationError

from trust_desk.core.exceptions import InvalidStateError, NotFoundError, ValidationError
from trust_desk.domain.models import PolicyFlag, RequestStatus, TrustRequest
from trust_desk.domain.money import ZERO
from trust_desk.services.policy_engine import effective_flags

_FIELDS = frozenset(TrustRequest.model_fields)


class RequestStore:
    def __init__(self, requests: Iterable[TrustRequest] = ()):
        self._requests: dict[str, TrustRequest] = {}
        for request in requests:
            self.add(request)

    def __len__(self) -> int:
        return len(self._requests)

    def __contains__(self, request_id: str) -> bool:
        return request_id in self._requests

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def add(self, request: TrustRequest) -> TrustRequest:
        if request.id in self._requests:
            raise ValidationError(f"Request {request.id} already exists")
        self._check_resolution(request)
        self._requests[request.id] = request.model_copy(deep=True)
        return request.model_copy(deep=True)

    def update(self, request_id: str, **fields: Any) -> TrustRequest:
        current = self._requests.get(request_id)
        if current is None:
            raise NotFoundError("Request", request_id)

        unknown = set(fields) - _FIELDS
        if unknown:
            raise ValidationError(f"Unknown request fields: {', '.join(sorted(unknown))}")
        if "id" in fields and fields["id"] != request_id:
            raise ValidationError("Request id cannot be changed")

        if not current.is_pending:
            raise InvalidStateError(request_id, current.status.value)

        merged = {**current.model_dump(), **fields}
        try:
            updated = TrustRequest.model_validate(merged)
        except PydanticValidationError as exc:
            locs = ", ".join(".".join(str(p) for p in err["loc"]) for err in exc.errors())
            raise ValidationError(f"Invalid update for request {request_id} ({locs})") from exc

        self._check_resolution(updated)
        self._check_log_appended(current, updated)

        self._requests[request_id] = updated
        return updated.model_copy(deep=True)

    def load(self, requests: Iterable[TrustRequest]) -> None:
        """Replace the whole collection (repository load / reset)."""
        self._requests = {}
        for request in requests:
            self.add(request)

    @staticmethod
    def _check_resolution(request: TrustRequest) -> None:
        if request.is_pending and request.resolution is not None:
            raise ValidationError(f"Pending request {request.id} cannot carry a resolution")
        if not request.is_pending:
            if request.resolution is None:
                raise ValidationError(f"Request {request.id} is {request.status.value} without a resolution")
            if request.resolution.action != request.status:
                raise ValidationError(f"Request {request.id} resolution does not match its status")

    @staticmethod
    def _check_log_appended(current: TrustRequest, updated: TrustRequest) -> None:
        before = current.activity_log
        after = updated.activity_log
        if len(after) < len(before) or after[: len(before)] != before:
            raise ValidationError(f"Activity log for request {current.id} is append-only")

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, request_id: str) -> TrustRequest:
        request = self._requests.get(request_id)
        if request is None:
            raise NotFoundError("Request", request_id)
        return request.model_copy(deep=True)

    def find(self, request_id: str) -> Optional[TrustRequest]:
        request = self._requests.get(request_id)
        return request.model_copy(deep=True) if request is not None else None

    def all(self) -> List[TrustRequest]:
        return [r.model_copy(deep=True) for r in self._requests.values()]

    def pending(self) -> List[TrustRequest]:
        return [r.model_copy(deep=True) for r in self._requests.values() if r.is_pending]

    def for_beneficiary(self, beneficiary: str) -> List[TrustRequest]:
        return [r.model_copy(deep=True) for r in self._requests.values() if r.beneficiary == beneficiary]

    def pending_count(self) -> int:
        return sum(1 for r in self._requests.values() if r.is_pending)

    def pending_exposure(self) -> Decimal:
        """Effective amount of pending requests that are not blocked."""
        total = ZERO
        for request in self._requests.values():
            if request.status != RequestStatus.PENDING:
                continue
            if PolicyFlag.PROHIBITED in effective_flags(request):
                continue
            total += request.effective_amount
        return total
