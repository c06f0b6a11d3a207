# backend/icm/services/schemes.py
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from ..core.errors import ConflictError, NotFound, UpstreamUnavailable, ValidationError
from ..core.logging import get_logger
from ..engine.operators import EMPTY_CATALOG, FieldCatalog
from ..engine.payout import PayoutResult, compute_payout
from ..repositories.base import KpiFieldStore, SchemeStore
from ..schemas.scheme import IncentivePlan, SchemeBody, SchemeIn, SchemeMetadata, SchemeStatus
from .validation import validate_scheme

log = get_logger()

SCHEME_ID_FORMAT = "ICM_%d%m%y_%H%M%S"

# DRAFT -> APPROVED -> SIMULATION -> PRODUCTION
STATE_ORDER = [
    SchemeStatus.DRAFT,
    SchemeStatus.APPROVED,
    SchemeStatus.SIMULATION,
    SchemeStatus.PRODUCTION,
]
STATE_IDX = {s: i for i, s in enumerate(STATE_ORDER)}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _require(condition: bool, message: str, **details: Any) -> None:
    if not condition:
        raise ValidationError(message, details)


def parse_status(value: Any) -> SchemeStatus:
    if isinstance(value, SchemeStatus):
        return value
    try:
        return SchemeStatus(value)
    except ValueError:
        raise ValidationError(
            f"Invalid status {value!r}",
            {"allowed": [s.value for s in SchemeStatus]},
        )


def _body(payload: SchemeBody) -> Dict[str, Any]:
    return payload.model_dump(include=set(SchemeBody.model_fields))


class SchemeService:
    """
    Scheme lifecycle over a SchemeStore.

    Every edit of a saved scheme becomes a new document with the next
    version number; earlier versions are never modified except for
    status-only changes.
    """

    def __init__(
        self,
        store: SchemeStore,
        kpi_store: Optional[KpiFieldStore] = None,
        *,
        validate_kpi_fields: bool = False,
        retry_limit: int = 3,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.store = store
        self.kpi_store = kpi_store
        self.validate_kpi_fields = validate_kpi_fields
        self.retry_limit = max(1, retry_limit)
        self.clock = clock

    # ---------------- helpers ----------------
    def _validate(self, payload: SchemeBody) -> None:
        catalog = None
        if self.validate_kpi_fields and self.kpi_store is not None:
            catalog = self.kpi_store.list_fields()
        validate_scheme(payload, catalog)

    def _new_scheme_id(self, now: datetime) -> str:
        base = now.strftime(SCHEME_ID_FORMAT)
        candidate, n = base, 2
        while self.store.exists(candidate):
            candidate = f"{base}_{n}"
            n += 1
        return candidate

    def field_catalog(self) -> FieldCatalog:
        if self.kpi_store is None:
            return EMPTY_CATALOG
        return FieldCatalog.from_mappings(self.kpi_store.list_fields())

    # ---------------- reads ----------------
    def list_latest(self) -> List[IncentivePlan]:
        return self.store.find_latest_versions()

    def list_versions(self, scheme_id: str) -> List[IncentivePlan]:
        return self.store.find_versions(scheme_id)

    def get(self, id: str) -> IncentivePlan:
        return self.store.find_by_id(id)

    # ---------------- writes ----------------
    def create_scheme(self, payload: SchemeIn) -> IncentivePlan:
        self._validate(payload)
        now = self.clock()

        if payload.scheme_id:
            if self.store.exists(payload.scheme_id):
                raise ConflictError("Scheme ID already exists", {"schemeId": payload.scheme_id})
            scheme_id = payload.scheme_id
        else:
            scheme_id = self._new_scheme_id(now)

        plan = IncentivePlan(
            id="",
            scheme_id=scheme_id,
            metadata=SchemeMetadata(created_at=now, updated_at=now, version=1, status=SchemeStatus.DRAFT),
            **_body(payload),
        )
        saved = self.store.insert(plan)
        log.info("Created scheme %s (id=%s, version 1)", saved.scheme_id, saved.id)
        return saved

    def create_version(self, scheme_id: str, payload: SchemeIn) -> IncentivePlan:
        """
        Append version max+1 of `scheme_id`. createdAt is carried from the
        latest version; status comes from the edit, DRAFT when absent.
        """
        if not self.store.persistent:
            raise UpstreamUnavailable(
                "Versioning requires the database; the scheme store is running as an in-memory fallback",
                {"schemeId": scheme_id},
            )
        self._validate(payload)
        body = _body(payload)
        status = payload.requested_status or SchemeStatus.DRAFT

        for attempt in range(1, self.retry_limit + 1):
            latest = self.store.find_versions(scheme_id)[0]
            now = self.clock()
            plan = IncentivePlan(
                id="",
                scheme_id=scheme_id,
                metadata=SchemeMetadata(
                    created_at=latest.metadata.created_at,
                    updated_at=now,
                    version=latest.version + 1,
                    status=status,
                ),
                **body,
            )
            try:
                saved = self.store.insert(plan)
            except ConflictError:
                log.warning(
                    "Version %s of %s was taken concurrently (attempt %s/%s)",
                    plan.version,
                    scheme_id,
                    attempt,
                    self.retry_limit,
                )
                continue
            log.info("Created version %s of scheme %s (id=%s)", saved.version, scheme_id, saved.id)
            return saved

        raise ConflictError(
            "Could not allocate a new version number; try again",
            {"schemeId": scheme_id, "attempts": self.retry_limit},
        )

    def replace(self, id: str, payload: SchemeIn) -> IncentivePlan:
        """In-place edit of one document: keeps version, createdAt and schemeId."""
        current = self.store.find_by_id(id)
        _require(
            not payload.scheme_id or payload.scheme_id == current.scheme_id,
            "schemeId cannot be changed",
            schemeId=current.scheme_id,
        )
        self._validate(payload)
        metadata: Dict[str, Any] = {"updated_at": self.clock()}
        if payload.requested_status is not None:
            metadata["status"] = payload.requested_status
        saved = self.store.update_fields(id, {**_body(payload), "metadata": metadata})
        log.info("Replaced scheme %s version %s in place (id=%s)", saved.scheme_id, saved.version, id)
        return saved

    def set_status(self, id: str, status: Any) -> IncentivePlan:
        new_status = parse_status(status)
        saved = self.store.update_fields(id, {"metadata": {"status": new_status, "updated_at": self.clock()}})
        log.info("Scheme %s version %s status -> %s", saved.scheme_id, saved.version, new_status.value)
        return saved

    def approve(self, id: str) -> IncentivePlan:
        plan = self.store.find_by_id(id)
        _require(
            plan.status is SchemeStatus.DRAFT,
            f"Only DRAFT schemes can be approved (current: {plan.status.value})",
            id=id,
        )
        return self.set_status(id, SchemeStatus.APPROVED)

    def promote(self, id: str) -> IncentivePlan:
        plan = self.store.find_by_id(id)
        idx = STATE_IDX[plan.status]
        _require(
            plan.status in (SchemeStatus.APPROVED, SchemeStatus.SIMULATION),
            f"Cannot promote a {plan.status.value} scheme",
            id=id,
        )
        return self.set_status(id, STATE_ORDER[idx + 1])

    def delete(self, id: str) -> None:
        if not self.store.delete(id):
            raise NotFound("Incentive scheme not found", {"id": id})
        log.info("Deleted scheme document %s", id)

    # ---------------- evaluation ----------------
    def simulate(self, id: str, records: Iterable[Mapping[str, Any]]) -> PayoutResult:
        plan = self.store.find_by_id(id)
        return compute_payout(plan, records, self.field_catalog())
