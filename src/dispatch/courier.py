"""Couriers and the directory of people allowed to act as one.

An administrator authorizes a courier by email. The first time that person
logs in a Courier record is created with a freshly minted id; later logins
update the same record. Revoking the authorization deactivates the courier.
"""

import threading
from collections.abc import Callable
from datetime import UTC, datetime
from uuid import uuid4

import structlog
from pydantic import BaseModel, ConfigDict, Field

from delivery.geo import Coordinates
from shared.exceptions import NotFound, PermissionDenied, ValidationError

logger = structlog.get_logger(__name__)


def _now() -> datetime:
    return datetime.now(UTC)


def normalize_email(email: str) -> str:
    if not isinstance(email, str) or "@" not in email.strip():
        raise ValidationError({"email": [f"Invalid email address: {email!r}"]})
    return email.strip().lower()


class AuthorizedCourier(BaseModel):
    model_config = ConfigDict(frozen=True)

    email: str
    name: str
    authorized_at: datetime = Field(default_factory=_now)


class Courier(BaseModel):
    id: str = Field(default_factory=lambda: uuid4().hex)
    email: str
    name: str
    phone: str | None = None
    location: Coordinates | None = None
    location_updated_at: datetime | None = None
    active: bool = True
    created_at: datetime = Field(default_factory=_now)


class AuthorizedCourierDirectory:
    def __init__(self) -> None:
        self._entries: dict[str, AuthorizedCourier] = {}
        self._lock = threading.Lock()

    def authorize(self, email: str, name: str) -> AuthorizedCourier:
        email = normalize_email(email)
        if not (name or "").strip():
            raise ValidationError({"name": ["Courier name is required"]})
        entry = AuthorizedCourier(email=email, name=name.strip())
        with self._lock:
            self._entries[email] = entry
        return entry

    def revoke(self, email: str) -> None:
        email = normalize_email(email)
        with self._lock:
            if self._entries.pop(email, None) is None:
                raise NotFound(f"{email} is not an authorized courier", details={"email": email})

    def is_authorized(self, email: str) -> bool:
        try:
            email = normalize_email(email)
        except ValidationError:
            return False
        with self._lock:
            return email in self._entries

    def list_authorized(self) -> list[AuthorizedCourier]:
        with self._lock:
            return sorted(self._entries.values(), key=lambda entry: entry.authorized_at, reverse=True)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


CourierCallback = Callable[[Courier], None]


class CourierWatch:
    """Handle for one courier change feed; ``cancel`` stops delivery."""

    def __init__(self, registry: "CourierRegistry", courier_id: str, callback: CourierCallback) -> None:
        self.id = uuid4().hex
        self.courier_id = courier_id
        self.callback = callback
        self._registry = registry
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def cancel(self) -> None:
        self._active = False
        self._registry.unwatch(self)


class CourierRegistry:
    """Courier records, keyed by id with an email index.

    Every change to a courier (login, position, deactivation) is handed to
    the watchers of that courier as a snapshot, after the registry lock is
    released. A watcher that raises is logged and kept.
    """

    def __init__(self) -> None:
        self._couriers: dict[str, Courier] = {}
        self._ids_by_email: dict[str, str] = {}
        self._watches: dict[str, CourierWatch] = {}
        self._lock = threading.Lock()

    def login(self, email: str, name: str, phone: str | None = None) -> Courier:
        email = normalize_email(email)
        with self._lock:
            courier_id = self._ids_by_email.get(email)
            if courier_id is None:
                courier = Courier(email=email, name=name, phone=phone)
                self._couriers[courier.id] = courier
                self._ids_by_email[email] = courier.id
            else:
                courier = self._couriers[courier_id]
                courier.name = name or courier.name
                courier.phone = phone or courier.phone
                courier.active = True
            snapshot = courier.model_copy(deep=True)
        self._notify(snapshot)
        return snapshot

    def get(self, courier_id: str) -> Courier:
        with self._lock:
            courier = self._couriers.get(courier_id)
            if courier is None:
                raise NotFound(f"Courier {courier_id} not found", details={"courier_id": courier_id})
            return courier.model_copy(deep=True)

    def by_email(self, email: str) -> Courier:
        email = normalize_email(email)
        with self._lock:
            courier_id = self._ids_by_email.get(email)
            if courier_id is None:
                raise PermissionDenied("Courier has not logged in", details={"email": email})
            return self._couriers[courier_id].model_copy(deep=True)

    def list_couriers(self) -> list[Courier]:
        with self._lock:
            return [courier.model_copy(deep=True) for courier in self._couriers.values()]

    def update_location(self, courier_id: str, location: Coordinates) -> Courier:
        with self._lock:
            courier = self._couriers.get(courier_id)
            if courier is None:
                raise NotFound(f"Courier {courier_id} not found", details={"courier_id": courier_id})
            courier.location = location
            courier.location_updated_at = _now()
            snapshot = courier.model_copy(deep=True)
        self._notify(snapshot)
        return snapshot

    def deactivate(self, email: str) -> None:
        email = normalize_email(email)
        snapshot = None
        with self._lock:
            courier_id = self._ids_by_email.get(email)
            if courier_id is not None:
                courier = self._couriers[courier_id]
                courier.active = False
                snapshot = courier.model_copy(deep=True)
        if snapshot is not None:
            self._notify(snapshot)

    def watch(self, courier_id: str, callback: CourierCallback) -> CourierWatch:
        """Deliver the courier's current record now, then every later change.

        Raises NotFound for an unknown courier.
        """
        current = self.get(courier_id)
        watch = CourierWatch(self, courier_id, callback)
        with self._lock:
            self._watches[watch.id] = watch
        self._deliver(watch, current)
        return watch

    def unwatch(self, watch: CourierWatch) -> None:
        with self._lock:
            self._watches.pop(watch.id, None)

    def _notify(self, courier: Courier) -> None:
        with self._lock:
            targets = [w for w in self._watches.values() if w.courier_id == courier.id]
        for watch in targets:
            self._deliver(watch, courier)

    def _deliver(self, watch: CourierWatch, courier: Courier) -> None:
        if not watch.active:
            return
        try:
            watch.callback(courier.model_copy(deep=True))
        except Exception:
            logger.exception("courier_watcher_failed", watch_id=watch.id, courier_id=courier.id)

    def clear(self) -> None:
        with self._lock:
            self._couriers.clear()
            self._ids_by_email.clear()
            self._watches.clear()
