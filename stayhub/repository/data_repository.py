"""Repository layer responsible for all record-store access."""

from __future__ import annotations

import sqlite3
import time
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Callable, Iterator, Optional, Sequence, TypeVar

from stayhub.domain.availability import available_rooms, held_room_ids
from stayhub.domain.constraints import validate_known_rooms
from stayhub.domain.models import (
    Agent,
    AgentStatus,
    B2BBookingRequest,
    Booking,
    BookingCategory,
    BookingStatus,
    CommissionOverride,
    Payment,
    PaymentStatus,
    PriceBreakdown,
    PropertyType,
    RequestStatus,
    RoomAllocation,
    RoomSelection,
    StayRange,
)
from stayhub.utils.config import Settings, get_settings
from stayhub.utils.logger import format_fields, get_logger


logger = get_logger(__name__)

T = TypeVar("T")


class StoreUnavailableError(RuntimeError):
    """Raised when the record store cannot be read or written."""


class CapacityExceededError(Exception):
    """Raised when a reservation would take more rooms than are free."""

    def __init__(self, property_type_id: int, requested: int, available: int) -> None:
        super().__init__(
            f"property_type_id {property_type_id} has {available} room(s) free, "
            f"{requested} requested"
        )
        self.property_type_id = property_type_id
        self.requested = requested
        self.available = available


class UnknownPropertyTypeError(Exception):
    """Raised when a reservation references a property type that does not exist."""


class UnknownRoomError(Exception):
    """Raised when a selection names a room that is not part of its property type."""


class RoomUnavailableError(Exception):
    """Raised when a named room is already held by an overlapping booking."""

    def __init__(self, property_type_id: int, room_ids: Sequence[str]) -> None:
        super().__init__(
            f"room(s) {', '.join(room_ids)} of property_type_id {property_type_id} "
            "are already booked for these dates"
        )
        self.property_type_id = property_type_id
        self.room_ids = tuple(room_ids)


class WriteConflictError(Exception):
    """Raised when a write collides with a concurrent change to the same records."""


class RequestNotPendingError(WriteConflictError):
    """Raised when a B2B request was decided before this decision committed."""


@dataclass(frozen=True)
class BookingDraft:
    """Booking columns written together with its allocations and payment."""

    confirmation_number: str
    guest_name: str
    phone: str
    number_of_adults: int
    number_of_kids: int
    stay_range: StayRange
    status: BookingStatus
    category: BookingCategory
    agent_id: Optional[int] = None
    manual_cost: Decimal = Decimal("0")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _money(value: object) -> Decimal:
    return Decimal(str(value))


def _split_room_numbers(value: Optional[str]) -> tuple[str, ...]:
    return tuple(item for item in str(value or "").split(",") if item)


class BookingRepository:
    """Encapsulates SQLite access so the pricing engine stays storage-agnostic."""

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self._settings = settings or get_settings()
        self._db_path = Path(self._settings.database_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def database_path(self) -> Path:
        return self._db_path

    def _open(self) -> sqlite3.Connection:
        connection = sqlite3.connect(self._db_path, timeout=5.0, isolation_level=None)
        connection.row_factory = sqlite3.Row
        connection.execute("PRAGMA foreign_keys = ON;")
        return connection

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        connection = self._open()
        try:
            yield connection
        finally:
            connection.close()

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """Write transaction holding the database write lock from its first statement.

        BEGIN IMMEDIATE serializes writers, so a capacity check made inside the
        block cannot be invalidated by a concurrent reservation before commit.
        """
        connection = self._open()
        try:
            connection.execute("BEGIN IMMEDIATE;")
            try:
                yield connection
            except BaseException:
                connection.execute("ROLLBACK;")
                raise
            connection.execute("COMMIT;")
        except sqlite3.IntegrityError as exc:
            raise WriteConflictError(f"Record store rejected a conflicting write: {exc}") from exc
        except sqlite3.Error as exc:
            raise StoreUnavailableError(f"Record store write failed: {exc}") from exc
        finally:
            connection.close()

    def _read(self, operation: str, reader: Callable[[sqlite3.Connection], T]) -> T:
        """Run a read with exponential backoff on transient store errors."""
        attempts = max(1, self._settings.store_retry_attempts)
        delay = self._settings.store_retry_base_delay_seconds
        for attempt in range(1, attempts + 1):
            try:
                with self._connect() as conn:
                    return reader(conn)
            except sqlite3.OperationalError as exc:
                if attempt == attempts:
                    logger.error(
                        "Store read failed | %s",
                        format_fields(operation=operation, attempts=attempts, error=exc),
                    )
                    raise StoreUnavailableError(
                        f"Record store unavailable during {operation}: {exc}"
                    ) from exc
                logger.warning(
                    "Transient store read failure, retrying | %s",
                    format_fields(operation=operation, attempt=attempt, error=exc),
                )
                time.sleep(delay * (2 ** (attempt - 1)))
            except sqlite3.Error as exc:
                raise StoreUnavailableError(f"Record store read failed during {operation}: {exc}") from exc
        raise StoreUnavailableError(f"Record store unavailable during {operation}")

    def initialize_database(self) -> None:
        """Create all persistence artifacts before API startup."""
        try:
            with self._connect() as conn:
                conn.executescript(
                    """
                    CREATE TABLE IF NOT EXISTS PropertyTypes (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        property_name TEXT NOT NULL,
                        number_of_rooms INTEGER NOT NULL CHECK (number_of_rooms >= 0),
                        room_prefix TEXT NOT NULL DEFAULT '',
                        cost TEXT NOT NULL,
                        extra_person_cost TEXT NOT NULL DEFAULT '0',
                        is_available INTEGER NOT NULL DEFAULT 1,
                        created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
                        updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
                    );

                    CREATE TABLE IF NOT EXISTS Rooms (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        property_type_id INTEGER NOT NULL,
                        room_number TEXT NOT NULL,
                        FOREIGN KEY (property_type_id) REFERENCES PropertyTypes(id)
                    );

                    CREATE TABLE IF NOT EXISTS Agents (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        agent_name TEXT NOT NULL,
                        company_name TEXT NOT NULL DEFAULT '',
                        phone TEXT NOT NULL DEFAULT '',
                        status TEXT NOT NULL DEFAULT 'pending',
                        commission_percentage TEXT,
                        created_at DATETIME DEFAULT CURRENT_TIMESTAMP
                    );

                    CREATE TABLE IF NOT EXISTS CommissionOverrides (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        agent_id INTEGER,
                        property_type_id INTEGER,
                        start_date TEXT NOT NULL,
                        end_date TEXT NOT NULL,
                        commission_percentage TEXT NOT NULL,
                        description TEXT NOT NULL DEFAULT '',
                        is_active INTEGER NOT NULL DEFAULT 1,
                        created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
                        FOREIGN KEY (agent_id) REFERENCES Agents(id),
                        FOREIGN KEY (property_type_id) REFERENCES PropertyTypes(id)
                    );

                    CREATE TABLE IF NOT EXISTS Bookings (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        confirmation_number TEXT NOT NULL UNIQUE,
                        guest_name TEXT NOT NULL,
                        phone TEXT NOT NULL DEFAULT '',
                        number_of_adults INTEGER NOT NULL CHECK (number_of_adults >= 0),
                        number_of_kids INTEGER NOT NULL DEFAULT 0 CHECK (number_of_kids >= 0),
                        check_in_date TEXT NOT NULL,
                        check_out_date TEXT NOT NULL,
                        booking_status TEXT NOT NULL,
                        booking_type TEXT NOT NULL,
                        agent_id INTEGER,
                        manual_cost TEXT NOT NULL DEFAULT '0',
                        is_deleted INTEGER NOT NULL DEFAULT 0,
                        deleted_at TEXT,
                        cancellation_message TEXT,
                        cancelled_at TEXT,
                        actual_check_in_time TEXT,
                        created_at TEXT NOT NULL,
                        updated_at TEXT NOT NULL,
                        FOREIGN KEY (agent_id) REFERENCES Agents(id)
                    );

                    CREATE TABLE IF NOT EXISTS BookingRooms (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        booking_id INTEGER NOT NULL,
                        property_type_id INTEGER NOT NULL,
                        number_of_rooms INTEGER NOT NULL CHECK (number_of_rooms >= 1),
                        room_numbers TEXT NOT NULL DEFAULT '',
                        FOREIGN KEY (booking_id) REFERENCES Bookings(id),
                        FOREIGN KEY (property_type_id) REFERENCES PropertyTypes(id)
                    );

                    CREATE TABLE IF NOT EXISTS Payments (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        booking_id INTEGER NOT NULL UNIQUE,
                        total_amount TEXT NOT NULL,
                        paid_amount TEXT NOT NULL,
                        balance_due TEXT NOT NULL,
                        payment_status TEXT NOT NULL,
                        refund_amount TEXT NOT NULL DEFAULT '0',
                        updated_at TEXT NOT NULL,
                        FOREIGN KEY (booking_id) REFERENCES Bookings(id)
                    );

                    CREATE TABLE IF NOT EXISTS B2BBookingRequests (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        agent_id INTEGER NOT NULL,
                        guest_name TEXT NOT NULL,
                        guest_phone TEXT NOT NULL DEFAULT '',
                        number_of_adults INTEGER NOT NULL,
                        number_of_kids INTEGER NOT NULL DEFAULT 0,
                        check_in_date TEXT NOT NULL,
                        check_out_date TEXT NOT NULL,
                        property_type_id INTEGER NOT NULL,
                        number_of_rooms INTEGER NOT NULL CHECK (number_of_rooms >= 1),
                        total_cost TEXT NOT NULL,
                        agent_rate TEXT NOT NULL,
                        advance_amount TEXT NOT NULL,
                        status TEXT NOT NULL DEFAULT 'pending',
                        admin_notes TEXT,
                        confirmation_number TEXT NOT NULL,
                        booking_id INTEGER,
                        created_at TEXT NOT NULL,
                        decided_at TEXT,
                        FOREIGN KEY (agent_id) REFERENCES Agents(id),
                        FOREIGN KEY (property_type_id) REFERENCES PropertyTypes(id),
                        FOREIGN KEY (booking_id) REFERENCES Bookings(id)
                    );

                    CREATE INDEX IF NOT EXISTS idx_booking_rooms_property
                    ON BookingRooms(property_type_id, booking_id);

                    CREATE INDEX IF NOT EXISTS idx_bookings_dates
                    ON Bookings(check_in_date, check_out_date);

                    CREATE INDEX IF NOT EXISTS idx_overrides_window
                    ON CommissionOverrides(is_active, start_date, end_date);
                    """
                )
            logger.info("Database initialized at %s", self._db_path)
        except sqlite3.Error as exc:
            raise RuntimeError(f"Database initialization failed: {exc}") from exc

    def seed_demo_data(self) -> None:
        """Seed demo inventory and an approved agent only when the store is empty."""
        with self._connect() as conn:
            count = int(conn.execute("SELECT COUNT(*) AS count FROM PropertyTypes;").fetchone()["count"])
        if count > 0:
            logger.info("Demo data already present; skipping seed")
            return

        self.create_property_type("Deluxe Tent", 5, Decimal("2000"), Decimal("500"), "DT")
        cottage_id = self.create_property_type(
            "Premium Cottage", 3, Decimal("3500"), Decimal("800"), "PC"
        )
        self.create_property_type("Family Dome", 2, Decimal("5000"), Decimal("1000"), "FD")
        agent_id = self.create_agent(
            agent_name="Demo Travels",
            company_name="Demo Travels Pvt Ltd",
            phone="+910000000000",
            status=AgentStatus.APPROVED,
            commission_percentage=Decimal("12"),
        )
        self.create_commission_override(
            start_date=date(2024, 1, 1),
            end_date=date(2030, 12, 31),
            commission_percentage=Decimal("15"),
            agent_id=agent_id,
            property_type_id=cottage_id,
            description="Demo Travels cottage rate",
        )
        logger.info("Demo data seeded")

    # Property types

    def create_property_type(
        self,
        name: str,
        number_of_rooms: int,
        cost: Decimal,
        extra_person_cost: Decimal = Decimal("0"),
        room_prefix: str = "",
        is_available: bool = True,
    ) -> int:
        """Insert a property type together with its numbered rooms."""
        with self._transaction() as conn:
            cursor = conn.execute(
                """
                INSERT INTO PropertyTypes (
                    property_name, number_of_rooms, room_prefix, cost, extra_person_cost, is_available
                )
                VALUES (?, ?, ?, ?, ?, ?);
                """,
                (name, number_of_rooms, room_prefix, str(cost), str(extra_person_cost), int(is_available)),
            )
            property_type_id = int(cursor.lastrowid)
            conn.executemany(
                "INSERT INTO Rooms (property_type_id, room_number) VALUES (?, ?);",
                [
                    (property_type_id, f"{room_prefix}{number}")
                    for number in range(1, number_of_rooms + 1)
                ],
            )
        return property_type_id

    def set_property_type_availability(self, property_type_id: int, is_available: bool) -> None:
        with self._transaction() as conn:
            conn.execute(
                "UPDATE PropertyTypes SET is_available = ?, updated_at = ? WHERE id = ?;",
                (int(is_available), _now(), property_type_id),
            )

    @staticmethod
    def _row_to_property_type(row: sqlite3.Row) -> PropertyType:
        return PropertyType(
            property_type_id=int(row["id"]),
            name=str(row["property_name"]),
            total_room_count=int(row["number_of_rooms"]),
            base_cost_per_night=_money(row["cost"]),
            extra_person_cost_per_night=_money(row["extra_person_cost"]),
            is_available=bool(row["is_available"]),
        )

    @classmethod
    def _fetch_property_types(
        cls,
        conn: sqlite3.Connection,
        only_available: bool = False,
    ) -> list[PropertyType]:
        query = "SELECT * FROM PropertyTypes"
        if only_available:
            query += " WHERE is_available = 1"
        query += " ORDER BY id ASC;"
        return [cls._row_to_property_type(row) for row in conn.execute(query).fetchall()]

    def list_property_types(self, only_available: bool = False) -> list[PropertyType]:
        return self._read(
            "list_property_types",
            lambda conn: self._fetch_property_types(conn, only_available=only_available),
        )

    def get_property_type(self, property_type_id: int) -> Optional[PropertyType]:
        def reader(conn: sqlite3.Connection) -> Optional[PropertyType]:
            row = conn.execute(
                "SELECT * FROM PropertyTypes WHERE id = ?;",
                (property_type_id,),
            ).fetchone()
            return None if row is None else self._row_to_property_type(row)

        return self._read("get_property_type", reader)

    @staticmethod
    def _fetch_room_numbers(conn: sqlite3.Connection, property_type_id: int) -> list[str]:
        return [
            str(row["room_number"])
            for row in conn.execute(
                "SELECT room_number FROM Rooms WHERE property_type_id = ? ORDER BY id ASC;",
                (property_type_id,),
            ).fetchall()
        ]

    def list_room_numbers(self, property_type_id: int) -> list[str]:
        return self._read(
            "list_room_numbers",
            lambda conn: self._fetch_room_numbers(conn, property_type_id),
        )

    # Allocations

    @staticmethod
    def _fetch_allocations(
        conn: sqlite3.Connection,
        property_type_ids: Optional[Sequence[int]] = None,
        exclude_booking_id: Optional[int] = None,
    ) -> list[RoomAllocation]:
        """Every allocation joined with its booking; status filtering is left to the engine."""
        clauses: list[str] = []
        params: list[object] = []
        if property_type_ids:
            placeholders = ",".join("?" for _ in property_type_ids)
            clauses.append(f"br.property_type_id IN ({placeholders})")
            params.extend(property_type_ids)
        if exclude_booking_id is not None:
            clauses.append("b.id != ?")
            params.append(exclude_booking_id)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        rows = conn.execute(
            f"""
            SELECT
                br.property_type_id,
                br.number_of_rooms,
                br.room_numbers,
                b.id AS booking_id,
                b.check_in_date,
                b.check_out_date,
                b.booking_status,
                b.is_deleted
            FROM BookingRooms AS br
            INNER JOIN Bookings AS b ON b.id = br.booking_id
            {where}
            ORDER BY b.check_in_date ASC, br.id ASC;
            """,
            tuple(params),
        ).fetchall()
        return [
            RoomAllocation(
                property_type_id=int(row["property_type_id"]),
                stay_range=StayRange(
                    start=date.fromisoformat(row["check_in_date"]),
                    end=date.fromisoformat(row["check_out_date"]),
                ),
                room_count=int(row["number_of_rooms"]),
                booking_status=BookingStatus(row["booking_status"]),
                is_deleted=bool(row["is_deleted"]),
                booking_id=int(row["booking_id"]),
                room_ids=_split_room_numbers(row["room_numbers"]),
            )
            for row in rows
        ]

    def list_allocations(
        self,
        property_type_ids: Optional[Sequence[int]] = None,
        exclude_booking_id: Optional[int] = None,
    ) -> list[RoomAllocation]:
        return self._read(
            "list_allocations",
            lambda conn: self._fetch_allocations(conn, property_type_ids, exclude_booking_id),
        )

    def _ensure_capacity(
        self,
        conn: sqlite3.Connection,
        stay_range: StayRange,
        selections: Sequence[RoomSelection],
        exclude_booking_id: Optional[int] = None,
    ) -> None:
        property_types = {
            property_type.property_type_id: property_type
            for property_type in self._fetch_property_types(conn)
        }
        allocations = self._fetch_allocations(
            conn,
            property_type_ids=[selection.property_type_id for selection in selections],
            exclude_booking_id=exclude_booking_id,
        )
        for selection in selections:
            property_type = property_types.get(selection.property_type_id)
            if property_type is None:
                raise UnknownPropertyTypeError(
                    f"property_type_id {selection.property_type_id} not found"
                )
            free = available_rooms(property_type, stay_range, allocations)
            if selection.rooms_requested > free:
                raise CapacityExceededError(
                    property_type_id=selection.property_type_id,
                    requested=selection.rooms_requested,
                    available=free,
                )
            if selection.room_ids:
                self._ensure_named_rooms(conn, selection, stay_range, allocations)

    def _ensure_named_rooms(
        self,
        conn: sqlite3.Connection,
        selection: RoomSelection,
        stay_range: StayRange,
        allocations: Sequence[RoomAllocation],
    ) -> None:
        try:
            validate_known_rooms(
                selection.property_type_id,
                selection.room_ids,
                self._fetch_room_numbers(conn, selection.property_type_id),
            )
        except ValueError as exc:
            raise UnknownRoomError(str(exc)) from exc
        taken = held_room_ids(selection.property_type_id, stay_range, allocations)
        clashing = [room_id for room_id in selection.room_ids if room_id in taken]
        if clashing:
            raise RoomUnavailableError(selection.property_type_id, clashing)

    @staticmethod
    def _insert_allocations(
        conn: sqlite3.Connection,
        booking_id: int,
        selections: Sequence[RoomSelection],
    ) -> None:
        conn.executemany(
            """
            INSERT INTO BookingRooms (booking_id, property_type_id, number_of_rooms, room_numbers)
            VALUES (?, ?, ?, ?);
            """,
            [
                (
                    booking_id,
                    selection.property_type_id,
                    selection.rooms_requested,
                    ",".join(selection.room_ids),
                )
                for selection in selections
            ],
        )

    @staticmethod
    def _insert_booking(conn: sqlite3.Connection, draft: BookingDraft) -> int:
        timestamp = _now()
        cursor = conn.execute(
            """
            INSERT INTO Bookings (
                confirmation_number, guest_name, phone, number_of_adults, number_of_kids,
                check_in_date, check_out_date, booking_status, booking_type, agent_id,
                manual_cost, created_at, updated_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
            """,
            (
                draft.confirmation_number,
                draft.guest_name,
                draft.phone,
                draft.number_of_adults,
                draft.number_of_kids,
                draft.stay_range.start.isoformat(),
                draft.stay_range.end.isoformat(),
                draft.status.value,
                draft.category.value,
                draft.agent_id,
                str(draft.manual_cost),
                timestamp,
                timestamp,
            ),
        )
        return int(cursor.lastrowid)

    @staticmethod
    def _upsert_payment(
        conn: sqlite3.Connection,
        booking_id: int,
        breakdown: PriceBreakdown,
        payment_status: PaymentStatus,
    ) -> None:
        conn.execute(
            """
            INSERT INTO Payments (
                booking_id, total_amount, paid_amount, balance_due, payment_status, updated_at
            )
            VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT(booking_id) DO UPDATE SET
                total_amount = excluded.total_amount,
                paid_amount = excluded.paid_amount,
                balance_due = excluded.balance_due,
                payment_status = excluded.payment_status,
                updated_at = excluded.updated_at;
            """,
            (
                booking_id,
                str(breakdown.total),
                str(breakdown.advance_paid),
                str(breakdown.due_amount),
                payment_status.value,
                _now(),
            ),
        )

    def reserve_booking(
        self,
        draft: BookingDraft,
        selections: Sequence[RoomSelection],
        breakdown: PriceBreakdown,
        payment_status: PaymentStatus,
    ) -> int:
        """Insert booking, allocations and payment only if every selection still fits."""
        with self._transaction() as conn:
            self._ensure_capacity(conn, draft.stay_range, selections)
            booking_id = self._insert_booking(conn, draft)
            self._insert_allocations(conn, booking_id, selections)
            self._upsert_payment(conn, booking_id, breakdown, payment_status)
        logger.info(
            "Booking reserved | %s",
            format_fields(
                booking_id=booking_id,
                confirmation_number=draft.confirmation_number,
                rooms=sum(selection.rooms_requested for selection in selections),
            ),
        )
        return booking_id

    def update_reservation(
        self,
        booking_id: int,
        stay_range: StayRange,
        number_of_adults: int,
        number_of_kids: int,
        selections: Sequence[RoomSelection],
        breakdown: PriceBreakdown,
        payment_status: PaymentStatus,
    ) -> None:
        """Replace a booking's dates and rooms, re-checking capacity without its own claim."""
        with self._transaction() as conn:
            self._ensure_capacity(conn, stay_range, selections, exclude_booking_id=booking_id)
            conn.execute(
                """
                UPDATE Bookings
                SET check_in_date = ?, check_out_date = ?, number_of_adults = ?,
                    number_of_kids = ?, updated_at = ?
                WHERE id = ?;
                """,
                (
                    stay_range.start.isoformat(),
                    stay_range.end.isoformat(),
                    number_of_adults,
                    number_of_kids,
                    _now(),
                    booking_id,
                ),
            )
            conn.execute("DELETE FROM BookingRooms WHERE booking_id = ?;", (booking_id,))
            self._insert_allocations(conn, booking_id, selections)
            self._upsert_payment(conn, booking_id, breakdown, payment_status)

    # Bookings

    def _load_booking(self, conn: sqlite3.Connection, row: sqlite3.Row) -> Booking:
        booking_id = int(row["id"])
        selections = tuple(
            RoomSelection(
                property_type_id=int(room_row["property_type_id"]),
                room_count=int(room_row["number_of_rooms"]),
                room_ids=_split_room_numbers(room_row["room_numbers"]),
            )
            for room_row in conn.execute(
                "SELECT * FROM BookingRooms WHERE booking_id = ? ORDER BY id ASC;",
                (booking_id,),
            ).fetchall()
        )
        payment_row = conn.execute(
            "SELECT * FROM Payments WHERE booking_id = ?;",
            (booking_id,),
        ).fetchone()
        payment = None
        if payment_row is not None:
            payment = Payment(
                booking_id=booking_id,
                total_amount=_money(payment_row["total_amount"]),
                paid_amount=_money(payment_row["paid_amount"]),
                balance_due=_money(payment_row["balance_due"]),
                payment_status=PaymentStatus(payment_row["payment_status"]),
                refund_amount=_money(payment_row["refund_amount"]),
            )
        return Booking(
            booking_id=booking_id,
            confirmation_number=str(row["confirmation_number"]),
            guest_name=str(row["guest_name"]),
            phone=str(row["phone"]),
            number_of_adults=int(row["number_of_adults"]),
            number_of_kids=int(row["number_of_kids"]),
            stay_range=StayRange(
                start=date.fromisoformat(row["check_in_date"]),
                end=date.fromisoformat(row["check_out_date"]),
            ),
            status=BookingStatus(row["booking_status"]),
            category=BookingCategory(row["booking_type"]),
            agent_id=None if row["agent_id"] is None else int(row["agent_id"]),
            manual_cost=_money(row["manual_cost"]),
            is_deleted=bool(row["is_deleted"]),
            cancellation_message=row["cancellation_message"],
            actual_check_in_time=row["actual_check_in_time"],
            selections=selections,
            payment=payment,
        )

    def get_booking(self, booking_id: int) -> Optional[Booking]:
        def reader(conn: sqlite3.Connection) -> Optional[Booking]:
            row = conn.execute("SELECT * FROM Bookings WHERE id = ?;", (booking_id,)).fetchone()
            return None if row is None else self._load_booking(conn, row)

        return self._read("get_booking", reader)

    def get_booking_by_confirmation(self, confirmation_number: str) -> Optional[Booking]:
        def reader(conn: sqlite3.Connection) -> Optional[Booking]:
            row = conn.execute(
                "SELECT * FROM Bookings WHERE confirmation_number = ? AND is_deleted = 0;",
                (confirmation_number,),
            ).fetchone()
            return None if row is None else self._load_booking(conn, row)

        return self._read("get_booking_by_confirmation", reader)

    def list_bookings(
        self,
        status: Optional[BookingStatus] = None,
        include_deleted: bool = False,
    ) -> list[Booking]:
        def reader(conn: sqlite3.Connection) -> list[Booking]:
            clauses: list[str] = []
            params: list[object] = []
            if status is not None:
                clauses.append("booking_status = ?")
                params.append(status.value)
            if not include_deleted:
                clauses.append("is_deleted = 0")
            where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
            rows = conn.execute(
                f"SELECT * FROM Bookings {where} ORDER BY check_in_date ASC, id ASC;",
                tuple(params),
            ).fetchall()
            return [self._load_booking(conn, row) for row in rows]

        return self._read("list_bookings", reader)

    def confirmation_number_exists(self, confirmation_number: str) -> bool:
        return self._read(
            "confirmation_number_exists",
            lambda conn: conn.execute(
                "SELECT 1 FROM Bookings WHERE confirmation_number = ?;",
                (confirmation_number,),
            ).fetchone()
            is not None,
        )

    def update_booking_status(
        self,
        booking_id: int,
        status: BookingStatus,
        actual_check_in_time: Optional[str] = None,
    ) -> None:
        with self._transaction() as conn:
            conn.execute(
                """
                UPDATE Bookings
                SET booking_status = ?,
                    actual_check_in_time = COALESCE(?, actual_check_in_time),
                    updated_at = ?
                WHERE id = ?;
                """,
                (status.value, actual_check_in_time, _now(), booking_id),
            )

    def cancel_booking(
        self,
        booking_id: int,
        cancellation_message: str,
        refund_amount: Decimal,
        payment_status: PaymentStatus,
    ) -> None:
        timestamp = _now()
        with self._transaction() as conn:
            conn.execute(
                """
                UPDATE Bookings
                SET booking_status = ?, cancellation_message = ?, cancelled_at = ?, updated_at = ?
                WHERE id = ?;
                """,
                (BookingStatus.CANCELLED.value, cancellation_message, timestamp, timestamp, booking_id),
            )
            conn.execute(
                """
                UPDATE Payments
                SET refund_amount = ?, payment_status = ?, updated_at = ?
                WHERE booking_id = ?;
                """,
                (str(refund_amount), payment_status.value, timestamp, booking_id),
            )

    def soft_delete_booking(self, booking_id: int) -> None:
        timestamp = _now()
        with self._transaction() as conn:
            conn.execute(
                "UPDATE Bookings SET is_deleted = 1, deleted_at = ?, updated_at = ? WHERE id = ?;",
                (timestamp, timestamp, booking_id),
            )

    def count_bookings(self) -> int:
        return self._read(
            "count_bookings",
            lambda conn: int(conn.execute("SELECT COUNT(*) AS count FROM Bookings;").fetchone()["count"]),
        )

    # Agents and commission overrides

    def create_agent(
        self,
        agent_name: str,
        company_name: str = "",
        phone: str = "",
        status: AgentStatus = AgentStatus.PENDING,
        commission_percentage: Optional[Decimal] = None,
    ) -> int:
        with self._transaction() as conn:
            cursor = conn.execute(
                """
                INSERT INTO Agents (agent_name, company_name, phone, status, commission_percentage)
                VALUES (?, ?, ?, ?, ?);
                """,
                (
                    agent_name,
                    company_name,
                    phone,
                    status.value,
                    None if commission_percentage is None else str(commission_percentage),
                ),
            )
            return int(cursor.lastrowid)

    def get_agent(self, agent_id: int) -> Optional[Agent]:
        def reader(conn: sqlite3.Connection) -> Optional[Agent]:
            row = conn.execute("SELECT * FROM Agents WHERE id = ?;", (agent_id,)).fetchone()
            if row is None:
                return None
            return Agent(
                agent_id=int(row["id"]),
                name=str(row["agent_name"]),
                company_name=str(row["company_name"]),
                status=AgentStatus(row["status"]),
                commission_percentage=(
                    None if row["commission_percentage"] is None else _money(row["commission_percentage"])
                ),
            )

        return self._read("get_agent", reader)

    def create_commission_override(
        self,
        start_date: date,
        end_date: date,
        commission_percentage: Decimal,
        agent_id: Optional[int] = None,
        property_type_id: Optional[int] = None,
        description: str = "",
        is_active: bool = True,
    ) -> int:
        with self._transaction() as conn:
            cursor = conn.execute(
                """
                INSERT INTO CommissionOverrides (
                    agent_id, property_type_id, start_date, end_date,
                    commission_percentage, description, is_active
                )
                VALUES (?, ?, ?, ?, ?, ?, ?);
                """,
                (
                    agent_id,
                    property_type_id,
                    start_date.isoformat(),
                    end_date.isoformat(),
                    str(commission_percentage),
                    description,
                    int(is_active),
                ),
            )
            return int(cursor.lastrowid)

    def list_commission_overrides(self, booking_date: date) -> list[CommissionOverride]:
        """Active overrides whose window contains `booking_date`."""
        return self._read(
            "list_commission_overrides",
            lambda conn: [
                CommissionOverride(
                    override_id=int(row["id"]),
                    start_date=date.fromisoformat(row["start_date"]),
                    end_date=date.fromisoformat(row["end_date"]),
                    commission_percentage=_money(row["commission_percentage"]),
                    agent_id=None if row["agent_id"] is None else int(row["agent_id"]),
                    property_type_id=(
                        None if row["property_type_id"] is None else int(row["property_type_id"])
                    ),
                    is_active=bool(row["is_active"]),
                )
                for row in conn.execute(
                    """
                    SELECT *
                    FROM CommissionOverrides
                    WHERE is_active = 1
                      AND start_date <= ?
                      AND end_date >= ?
                    ORDER BY id ASC;
                    """,
                    (booking_date.isoformat(), booking_date.isoformat()),
                ).fetchall()
            ],
        )

    # B2B booking requests

    @staticmethod
    def _row_to_request(row: sqlite3.Row) -> B2BBookingRequest:
        return B2BBookingRequest(
            request_id=int(row["id"]),
            agent_id=int(row["agent_id"]),
            guest_name=str(row["guest_name"]),
            guest_phone=str(row["guest_phone"]),
            number_of_adults=int(row["number_of_adults"]),
            number_of_kids=int(row["number_of_kids"]),
            stay_range=StayRange(
                start=date.fromisoformat(row["check_in_date"]),
                end=date.fromisoformat(row["check_out_date"]),
            ),
            property_type_id=int(row["property_type_id"]),
            room_count=int(row["number_of_rooms"]),
            total_cost=_money(row["total_cost"]),
            agent_rate=_money(row["agent_rate"]),
            advance_amount=_money(row["advance_amount"]),
            status=RequestStatus(row["status"]),
            confirmation_number=str(row["confirmation_number"]),
            admin_notes=row["admin_notes"],
            booking_id=None if row["booking_id"] is None else int(row["booking_id"]),
        )

    def create_b2b_requests(self, requests: Sequence[B2BBookingRequest]) -> list[int]:
        """Insert one request per property type in a single transaction."""
        timestamp = _now()
        created: list[int] = []
        with self._transaction() as conn:
            for request in requests:
                cursor = conn.execute(
                    """
                    INSERT INTO B2BBookingRequests (
                        agent_id, guest_name, guest_phone, number_of_adults, number_of_kids,
                        check_in_date, check_out_date, property_type_id, number_of_rooms,
                        total_cost, agent_rate, advance_amount, status, confirmation_number,
                        created_at
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
                    """,
                    (
                        request.agent_id,
                        request.guest_name,
                        request.guest_phone,
                        request.number_of_adults,
                        request.number_of_kids,
                        request.stay_range.start.isoformat(),
                        request.stay_range.end.isoformat(),
                        request.property_type_id,
                        request.room_count,
                        str(request.total_cost),
                        str(request.agent_rate),
                        str(request.advance_amount),
                        RequestStatus.PENDING.value,
                        request.confirmation_number,
                        timestamp,
                    ),
                )
                created.append(int(cursor.lastrowid))
        return created

    def get_b2b_request(self, request_id: int) -> Optional[B2BBookingRequest]:
        def reader(conn: sqlite3.Connection) -> Optional[B2BBookingRequest]:
            row = conn.execute(
                "SELECT * FROM B2BBookingRequests WHERE id = ?;",
                (request_id,),
            ).fetchone()
            return None if row is None else self._row_to_request(row)

        return self._read("get_b2b_request", reader)

    def list_b2b_requests(
        self,
        agent_id: Optional[int] = None,
        status: Optional[RequestStatus] = None,
    ) -> list[B2BBookingRequest]:
        def reader(conn: sqlite3.Connection) -> list[B2BBookingRequest]:
            clauses: list[str] = []
            params: list[object] = []
            if agent_id is not None:
                clauses.append("agent_id = ?")
                params.append(agent_id)
            if status is not None:
                clauses.append("status = ?")
                params.append(status.value)
            where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
            return [
                self._row_to_request(row)
                for row in conn.execute(
                    f"SELECT * FROM B2BBookingRequests {where} ORDER BY id DESC;",
                    tuple(params),
                ).fetchall()
            ]

        return self._read("list_b2b_requests", reader)

    def approve_b2b_request(
        self,
        request_id: int,
        draft: BookingDraft,
        selection: RoomSelection,
        breakdown: PriceBreakdown,
        payment_status: PaymentStatus,
        admin_notes: Optional[str],
    ) -> int:
        """Convert a pending request into a booking under the same capacity guard."""
        with self._transaction() as conn:
            self._decide_request(conn, request_id, RequestStatus.APPROVED, admin_notes)
            self._ensure_capacity(conn, draft.stay_range, [selection])
            booking_id = self._insert_booking(conn, draft)
            self._insert_allocations(conn, booking_id, [selection])
            self._upsert_payment(conn, booking_id, breakdown, payment_status)
            conn.execute(
                "UPDATE B2BBookingRequests SET booking_id = ? WHERE id = ?;",
                (booking_id, request_id),
            )
        return booking_id

    def reject_b2b_request(self, request_id: int, admin_notes: str) -> None:
        with self._transaction() as conn:
            self._decide_request(conn, request_id, RequestStatus.REJECTED, admin_notes)

    @staticmethod
    def _decide_request(
        conn: sqlite3.Connection,
        request_id: int,
        status: RequestStatus,
        admin_notes: Optional[str],
    ) -> None:
        """Move a request out of pending; a request decided concurrently rolls the write back."""
        cursor = conn.execute(
            """
            UPDATE B2BBookingRequests
            SET status = ?, admin_notes = ?, decided_at = ?
            WHERE id = ? AND status = ?;
            """,
            (status.value, admin_notes, _now(), request_id, RequestStatus.PENDING.value),
        )
        if cursor.rowcount != 1:
            raise RequestNotPendingError(f"B2B request {request_id} is no longer pending")

    def request_number_in_use(self, base_number: str) -> bool:
        """True when `base_number`, alone or with a `-N` suffix, names a request or booking."""
        pattern = f"{base_number}-%"
        return self._read(
            "request_number_in_use",
            lambda conn: conn.execute(
                """
                SELECT 1 FROM B2BBookingRequests
                WHERE confirmation_number = ? OR confirmation_number LIKE ?
                UNION ALL
                SELECT 1 FROM Bookings
                WHERE confirmation_number = ? OR confirmation_number LIKE ?
                LIMIT 1;
                """,
                (base_number, pattern, base_number, pattern),
            ).fetchone()
            is not None,
        )
