# models.py
import logging
import math
import sqlite3
import uuid
from dataclasses import dataclass, replace
from datetime import date, datetime, timezone

import reports
from database import Database, MEDICINES_KEY, SALES_KEY

logger = logging.getLogger("pharmacy_pos.models")

DEFAULT_CUSTOMER_NAME = "Cash customer"


class PharmacyError(Exception):
    """Base class for errors raised by the pharmacy core."""


class ValidationError(PharmacyError, ValueError):
    """Medicine fields are missing or malformed."""


class NotFoundError(PharmacyError, LookupError):
    """A medicine or sale id that a lookup requires does not exist."""


class InsufficientStockError(PharmacyError):
    """A checkout asks for more units than the inventory holds."""
    def __init__(self, medicine_id: str, name: str, requested: int, available: int):
        self.medicine_id = medicine_id
        self.name = name
        self.requested = requested
        self.available = available
        super().__init__(
            f"Not enough stock for {name!r}: requested {requested}, available {available}."
        )


def new_id() -> str:
    """Random 128-bit id (uuid4, 122 random bits)."""
    return uuid.uuid4().hex


def parse_expiry(value) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        raise ValidationError("Expiry date is required.")
    try:
        return date.fromisoformat(value.strip())
    except ValueError:
        raise ValidationError(f"Invalid expiry date {value!r}, expected YYYY-MM-DD.")


def validate_medicine_fields(name, price, quantity, expiry_date):
    """
    Check and normalize the editable fields of a medicine.
    Returns (name, price, quantity, expiry_date) or raises ValidationError.
    """
    if not isinstance(name, str) or not name.strip():
        raise ValidationError("Medicine name is required.")
    if isinstance(price, bool) or price is None:
        raise ValidationError("Price is required.")
    try:
        price = float(price)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid price {price!r}.")
    if not math.isfinite(price) or price < 0:
        raise ValidationError("Price must be a non-negative number.")
    if isinstance(quantity, bool) or quantity is None:
        raise ValidationError("Quantity is required.")
    if isinstance(quantity, float):
        if not quantity.is_integer():
            raise ValidationError("Quantity must be a whole number.")
        quantity = int(quantity)
    try:
        quantity = int(quantity)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid quantity {quantity!r}.")
    if quantity < 0:
        raise ValidationError("Quantity must not be negative.")
    return name.strip(), round(price, 2), quantity, parse_expiry(expiry_date)


class Medicine:
    """A stocked product."""
    def __init__(self, id: str, name: str, price: float, quantity: int,
                 expiry_date: date, category=None):
        self.id = id
        self.name = name
        self.price = price
        self.quantity = quantity
        self.expiry_date = expiry_date
        self.category = category

    @classmethod
    def from_record(cls, row: dict):
        return cls(
            id=str(row["id"]),
            name=row["name"],
            price=float(row["price"]),
            quantity=int(row["quantity"]),
            expiry_date=parse_expiry(row["expiryDate"]),
            category=row.get("category"),
        )

    def to_record(self) -> dict:
        record = {
            "id": self.id,
            "name": self.name,
            "price": self.price,
            "quantity": self.quantity,
            "expiryDate": self.expiry_date.isoformat(),
        }
        if self.category:
            record["category"] = self.category
        return record

    def copy(self):
        return Medicine.from_record(self.to_record())

    def __eq__(self, other):
        if not isinstance(other, Medicine):
            return NotImplemented
        return self.to_record() == other.to_record()

    def __repr__(self):
        return f"Medicine(id={self.id!r}, name={self.name!r}, quantity={self.quantity})"


@dataclass(frozen=True)
class InvoiceItem:
    """One line of a cart or sale; name and price are snapshots."""
    medicine_id: str
    name: str
    price: float
    quantity: int

    @property
    def total(self):
        return round(self.price * self.quantity, 2)

    @classmethod
    def from_record(cls, row: dict):
        return cls(
            medicine_id=str(row["medicineId"]),
            name=row["name"],
            price=float(row["price"]),
            quantity=int(row["quantity"]),
        )

    def to_record(self) -> dict:
        return {
            "medicineId": self.medicine_id,
            "name": self.name,
            "price": self.price,
            "quantity": self.quantity,
            "total": self.total,
        }


@dataclass(frozen=True)
class Sale:
    """A completed transaction. Never edited once recorded."""
    id: str
    date: str
    items: tuple
    total_amount: float
    customer_name: str = DEFAULT_CUSTOMER_NAME

    @classmethod
    def from_record(cls, row: dict):
        return cls(
            id=str(row["id"]),
            date=row["date"],
            items=tuple(InvoiceItem.from_record(i) for i in row.get("items", [])),
            total_amount=float(row["totalAmount"]),
            customer_name=row.get("customerName") or DEFAULT_CUSTOMER_NAME,
        )

    def to_record(self) -> dict:
        return {
            "id": self.id,
            "date": self.date,
            "items": [i.to_record() for i in self.items],
            "totalAmount": self.total_amount,
            "customerName": self.customer_name,
        }


class Store:
    """
    In-memory medicines and sale history, written back to the
    Database after every mutation.
    """
    def __init__(self, db: Database):
        self.db = db
        self.medicines = [Medicine.from_record(r) for r in db.load_medicines()]
        self.sales = [Sale.from_record(r) for r in db.load_sales()]
        self.last_persistence_error = None
        self._listeners = []
        logger.info(f"Loaded {len(self.medicines)} medicines and {len(self.sales)} sales")

    def subscribe(self, callback):
        """
        Register callback(event, payload) for state changes.
        Returns a function that removes the subscription.
        """
        self._listeners.append(callback)

        def unsubscribe():
            if callback in self._listeners:
                self._listeners.remove(callback)
        return unsubscribe

    def notify(self, event: str, payload=None):
        for callback in list(self._listeners):
            try:
                callback(event, payload)
            except Exception:
                logger.exception(f"Listener failed while handling {event}")

    def persist_medicines(self):
        self._persist(MEDICINES_KEY, [m.to_record() for m in self.medicines])
        self.notify("medicines_changed", self.medicines)

    def persist_sales(self):
        self._persist(SALES_KEY, [s.to_record() for s in self.sales])
        self.notify("sales_changed", self.sales)

    def _persist(self, key, records):
        # In-memory state stays authoritative when the write fails
        try:
            self.db.save_collection(key, records)
        except (sqlite3.Error, OSError) as e:
            self.last_persistence_error = e
            logger.warning(f"Could not persist {key}: {e}")
            self.notify("persistence_failed", {"key": key, "error": e})
        else:
            self.last_persistence_error = None


class InventoryLedger:
    """
    Owns the medicine collection; the only place stock quantities change.
    """
    def __init__(self, store: Store):
        self.store = store

    def _find(self, medicine_id: str):
        for med in self.store.medicines:
            if med.id == medicine_id:
                return med
        return None

    def list_inventory(self):
        """Copies of every medicine; edits go back through update()."""
        return [m.copy() for m in self.store.medicines]

    def get(self, medicine_id: str):
        """A copy of the medicine, or None."""
        med = self._find(medicine_id)
        return med.copy() if med else None

    def search(self, term: str = "", in_stock_only: bool = False):
        """Case-insensitive name match, optionally hiding sold-out items."""
        term = (term or "").lower()
        return [m.copy() for m in self.store.medicines
                if term in m.name.lower() and (m.quantity > 0 or not in_stock_only)]

    def add(self, name, price, quantity, expiry_date, category=None) -> Medicine:
        """Insert a new medicine under a fresh id."""
        name, price, quantity, expiry = validate_medicine_fields(name, price, quantity, expiry_date)
        med = Medicine(new_id(), name, price, quantity, expiry, category or None)
        self.store.medicines.append(med)
        self.store.persist_medicines()
        logger.info(f"Added medicine {med.name} ({med.id})")
        return med.copy()

    def update(self, medicine: Medicine) -> bool:
        """
        Replace the stored medicine with the same id.
        Returns False (and changes nothing) when the id is unknown.
        """
        name, price, quantity, expiry = validate_medicine_fields(
            medicine.name, medicine.price, medicine.quantity, medicine.expiry_date)
        for idx, med in enumerate(self.store.medicines):
            if med.id == medicine.id:
                self.store.medicines[idx] = Medicine(
                    medicine.id, name, price, quantity, expiry, medicine.category or None)
                self.store.persist_medicines()
                logger.info(f"Updated medicine {name} ({medicine.id})")
                return True
        logger.debug(f"Update ignored, unknown medicine id {medicine.id}")
        return False

    def remove(self, medicine_id: str) -> bool:
        before = len(self.store.medicines)
        self.store.medicines = [m for m in self.store.medicines if m.id != medicine_id]
        if len(self.store.medicines) == before:
            logger.debug(f"Remove ignored, unknown medicine id {medicine_id}")
            return False
        self.store.persist_medicines()
        logger.info(f"Removed medicine {medicine_id}")
        return True

    def check_stock(self, items):
        """
        Raise InsufficientStockError if any line asks for more than is
        on hand, or refers to a medicine that no longer exists.
        """
        requested = {}
        names = {}
        for item in items:
            requested[item.medicine_id] = requested.get(item.medicine_id, 0) + item.quantity
            names[item.medicine_id] = item.name
        for medicine_id, qty in requested.items():
            med = self._find(medicine_id)
            available = med.quantity if med else 0
            if qty > available:
                raise InsufficientStockError(medicine_id, names[medicine_id], qty, available)

    def apply_sale(self, items):
        """
        Decrement stock for every sold line. All lines are checked before
        any quantity changes, so a rejected sale leaves inventory untouched.
        """
        items = list(items)
        self.check_stock(items)
        for item in items:
            med = self._find(item.medicine_id)
            med.quantity -= item.quantity
        self.store.persist_medicines()


class Cart:
    """Holds the lines of the sale being prepared."""
    def __init__(self):
        self._lines = {}
        self.customer_name = ""

    @property
    def items(self):
        return list(self._lines.values())

    @property
    def is_empty(self):
        return not self._lines

    def __len__(self):
        return len(self._lines)

    def add_item(self, medicine: Medicine):
        """
        Add one unit of medicine. Quietly ignored when it would take the
        line past the stock on hand. Returns the line, or None if ignored.
        """
        line = self._lines.get(medicine.id)
        if line is None:
            if medicine.quantity < 1:
                logger.debug(f"{medicine.name} is out of stock, not added to cart")
                return None
            line = InvoiceItem(medicine.id, medicine.name, medicine.price, 1)
        elif line.quantity + 1 > medicine.quantity:
            logger.debug(f"Cart already holds all {medicine.quantity} of {medicine.name}")
            return None
        else:
            line = replace(line, quantity=line.quantity + 1)
        self._lines[medicine.id] = line
        return line

    def remove_item(self, medicine_id: str) -> bool:
        return self._lines.pop(medicine_id, None) is not None

    def set_customer_name(self, name: str):
        self.customer_name = name or ""

    def clear(self):
        self._lines = {}
        self.customer_name = ""

    def total(self):
        return round(sum(line.total for line in self._lines.values()), 2)


def utc_now():
    return datetime.now(timezone.utc)


class SaleRecorder:
    """Turns a cart into a recorded sale and takes the stock out."""
    def __init__(self, store: Store, ledger: InventoryLedger, clock=None):
        self.store = store
        self.ledger = ledger
        self.clock = clock or utc_now

    def checkout(self, cart: Cart):
        """
        Record the cart as a Sale, decrement inventory and clear the cart.
        Returns the Sale, or None for an empty cart.
        Raises InsufficientStockError (cart untouched) when stock ran out.
        """
        if cart.is_empty:
            logger.debug("Checkout ignored, cart is empty")
            return None
        items = tuple(cart.items)
        self.ledger.check_stock(items)
        sale = Sale(
            id=new_id(),
            date=self.clock().isoformat(timespec="seconds"),
            items=items,
            total_amount=cart.total(),
            customer_name=cart.customer_name.strip() or DEFAULT_CUSTOMER_NAME,
        )
        self.store.sales.append(sale)
        self.store.persist_sales()
        self.ledger.apply_sale(items)
        cart.clear()
        logger.info(f"Recorded sale {sale.id}: {len(items)} lines, total {sale.total_amount:.2f}")
        return sale


class PharmacySystem:
    """
    Coordinates inventory, the billing cart and checkout.
    """
    def __init__(self, db: Database, config=None, clock=None):
        self.db = db
        self.config = config or {}
        self.store = Store(db)
        self.ledger = InventoryLedger(self.store)
        self.cart = Cart()
        self.recorder = SaleRecorder(self.store, self.ledger, clock)

    @property
    def low_stock_threshold(self):
        return self.config.get("low_stock_threshold", 10)

    @property
    def expiry_horizon_months(self):
        return self.config.get("expiry_horizon_months", 3)

    def add_to_cart(self, medicine_id: str):
        """
        Look up a medicine and add one unit of it to the cart.
        Raises NotFoundError for unknown ids.
        """
        med = self.ledger.get(medicine_id)
        if med is None:
            raise NotFoundError(f"Medicine {medicine_id!r} not found.")
        return self.cart.add_item(med)

    def checkout(self):
        return self.recorder.checkout(self.cart)

    def find_sale(self, sale_id: str) -> Sale:
        for sale in self.store.sales:
            if sale.id == sale_id:
                return sale
        raise NotFoundError(f"Sale {sale_id!r} not found.")

    def dashboard(self, today=None):
        return reports.dashboard_summary(
            self.store.medicines, self.store.sales, today=today,
            low_stock_threshold=self.low_stock_threshold,
            horizon_months=self.expiry_horizon_months,
        )
