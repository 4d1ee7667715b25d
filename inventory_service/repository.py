# ============================================
# inventory_service/repository.py — Product Operations
# ============================================
# Every operation loads the full collection from storage, works on it in
# memory and, for writes, hands the full collection back. Writes run
# under the storage lock so two requests in the same process cannot
# overwrite each other's changes.

import logging
import uuid
from datetime import datetime, timezone
from typing import List

from pydantic import ValidationError

from .errors import NotFoundError, StorageError
from .models import ProductIn, ProductResponse
from .storage import ProductStorage

logger = logging.getLogger(__name__)


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def make_unique_id(existing: set) -> str:
    while True:
        new_id = uuid.uuid4().hex
        if new_id not in existing:
            return new_id


def check_record(record) -> dict:
    """Raise StorageError unless ``record`` has the full product shape."""
    try:
        ProductResponse.model_validate(record)
    except ValidationError as e:
        product_id = record.get("id") if isinstance(record, dict) else None
        fields = ", ".join(str(err["loc"][0]) if err["loc"] else "record" for err in e.errors())
        raise StorageError(f"Stored product {product_id!r} is malformed ({fields})") from e
    return record


def parse_timestamp(record: dict) -> datetime:
    """Parse a record's ISO-8601 ``datetime``; naive values are taken as UTC."""
    raw = record.get("datetime")
    try:
        parsed = datetime.fromisoformat(raw)
    except (TypeError, ValueError) as e:
        raise StorageError(
            f"Product {record.get('id')!r} has an invalid datetime: {raw!r}"
        ) from e
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def sort_newest_first(records: List[dict]) -> List[dict]:
    # Ties on datetime go to the record stored later.
    keyed = [(parse_timestamp(r), pos, r) for pos, r in enumerate(records)]
    keyed.sort(key=lambda item: (item[0], item[1]), reverse=True)
    return [r for _, _, r in keyed]


class ProductRepository:
    def __init__(self, storage: ProductStorage, clock=utc_now):
        self.storage = storage
        self.clock = clock

    def load(self) -> List[dict]:
        return [check_record(r) for r in self.storage.read_all()]

    def list(self) -> List[dict]:
        return sort_newest_first(self.load())

    def get(self, product_id: str) -> dict:
        for product in self.load():
            if product.get("id") == product_id:
                return product
        raise NotFoundError()

    def create(self, payload: ProductIn) -> dict:
        with self.storage.lock():
            products = self.load()
            product = {
                "id": make_unique_id({p.get("id") for p in products}),
                "product_name": payload.product_name,
                "quantity": payload.quantity,
                "price": payload.price,
                "datetime": self.clock(),
                "total_value": payload.quantity * payload.price,
            }
            products.append(product)
            self.storage.write_all(products)

        logger.info("Created product %s (%s)", product["id"], product["product_name"])
        return product

    def update(self, product_id: str, payload: ProductIn) -> dict:
        """Replace name/quantity/price of ``product_id``; id and datetime are kept."""
        with self.storage.lock():
            products = self.load()
            for product in products:
                if product.get("id") == product_id:
                    product["product_name"] = payload.product_name
                    product["quantity"] = payload.quantity
                    product["price"] = payload.price
                    product["total_value"] = payload.quantity * payload.price
                    break
            else:
                raise NotFoundError()
            self.storage.write_all(products)

        logger.info("Updated product %s", product_id)
        return product

    def delete(self, product_id: str) -> None:
        """Drop every record with ``product_id``. A missing id is not an error."""
        with self.storage.lock():
            products = self.load()
            remaining = [p for p in products if p.get("id") != product_id]
            self.storage.write_all(remaining)

        logger.info("Deleted product %s (%d removed)", product_id, len(products) - len(remaining))
