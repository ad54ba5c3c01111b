"""Full-database export and restore for opalstore."""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping

from .document_store import CATEGORIES, ORDERS, PRODUCTS, STORE_SETTINGS, DocumentStore
from .errors import InvalidSchemaVersionError, OpalStoreError, ValidationError
from .models import BACKUP_VERSION, BackupData, Category, Order, Product, StoreSettings, _utc_now
from .settings_store import SETTINGS_DOC_ID

logger = logging.getLogger(__name__)

RECORD_COLLECTIONS = (PRODUCTS, CATEGORIES, ORDERS)


@dataclass
class RestoreReport:
    """What a restore wrote, plus the records it had to skip."""

    products: int = 0
    categories: int = 0
    orders: int = 0
    settings_restored: bool = False
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "products": self.products,
            "categories": self.categories,
            "orders": self.orders,
            "settings_restored": self.settings_restored,
            "errors": list(self.errors),
        }


def export_backup(documents: DocumentStore) -> BackupData:
    """Snapshot every collection. Products and orders keep their stored IDs."""
    settings_doc = documents.get(STORE_SETTINGS, SETTINGS_DOC_ID)
    return BackupData(
        version=BACKUP_VERSION,
        exported_at=_utc_now(),
        products=[Product.from_dict(d) for d in documents.list_documents(PRODUCTS)],
        categories=[Category.from_dict(d) for d in documents.list_documents(CATEGORIES)],
        orders=[Order.from_dict(d) for d in documents.list_documents(ORDERS)],
        store_settings=StoreSettings.from_dict(settings_doc) if settings_doc else StoreSettings(),
    )


def _check_shape(backup: Any) -> None:
    if not isinstance(backup, Mapping):
        raise ValidationError("Invalid backup file: expected a JSON object")
    if (
        backup.get("version") is None
        or not all(isinstance(backup.get(name), list) for name in RECORD_COLLECTIONS)
    ):
        raise ValidationError(
            "Invalid backup file: missing version, products, categories, or orders."
        )
    if backup["version"] != BACKUP_VERSION:
        raise InvalidSchemaVersionError(backup["version"], BACKUP_VERSION)


def _validate_product(data: dict[str, Any]) -> dict[str, Any]:
    product = Product.from_dict(data)
    product.validate()
    return product.to_dict()


def _collect(
    name: str,
    records: list[Any],
    convert: Callable[[dict[str, Any]], dict[str, Any]],
    errors: list[str],
) -> list[dict[str, Any]]:
    valid = []
    for index, record in enumerate(records):
        label = f"{name}[{index}]"
        if not isinstance(record, dict):
            errors.append(f"{label}: expected an object")
            continue
        if not record.get("id"):
            errors.append(f"{label}: missing id")
            continue
        try:
            valid.append(convert(record))
        except (KeyError, TypeError, ValueError, OpalStoreError) as e:
            errors.append(f"{label} ({record['id']}): {e}")
    return valid


def restore_backup(documents: DocumentStore, backup: Mapping[str, Any]) -> RestoreReport:
    """
    Replace products, categories, orders and settings with a backup.

    The whole document is checked before anything is written. Malformed
    records are skipped and listed in the report. If a write fails part
    way, the collections written so far are put back as they were and the
    error is re-raised.

    Raises:
        ValidationError: If the backup is not a backup document.
        InvalidSchemaVersionError: If the backup version is unsupported.
        BackendNotConfiguredError: If the document store is unconfigured.
    """
    _check_shape(backup)

    report = RestoreReport()
    staged: dict[str, list[dict[str, Any]]] = {
        PRODUCTS: _collect(PRODUCTS, backup[PRODUCTS], _validate_product, report.errors),
        CATEGORIES: _collect(
            CATEGORIES, backup[CATEGORIES],
            lambda d: Category.from_dict(d).to_dict(), report.errors,
        ),
        ORDERS: _collect(
            ORDERS, backup[ORDERS], lambda d: Order.from_dict(d).to_dict(), report.errors
        ),
    }

    settings_data = backup.get("store_settings")
    if isinstance(settings_data, Mapping):
        try:
            settings = StoreSettings.from_dict(dict(settings_data))
            settings.validate()
        except (TypeError, ValueError, OpalStoreError) as e:
            report.errors.append(f"store_settings: {e}")
        else:
            staged[STORE_SETTINGS] = [{"id": SETTINGS_DOC_ID, **settings.to_dict()}]

    snapshot = {name: documents.list_documents(name) for name in staged}
    written: list[str] = []
    try:
        for name, docs in staged.items():
            documents.replace_all(name, docs)
            written.append(name)
            logger.info("Restored %d document(s) into '%s'", len(docs), name)
    except Exception:
        logger.exception("Restore failed; rolling back %s", ", ".join(written) or "nothing")
        for name in written:
            documents.replace_all(name, snapshot[name])
        raise

    report.products = len(staged[PRODUCTS])
    report.categories = len(staged[CATEGORIES])
    report.orders = len(staged[ORDERS])
    report.settings_restored = STORE_SETTINGS in staged
    if report.errors:
        logger.warning("Restore skipped %d malformed record(s)", len(report.errors))
    return report
