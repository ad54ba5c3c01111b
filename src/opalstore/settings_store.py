"""Store settings storage for opalstore."""

from decimal import Decimal

from .document_store import STORE_SETTINGS, DocumentStore
from .models import StoreSettings, _utc_now

SETTINGS_DOC_ID = "config"


class SettingsStore:
    """Reads and writes the store-wide settings singleton."""

    def __init__(self, documents: DocumentStore):
        self.documents = documents

    def get_settings(self) -> StoreSettings:
        """Return stored settings, or defaults when none are saved."""
        data = self.documents.get(STORE_SETTINGS, SETTINGS_DOC_ID)
        if data is None:
            return StoreSettings()
        return StoreSettings.from_dict(data)

    def update_settings(
        self,
        shipping_cost: Decimal | None = None,
        free_shipping_threshold: Decimal | None = None,
        currency: str | None = None,
    ) -> StoreSettings:
        """
        Update the given fields, leaving the others unchanged.

        Raises:
            ValidationError: If a money value is negative.
        """
        settings = self.get_settings()
        if shipping_cost is not None:
            settings.shipping_cost = shipping_cost
        if free_shipping_threshold is not None:
            settings.free_shipping_threshold = free_shipping_threshold
        if currency is not None:
            settings.currency = currency
        settings.validate()
        settings.updated_at = _utc_now()
        self.save(settings)
        return settings

    def save(self, settings: StoreSettings) -> None:
        """Overwrite the settings document."""
        self.documents.put(STORE_SETTINGS, SETTINGS_DOC_ID, settings.to_dict())
