from abc import ABC, abstractmethod
from typing import Optional

from jewel_billing.models import CategoryDefaults, ItemLookupResult, RateSnapshot


class RateProvider(ABC):
    provider_name: str

    @abstractmethod
    def fetch_today_rates(self) -> RateSnapshot:
        """Returns today's gold, dollar and GST rates. Unpublished rates are None."""
        raise NotImplementedError


class CatalogProvider(ABC):
    @abstractmethod
    def fetch_categories(self) -> list[CategoryDefaults]:
        raise NotImplementedError

    @abstractmethod
    def lookup_item(self, code: str) -> Optional[ItemLookupResult]:
        """Returns the catalog entry for a normalized item code, or None."""
        raise NotImplementedError
