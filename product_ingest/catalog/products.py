"""
Read access to the canonical product table and its change history.
"""

from datetime import timedelta

from product_ingest.batch.reports import check_page, paginate
from product_ingest.core.exceptions import NotFoundFailure
from product_ingest.core.models import AuditEntry, CanonicalProduct, ProductPage, utc_now
from product_ingest.warehouse.store import CatalogStore

DAYS_PER_MONTH = 30


class ProductCatalog:
    """
    Query side of the system of record.

    Products are only ever written by the chunk processor; this class never
    mutates them.
    """

    def __init__(self, store: CatalogStore):
        self.store = store

    def list_products(
        self,
        page: int = 1,
        page_size: int = 20,
        search: str | None = None,
        active_only: bool = False,
    ) -> ProductPage:
        """
        Products ordered by identifier.

        Args:
            page: 1-based page number
            page_size: Products per page
            search: Case-insensitive substring of the identifier or name
            active_only: Only products whose withdrawal date has not passed
        """
        check_page(page, page_size)
        with self.store.unit_of_work() as uow:
            total = uow.count_products(search, active_only)
            products = uow.list_products((page - 1) * page_size, page_size, search, active_only)
        return ProductPage(data=products, pagination=paginate(page, page_size, total))

    def get_product(self, product_id: str) -> CanonicalProduct:
        with self.store.unit_of_work() as uow:
            found = uow.get_products([product_id])
        if product_id not in found:
            raise NotFoundFailure(f"Product {product_id} not found")
        return found[product_id]

    def get_product_history(self, product_id: str, months_back: int = 12) -> list[AuditEntry]:
        """
        History entries for a product, newest first.

        Args:
            product_id: Product identifier
            months_back: Only entries from the last N months (30-day months)

        Raises:
            ValueError: months_back is not positive
        """
        if months_back <= 0:
            raise ValueError(f"months_back must be positive, got {months_back}")
        since = utc_now() - timedelta(days=DAYS_PER_MONTH * months_back)
        with self.store.unit_of_work() as uow:
            entries = uow.list_audit(product_id=product_id, since=since)
        return sorted(entries, key=lambda e: (e.changed_at, e.history_id or 0), reverse=True)
