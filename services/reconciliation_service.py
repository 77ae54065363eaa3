"""
Reconciliation of normalized import rows against a tenant's data.

apply flow:
1. Preload active suppliers, categories and products into normalized-name maps
2. Create what is missing (default category first), in bulk batches
3. Price every row; skip it if the current price is identical, insert otherwise

Bulk writes go through BatchInserter, whose behavior on a failed batch is
set by a BatchFailurePolicy. A failed entity batch is followed by a re-read,
since the usual cause is a concurrent insert of the same names.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Optional
import structlog

from config import get_supabase_client, settings, fetch_all, chunked
from models.imports import BatchFailurePolicy, CategoryTotals, ImportStats
from models.settings import TenantPricingConfig
from models.tenant import TenantContext
from services.pricing_service import calculate_price_entry, PriceCalculation
from services.row_normalizer_service import ImportRow
from utils.text_utils import normalize_name
from exceptions import DatabaseError, DefaultCategoryError, ImportBatchError

logger = structlog.get_logger(__name__)

CURRENT_PRICE_VIEW = "product_supplier_current_price"

# Children first
OVERWRITE_DELETE_ORDER = ("price_entries", "products", "suppliers", "categories", "settings")


# ===================
# BATCH WRITER
# ===================

@dataclass
class BatchOutcome:
    """Result of one BatchInserter.insert() call."""
    inserted_count: int = 0
    inserted: list[dict] = field(default_factory=list)
    failed: list[dict] = field(default_factory=list)
    failed_batches: int = 0


class BatchInserter:
    """
    Insert rows into one table in fixed-size batches.

    Under SKIP a failed batch is logged and its rows are returned in
    `failed`; ABORT raises ImportBatchError; RETRY_ONCE retries the batch
    once and then behaves like SKIP.
    """

    def __init__(self, db, policy: BatchFailurePolicy, batch_size: Optional[int] = None):
        self.db = db
        self.policy = policy
        self.batch_size = batch_size or settings.import_batch_size

    def insert(self, table: str, rows: list[dict]) -> BatchOutcome:
        outcome = BatchOutcome()
        for number, batch in enumerate(chunked(rows, self.batch_size), start=1):
            try:
                returned = self._insert_batch(table, batch)
            except Exception as e:
                logger.warning(
                    "import_batch_failed",
                    table=table,
                    batch=number,
                    rows=len(batch),
                    policy=self.policy.value,
                    error=str(e)
                )
                returned = self._handle_failure(table, number, batch, e)
                if returned is None:
                    outcome.failed.extend(batch)
                    outcome.failed_batches += 1
                    continue

            outcome.inserted_count += len(batch)
            outcome.inserted.extend(returned)
        return outcome

    def _insert_batch(self, table: str, batch: list[dict]) -> list[dict]:
        response = self.db.table(table).insert(batch).execute()
        return response.data or []

    def _handle_failure(
        self,
        table: str,
        number: int,
        batch: list[dict],
        error: Exception
    ) -> Optional[list[dict]]:
        """Returned rows if a retry succeeded, None if the batch is skipped."""
        if self.policy == BatchFailurePolicy.ABORT:
            raise ImportBatchError(table, number, str(error))

        if self.policy == BatchFailurePolicy.RETRY_ONCE:
            try:
                returned = self._insert_batch(table, batch)
                logger.info("import_batch_retry_succeeded", table=table, batch=number)
                return returned
            except Exception as retry_error:
                logger.warning(
                    "import_batch_retry_failed",
                    table=table,
                    batch=number,
                    error=str(retry_error)
                )
        return None


# ===================
# TENANT SNAPSHOT
# ===================

@dataclass
class TenantSnapshot:
    """Active tenant entities keyed by normalized name."""
    suppliers: dict[str, str] = field(default_factory=dict)
    categories: dict[str, dict] = field(default_factory=dict)
    products: dict[tuple[str, str], str] = field(default_factory=dict)

    def add_supplier(self, row: dict) -> None:
        self.suppliers[normalize_name(row["name"])] = row["id"]

    def add_category(self, row: dict) -> None:
        self.categories[normalize_name(row["name"])] = row

    def add_product(self, row: dict) -> None:
        name_norm = row.get("name_norm") or normalize_name(row["name"])
        self.products[(name_norm, row["category_id"])] = row["id"]

    def category_id(self, name: str) -> Optional[str]:
        category = self.categories.get(normalize_name(name))
        return category["id"] if category else None

    def category_margin(self, name: str) -> Optional[float]:
        category = self.categories.get(normalize_name(name))
        if not category or category.get("default_margin_percent") is None:
            return None
        return float(category["default_margin_percent"])


# ===================
# SERVICE
# ===================

class ReconciliationService:
    """
    Writes normalized import rows into tenant tables.

    Every query is scoped by tenant_id.
    """

    def __init__(self):
        self.db = get_supabase_client()

    # ===================
    # PRELOAD
    # ===================

    def preload(self, tenant_id: str) -> TenantSnapshot:
        """
        Load active suppliers, categories and products of a tenant.

        Raises:
            DatabaseError: If a read fails
        """
        snapshot = TenantSnapshot()
        try:
            for row in fetch_all(lambda: self._active("suppliers", "id,name", tenant_id)):
                snapshot.add_supplier(row)
            for row in fetch_all(lambda: self._active("categories", "id,name,default_margin_percent", tenant_id)):
                snapshot.add_category(row)
            for row in fetch_all(lambda: self._active("products", "id,name,name_norm,category_id", tenant_id)):
                snapshot.add_product(row)
        except Exception as e:
            logger.error("import_preload_failed", tenant_id=tenant_id, error=str(e))
            raise DatabaseError("select", str(e))

        logger.info(
            "import_preload_complete",
            tenant_id=tenant_id,
            suppliers=len(snapshot.suppliers),
            categories=len(snapshot.categories),
            products=len(snapshot.products)
        )
        return snapshot

    def _active(self, table: str, columns: str, tenant_id: str):
        return (
            self.db.table(table)
            .select(columns)
            .eq("tenant_id", tenant_id)
            .eq("is_active", True)
            .order("id")
        )

    # ===================
    # APPLY
    # ===================

    def reconcile(
        self,
        tenant: TenantContext,
        rows: list[ImportRow],
        config: TenantPricingConfig,
        policy: BatchFailurePolicy
    ) -> ImportStats:
        """
        Create missing entities and insert changed prices.

        Args:
            tenant: Tenant and acting user
            rows: Deduplicated import rows
            config: Tenant pricing configuration
            policy: Failed batch handling

        Returns:
            ImportStats

        Raises:
            ImportBatchError: Under ABORT, with the stats so far in details
            DefaultCategoryError: If the default category cannot be ensured
        """
        stats = ImportStats()
        writer = BatchInserter(self.db, policy)
        default_category = settings.default_category_name

        logger.info(
            "import_reconcile_started",
            tenant_id=tenant.tenant_id,
            rows=len(rows),
            policy=policy.value
        )

        try:
            snapshot = self.preload(tenant.tenant_id)
            if self.ensure_default_category(tenant, snapshot):
                stats.categories_created += 1

            stats.suppliers_created = self._create_suppliers(tenant, rows, snapshot, writer)
            stats.categories_created += self._create_categories(tenant, rows, snapshot, writer)
            stats.products_created = self._create_products(tenant, rows, snapshot, writer)
            self._insert_prices(tenant, rows, snapshot, config, writer, stats)
        except ImportBatchError as e:
            e.details["stats"] = stats.model_dump()
            logger.error("import_reconcile_aborted", tenant_id=tenant.tenant_id, error=e.message)
            raise

        stats.by_category = self._products_by_category(rows, snapshot, default_category)

        logger.info("import_reconcile_complete", tenant_id=tenant.tenant_id, **stats.model_dump(exclude={"by_category"}))
        return stats

    def _products_by_category(
        self,
        rows: list[ImportRow],
        snapshot: TenantSnapshot,
        default_category: str
    ) -> dict[str, CategoryTotals]:
        """Distinct products per resolved category, labelled with the stored name."""
        labels: dict[str, str] = {}
        products: dict[str, set[str]] = {}
        for row in rows:
            name = row.category or default_category
            key = normalize_name(name)
            category = snapshot.categories.get(key)
            labels.setdefault(key, category["name"] if category else name)
            products.setdefault(key, set()).add(normalize_name(row.product_name))
        return {labels[key]: CategoryTotals(total=len(names)) for key, names in products.items()}

    def ensure_default_category(self, tenant: TenantContext, snapshot: TenantSnapshot) -> bool:
        """
        Make sure the default category exists.

        Returns:
            True if it was created

        Raises:
            DefaultCategoryError: If it can neither be found nor created
        """
        name = settings.default_category_name
        if snapshot.category_id(name):
            return False

        try:
            response = self.db.table("categories").insert(
                self._category_record(tenant, name)
            ).execute()
            for row in response.data or []:
                snapshot.add_category(row)
            created = True
        except Exception as e:
            logger.warning("default_category_insert_failed", tenant_id=tenant.tenant_id, error=str(e))
            created = False
            self._reread(snapshot.add_category, "categories", "id,name,default_margin_percent", tenant.tenant_id, "name", [name])

        if not snapshot.category_id(name):
            raise DefaultCategoryError(name, "default category could not be created")
        return created

    def _create_suppliers(
        self,
        tenant: TenantContext,
        rows: list[ImportRow],
        snapshot: TenantSnapshot,
        writer: BatchInserter
    ) -> int:
        missing: dict[str, str] = {}
        for row in rows:
            key = normalize_name(row.supplier)
            if key not in snapshot.suppliers and key not in missing:
                missing[key] = row.supplier
        if not missing:
            return 0

        records = [
            {
                "tenant_id": tenant.tenant_id,
                "name": name,
                "is_active": True,
                "created_by": tenant.user_id,
            }
            for name in missing.values()
        ]
        outcome = writer.insert("suppliers", records)
        for row in outcome.inserted:
            snapshot.add_supplier(row)
        if outcome.failed:
            self._reread(
                snapshot.add_supplier, "suppliers", "id,name", tenant.tenant_id,
                "name", [record["name"] for record in outcome.failed]
            )
        return outcome.inserted_count

    def _create_categories(
        self,
        tenant: TenantContext,
        rows: list[ImportRow],
        snapshot: TenantSnapshot,
        writer: BatchInserter
    ) -> int:
        missing: dict[str, str] = {}
        for row in rows:
            if not row.category:
                continue
            key = normalize_name(row.category)
            if key not in snapshot.categories and key not in missing:
                missing[key] = row.category
        if not missing:
            return 0

        records = [self._category_record(tenant, name) for name in missing.values()]
        outcome = writer.insert("categories", records)
        for row in outcome.inserted:
            snapshot.add_category(row)
        if outcome.failed:
            self._reread(
                snapshot.add_category, "categories", "id,name,default_margin_percent", tenant.tenant_id,
                "name", [record["name"] for record in outcome.failed]
            )
        return outcome.inserted_count

    def _category_record(self, tenant: TenantContext, name: str) -> dict:
        return {
            "tenant_id": tenant.tenant_id,
            "name": name,
            "is_active": True,
            "created_by": tenant.user_id,
        }

    def _create_products(
        self,
        tenant: TenantContext,
        rows: list[ImportRow],
        snapshot: TenantSnapshot,
        writer: BatchInserter
    ) -> int:
        default_category = settings.default_category_name
        missing: dict[tuple[str, str], dict] = {}
        for row in rows:
            category_id = snapshot.category_id(row.category or default_category)
            if category_id is None:
                continue
            key = (normalize_name(row.product_name), category_id)
            if key in snapshot.products:
                continue

            record = missing.get(key)
            if record is None:
                missing[key] = {
                    "tenant_id": tenant.tenant_id,
                    "name": row.product_name,
                    "name_norm": key[0],
                    "category_id": category_id,
                    "sku": row.sku,
                    "package_quantity": row.package_quantity,
                    "unit": "unit",
                    "is_active": True,
                    "created_by": tenant.user_id,
                }
            else:
                # Same product offered by several suppliers
                if record["sku"] is None:
                    record["sku"] = row.sku
                if record["package_quantity"] is None:
                    record["package_quantity"] = row.package_quantity
        if not missing:
            return 0

        outcome = writer.insert("products", list(missing.values()))
        for row in outcome.inserted:
            snapshot.add_product(row)
        if outcome.failed:
            self._reread(
                snapshot.add_product, "products", "id,name,name_norm,category_id", tenant.tenant_id,
                "name_norm", sorted({record["name_norm"] for record in outcome.failed})
            )
        return outcome.inserted_count

    def _reread(
        self,
        add: Callable[[dict], None],
        table: str,
        columns: str,
        tenant_id: str,
        column: str,
        values: list[Any]
    ) -> None:
        """Re-resolve entities of a failed batch by name."""
        found = 0
        try:
            for chunk in chunked(values, settings.price_lookup_chunk_size):
                response = (
                    self.db.table(table)
                    .select(columns)
                    .eq("tenant_id", tenant_id)
                    .eq("is_active", True)
                    .in_(column, chunk)
                    .execute()
                )
                for row in response.data or []:
                    add(row)
                    found += 1
        except Exception as e:
            logger.error("import_reread_failed", table=table, error=str(e))
            raise DatabaseError("select", str(e))

        logger.info("import_reread_complete", table=table, requested=len(values), found=found)

    # ===================
    # PRICES
    # ===================

    def _insert_prices(
        self,
        tenant: TenantContext,
        rows: list[ImportRow],
        snapshot: TenantSnapshot,
        config: TenantPricingConfig,
        writer: BatchInserter,
        stats: ImportStats
    ) -> None:
        default_category = settings.default_category_name
        resolved: list[tuple[ImportRow, str, str]] = []
        for row in rows:
            category_name = row.category or default_category
            category_id = snapshot.category_id(category_name)
            supplier_id = snapshot.suppliers.get(normalize_name(row.supplier))
            product_id = snapshot.products.get((normalize_name(row.product_name), category_id)) if category_id else None
            if supplier_id is None or product_id is None:
                stats.prices_skipped += 1
                continue
            resolved.append((row, product_id, supplier_id))

        current = self.load_current_prices(tenant.tenant_id, sorted({product_id for _, product_id, _ in resolved}))

        records = []
        for row, product_id, supplier_id in resolved:
            calculation = calculate_price_entry(
                row.price,
                row.discount_percent,
                config,
                vat_override=row.vat,
                margin_override=snapshot.category_margin(row.category or default_category),
            )
            if is_unchanged(current.get((product_id, supplier_id)), calculation):
                stats.prices_skipped += 1
                continue
            records.append({
                "tenant_id": tenant.tenant_id,
                "product_id": product_id,
                "supplier_id": supplier_id,
                "cost_price": calculation.cost_price,
                "discount_percent": calculation.discount_percent,
                "cost_price_after_discount": calculation.cost_price_after_discount,
                "margin_percent": calculation.margin_percent,
                "vat_rate": row.vat,
                "sell_price": calculation.sell_price,
                "package_quantity": row.package_quantity,
                "created_by": tenant.user_id,
            })

        if not records:
            return
        outcome = writer.insert("price_entries", records)
        stats.prices_inserted += outcome.inserted_count
        stats.prices_skipped += len(outcome.failed)

    def load_current_prices(self, tenant_id: str, product_ids: list[str]) -> dict[tuple[str, str], dict]:
        """Latest price per (product_id, supplier_id) for the given products."""
        current: dict[tuple[str, str], dict] = {}
        try:
            for chunk in chunked(product_ids, settings.price_lookup_chunk_size):
                response = (
                    self.db.table(CURRENT_PRICE_VIEW)
                    .select("product_id,supplier_id,cost_price,discount_percent,sell_price")
                    .eq("tenant_id", tenant_id)
                    .in_("product_id", chunk)
                    .execute()
                )
                for row in response.data or []:
                    current[(row["product_id"], row["supplier_id"])] = row
        except Exception as e:
            logger.error("current_prices_load_failed", tenant_id=tenant_id, error=str(e))
            raise DatabaseError("select", str(e))
        return current

    # ===================
    # OVERWRITE
    # ===================

    def wipe_tenant_data(self, tenant_id: str) -> None:
        """
        Delete all import-owned data of a tenant, children first.

        The default category survives; settings are deleted and must be
        recreated by the caller. Irreversible.

        Raises:
            DatabaseError: If any delete fails
        """
        logger.warning("tenant_data_wipe_started", tenant_id=tenant_id)
        for table in OVERWRITE_DELETE_ORDER:
            try:
                query = self.db.table(table).delete().eq("tenant_id", tenant_id)
                if table == "categories":
                    query = query.neq("name", settings.default_category_name)
                query.execute()
            except Exception as e:
                logger.error("tenant_data_wipe_failed", tenant_id=tenant_id, table=table, error=str(e))
                raise DatabaseError("delete", str(e), details={"table": table})
        logger.warning("tenant_data_wiped", tenant_id=tenant_id)


def _as_float(value: Any) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def is_unchanged(current: Optional[dict], calculation: PriceCalculation) -> bool:
    """True if the current price equals the new one in cost, discount and sell price."""
    if not current:
        return False
    return (
        _as_float(current.get("cost_price")) == calculation.cost_price
        and (_as_float(current.get("discount_percent")) or 0.0) == calculation.discount_percent
        and _as_float(current.get("sell_price")) == calculation.sell_price
    )


# Singleton instance
_reconciliation_service: Optional[ReconciliationService] = None


def get_reconciliation_service() -> ReconciliationService:
    """Get or create reconciliation service instance."""
    global _reconciliation_service
    if _reconciliation_service is None:
        _reconciliation_service = ReconciliationService()
    return _reconciliation_service
