"""Data access layer for tenants and their JSON entity collections"""

import copy
import logging
from datetime import date, tzinfo
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from installment_ledger.domain.exceptions import InvalidSettingsError, ItemConflictError, PersistenceError
from installment_ledger.domain.models import Customer, Sale, Tenant, WhatsAppSettings
from installment_ledger.infrastructure.database.models import DataItem, User
from installment_ledger.infrastructure.database.serializers import (
    customer_from_blob,
    sale_from_blob,
    sale_to_blob,
    settings_from_blob,
    settings_to_blob,
)

SALES = "sales"
CUSTOMERS = "customers"

# Roles that own data; employees and investors act on their manager's rows
TENANT_ROLES = ("manager", "admin")


class TenantRepository:
    """Repository for tenant accounts and their WhatsApp settings"""

    def __init__(self, db: Session):
        self.db = db

    def get_reminder_tenants(self) -> List[Tenant]:
        """
        Tenants with WhatsApp reminders switched on.

        Raises:
            PersistenceError: Store unreachable
        """
        try:
            rows = (
                self.db.query(User)
                .filter(User.role.in_(TENANT_ROLES), User.whatsapp_settings.isnot(None))
                .order_by(User.id)
                .all()
            )
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to load tenants: {e}") from e

        tenants = []
        for row in rows:
            try:
                wa_settings = settings_from_blob(row.whatsapp_settings)
            except InvalidSettingsError as e:
                logging.warning(f"Skipping tenant with broken settings: {e}", extra={"tenant_id": row.id})
                continue
            if wa_settings and wa_settings.enabled:
                tenants.append(Tenant(id=row.id, role=row.role, whatsapp_settings=wa_settings))
        return tenants

    def get_tenant(self, tenant_id: str) -> Optional[Tenant]:
        row = self.db.query(User).filter(User.id == tenant_id, User.role.in_(TENANT_ROLES)).first()
        if row is None:
            return None
        return Tenant(id=row.id, role=row.role, whatsapp_settings=settings_from_blob(row.whatsapp_settings))

    def save_whatsapp_settings(self, tenant_id: str, wa_settings: WhatsAppSettings) -> bool:
        """Returns False when the tenant does not exist"""
        row = self.db.query(User).filter(User.id == tenant_id, User.role.in_(TENANT_ROLES)).first()
        if row is None:
            return False
        row.whatsapp_settings = settings_to_blob(wa_settings)
        self.db.flush()
        return True


class DataItemRepository:
    """Fetch-all-by-type and upsert-by-id over the data_items blobs"""

    def __init__(self, db: Session):
        self.db = db

    def list_blobs(self, tenant_id: str, item_type: str) -> List[Dict[str, Any]]:
        try:
            rows = (
                self.db.query(DataItem)
                .filter(DataItem.user_id == tenant_id, DataItem.type == item_type)
                .order_by(DataItem.created_at, DataItem.id)
                .all()
            )
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to load {item_type} for {tenant_id}: {e}") from e
        return [row.data for row in rows]

    def _get_row(self, tenant_id: str, item_type: str, item_id: str, for_update: bool = False) -> Optional[DataItem]:
        query = self.db.query(DataItem).filter(
            DataItem.id == item_id,
            DataItem.user_id == tenant_id,
            DataItem.type == item_type,
        )
        if for_update:
            # Row lock on PostgreSQL; ignored by SQLite
            query = query.with_for_update()
        return query.first()

    def insert(self, tenant_id: str, item_type: str, item_id: str, data: Dict[str, Any]) -> None:
        """
        Raises:
            ItemConflictError: The id is already used, by this or any other tenant
        """
        if self.db.query(DataItem.id).filter(DataItem.id == item_id).first() is not None:
            raise ItemConflictError(f"Item {item_id} already exists")
        self.db.add(DataItem(id=item_id, user_id=tenant_id, type=item_type, data=data))
        self.db.flush()

    def upsert(self, tenant_id: str, item_type: str, item_id: str, data: Dict[str, Any]) -> None:
        """
        Raises:
            ItemConflictError: The id belongs to another tenant or another item type
        """
        row = self.db.query(DataItem).filter(DataItem.id == item_id).with_for_update().first()
        if row is None:
            self.db.add(DataItem(id=item_id, user_id=tenant_id, type=item_type, data=data))
        elif row.user_id != tenant_id or row.type != item_type:
            raise ItemConflictError(f"Item {item_id} is owned by another tenant or type")
        else:
            row.data = data
        self.db.flush()


class SaleRepository(DataItemRepository):
    """Repository for sales and their payment plans"""

    def __init__(self, db: Session, tz: Optional[tzinfo] = None):
        super().__init__(db)
        self.tz = tz

    def list_sales(self, tenant_id: str) -> List[Sale]:
        """All parseable sales of a tenant; malformed blobs are logged and skipped"""
        sales = []
        for blob in self.list_blobs(tenant_id, SALES):
            try:
                sales.append(sale_from_blob(blob, tenant_id, self.tz))
            except (KeyError, ValueError, TypeError, AttributeError) as e:
                logging.warning(
                    f"Skipping malformed sale: {e!r}",
                    extra={"tenant_id": tenant_id, "sale_id": blob.get("id") if isinstance(blob, dict) else None},
                )
        return sales

    def get_sale(self, tenant_id: str, sale_id: str, for_update: bool = False) -> Optional[Sale]:
        """With for_update the row stays locked until commit, so a save cannot lose a concurrent stamp"""
        row = self._get_row(tenant_id, SALES, sale_id, for_update=for_update)
        return sale_from_blob(row.data, tenant_id, self.tz) if row else None

    def create_sale(self, sale: Sale) -> Dict[str, Any]:
        """
        Raises:
            ItemConflictError: Sale id already taken
        """
        blob = sale_to_blob(sale, self.tz)
        self.insert(sale.tenant_id, SALES, sale.id, blob)
        return blob

    def save_sale(self, sale: Sale) -> Dict[str, Any]:
        blob = sale_to_blob(sale, self.tz)
        self.upsert(sale.tenant_id, SALES, sale.id, blob)
        return blob

    def mark_payment_notified(self, tenant_id: str, sale_id: str, payment_id: str, day: date) -> bool:
        """
        Stamp lastNotificationDate on one obligation inside the stored sale.

        Read-modify-write of the current row under a row lock, so edits made
        to the sale since it was loaded are kept. Returns False when the
        obligation is gone or was already stamped for this day.
        """
        row = self._get_row(tenant_id, SALES, sale_id, for_update=True)
        if row is None:
            return False

        data = copy.deepcopy(row.data)
        payment = next((p for p in data.get("paymentPlan") or [] if str(p.get("id")) == payment_id), None)
        if payment is None or payment.get("lastNotificationDate") == day.isoformat():
            return False

        payment["lastNotificationDate"] = day.isoformat()
        row.data = data
        self.db.flush()
        return True


class CustomerRepository(DataItemRepository):
    """Repository for customers"""

    def get_customers_by_id(self, tenant_id: str) -> Dict[str, Customer]:
        customers = {}
        for blob in self.list_blobs(tenant_id, CUSTOMERS):
            try:
                customer = customer_from_blob(blob, tenant_id)
            except (KeyError, ValueError, TypeError) as e:
                logging.warning(f"Skipping malformed customer: {e!r}", extra={"tenant_id": tenant_id})
                continue
            customers[customer.id] = customer
        return customers
