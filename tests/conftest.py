"""Pytest fixtures for testing"""

import asyncio
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Dict, Generator, Iterable, List, Optional, Tuple

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from installment_ledger.api.dependencies import get_reminder_timezone, get_whatsapp_client
from installment_ledger.api.main import create_app
from installment_ledger.domain.exceptions import MessagingAPIError
from installment_ledger.infrastructure.database.models import Base, DataItem, User
from installment_ledger.infrastructure.database.session import get_db

TODAY = date(2026, 10, 19)
REMINDER_NOW = datetime(2026, 10, 19, 9, 0)

ID_INSTANCE = "1101000001"
API_TOKEN = "test-token"


@dataclass
class SentMessage:
    id_instance: str
    api_token_instance: str
    chat_id: str
    message: str


class FakeWhatsAppClient:
    """In-memory stand-in for WhatsAppClient that records every send"""

    def __init__(self, fail_for: Iterable[str] = (), delay: float = 0.0, state: str = "authorized"):
        self.sent: List[SentMessage] = []
        self.fail_for = set(fail_for)
        self.delay = delay
        self.state = state

    async def send_message(self, id_instance: str, api_token_instance: str, chat_id: str, message: str) -> str:
        if self.delay:
            await asyncio.sleep(self.delay)
        if chat_id in self.fail_for:
            raise MessagingAPIError("WhatsApp API error: 500")
        self.sent.append(SentMessage(id_instance, api_token_instance, chat_id, message))
        return f"MSG{len(self.sent)}"

    async def get_state(self, id_instance: str, api_token_instance: str) -> str:
        return self.state


@pytest.fixture
def engine(tmp_path) -> Generator[Engine, None, None]:
    """File-backed SQLite so several sessions see the same data"""
    engine = create_engine(f"sqlite:///{tmp_path / 'test.db'}", connect_args={"check_same_thread": False})
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory: sessionmaker) -> Generator[Session, None, None]:
    """Create test database session"""
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def whatsapp() -> FakeWhatsAppClient:
    return FakeWhatsAppClient()


@pytest.fixture
def client(db: Session, whatsapp: FakeWhatsAppClient) -> TestClient:
    """Create FastAPI test client with test database and fake WhatsApp"""
    app = create_app()

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_whatsapp_client] = lambda: whatsapp
    app.dependency_overrides[get_reminder_timezone] = lambda: None
    return TestClient(app)


def wa_settings_blob(
    reminder_days: Iterable[int] = (0,),
    reminder_time: str = "09:00",
    enabled: bool = True,
    templates: Optional[Dict[str, str]] = None,
) -> Dict[str, Any]:
    blob = {
        "enabled": enabled,
        "idInstance": ID_INSTANCE,
        "apiTokenInstance": API_TOKEN,
        "reminderTime": reminder_time,
        "reminderDays": list(reminder_days),
    }
    if templates:
        blob["templates"] = templates
    return blob


def add_tenant(db: Session, tenant_id: str, wa_settings: Optional[Dict[str, Any]] = None, role: str = "manager") -> None:
    db.add(
        User(
            id=tenant_id,
            name=f"Merchant {tenant_id}",
            email=f"{tenant_id}@example.com",
            role=role,
            whatsapp_settings=wa_settings,
        )
    )
    db.commit()


def add_customer(db: Session, tenant_id: str, customer_id: str, name: str, phone: str, **fields: Any) -> None:
    data = {"id": customer_id, "userId": tenant_id, "name": name, "phone": phone, "email": "", "notes": "", **fields}
    db.add(DataItem(id=customer_id, user_id=tenant_id, type="customers", data=data))
    db.commit()


def sale_blob(
    sale_id: str,
    tenant_id: str,
    customer_id: str,
    plan: Iterable[Tuple[date, float]],
    paid: Iterable[int] = (),
    notified: Optional[Dict[int, date]] = None,
    status: str = "ACTIVE",
    product_name: str = "Samsung TV",
) -> Dict[str, Any]:
    """Sale blob as the web app stores it; paid/notified index into plan"""
    paid = set(paid)
    notified = notified or {}
    payments = []
    for i, (due, amount) in enumerate(plan):
        payment = {"id": f"{sale_id}_p{i}", "saleId": sale_id, "amount": amount, "date": due.isoformat(), "isPaid": i in paid}
        if i in notified:
            payment["lastNotificationDate"] = notified[i].isoformat()
        payments.append(payment)

    financed = sum(amount for _, amount in plan)
    remaining = sum(p["amount"] for p in payments if not p["isPaid"])
    return {
        "id": sale_id,
        "userId": tenant_id,
        "type": "INSTALLMENT",
        "customerId": customer_id,
        "productName": product_name,
        "buyPrice": 20000,
        "accountId": f"acc_main_{tenant_id}",
        "totalAmount": financed + 5000,
        "downPayment": 5000,
        "remainingAmount": remaining,
        "interestRate": 30,
        "installments": len(payments),
        "startDate": "2026-01-15",
        "status": status,
        "paymentPlan": payments,
    }


def add_sale(db: Session, blob: Dict[str, Any]) -> None:
    db.add(DataItem(id=blob["id"], user_id=blob["userId"], type="sales", data=blob))
    db.commit()


def stored_sale(session_factory: sessionmaker, sale_id: str) -> Dict[str, Any]:
    """Read a sale blob through a fresh session"""
    with session_factory() as fresh:
        return fresh.query(DataItem).filter(DataItem.id == sale_id).one().data
