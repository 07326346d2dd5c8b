"""Shared fixtures: in-memory database, sample catalog and QuickBooks test doubles."""
import asyncio
import os
import sys
from datetime import timedelta
from decimal import Decimal
from pathlib import Path
from typing import Optional

import pytest
from cryptography.fernet import Fernet

# Ensure repository root is on sys.path for module resolution
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# Settings are read at import time, so they must be in place before kyte_qbo is imported
os.environ["SECRET_KEY"] = Fernet.generate_key().decode()
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["QBO_WEBHOOK_VERIFIER_TOKEN"] = "test-verifier-token"
os.environ["REDIS_URL"] = ""
os.environ["DB_LOG_SLOW_QUERIES"] = "false"

from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from kyte_qbo import models, models_quickbooks  # noqa: E402,F401
from kyte_qbo.database import Base  # noqa: E402
from kyte_qbo.domain.customers.schemas import CustomerRecord  # noqa: E402
from kyte_qbo.exceptions import RemoteApiError  # noqa: E402
from kyte_qbo.models import Customer, Product  # noqa: E402
from kyte_qbo.services.quickbooks_service import EstimateResult  # noqa: E402
from kyte_qbo.shared.validators import utcnow  # noqa: E402

TENANT = "acme"
OTHER_TENANT = "globex"


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


def add_product(db, company_id: str = TENANT, **fields) -> Product:
    fields.setdefault("price", Decimal("1.00"))
    fields.setdefault("is_archived", False)
    product = Product(company_id=company_id, **fields)
    db.add(product)
    db.commit()
    db.refresh(product)
    return product


@pytest.fixture
def catalog(db) -> dict[str, Product]:
    """A small tenant catalog plus a same-SKU product owned by another tenant."""
    products = {
        "blue_widget": add_product(
            db,
            product_name="Blue Widget",
            sku="BW-100",
            barcode="7891234567895",
            price=Decimal("9.99"),
            tax_code_ref="TAX",
            external_item_id="101",
        ),
        "red_widget": add_product(
            db,
            product_name="Red Widget",
            sku="RW-200",
            price=Decimal("12.50"),
            tax_code_ref="TAX",
            external_item_id="102",
        ),
        "semolina": add_product(
            db,
            product_name="Semolina Fine G/S 1KG",
            sku="SEM-1KG",
            price=Decimal("30.00"),
            tax_code_ref="NON",
            external_item_id="103",
        ),
        "corn_flour": add_product(
            db,
            product_name="Corn Flour",
            price=Decimal("5.25"),
            external_item_id="104",
        ),
        "corn_flour_archived": add_product(
            db,
            product_name="Corn Flour",
            price=Decimal("4.00"),
            external_item_id="105",
            is_archived=True,
        ),
        "green_widget_unsynced": add_product(
            db,
            product_name="Green Widget",
            sku="GW-1",
            price=Decimal("7.00"),
        ),
        "foreign_blue_widget": add_product(
            db,
            company_id=OTHER_TENANT,
            product_name="Blue Widget",
            sku="BW-100",
            price=Decimal("1.00"),
            external_item_id="901",
        ),
    }
    return products


@pytest.fixture
def mirrored_customer(db) -> Customer:
    customer = Customer(company_id=TENANT, remote_id="58", display_name="Padaria Central", fetched_at=utcnow())
    db.add(customer)
    db.commit()
    db.refresh(customer)
    return customer


class FakeEstimateClient:
    """Records create_estimate calls and answers with a canned outcome."""

    def __init__(self, error: Optional[Exception] = None, delay: float = 0.0):
        self.error = error
        self.delay = delay
        self.calls = []

    async def create_estimate(self, tenant, payload):
        self.calls.append((tenant, payload))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        estimate_id = str(1000 + len(self.calls))
        return EstimateResult(
            estimate_id=estimate_id,
            estimate_number=payload.orderNumber,
            url=f"https://sandbox.qbo.intuit.com/app/estimate?txnId={estimate_id}",
        )


class FakeCustomerClient:
    """Serves customer snapshots from a dict; missing ids come back as None."""

    def __init__(self, customers: Optional[dict] = None, error: Optional[RemoteApiError] = None):
        self.customers = customers or {}
        self.error = error
        self.calls = []

    async def fetch_customer(self, tenant, remote_id):
        self.calls.append((tenant, remote_id))
        if self.error is not None:
            raise self.error
        name = self.customers.get(remote_id)
        if name is None:
            return None
        return CustomerRecord(id=remote_id, display_name=name, fetched_at=utcnow())


@pytest.fixture
def estimate_client() -> FakeEstimateClient:
    return FakeEstimateClient()


@pytest.fixture
def past():
    """A fixed, naive UTC timestamp well before now."""
    return utcnow() - timedelta(days=1)
