import pytest
import pytest_asyncio
from unittest.mock import AsyncMock, MagicMock
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from app.services.auto_migration import run_auto_migration
from app.services.pos_client import PosClient
from app.utils.config import settings

POS_BASE_URL = "http://pos.test/api"


@pytest.fixture
def mock_settings(mocker):
    mocker.patch.object(settings, 'POS_BASE_URL', POS_BASE_URL)
    mocker.patch.object(settings, 'POS_LOGIN_USERNAME', 'api_user')
    mocker.patch.object(settings, 'POS_LOGIN_PASSWORD', 'api_pass')
    mocker.patch.object(settings, 'POS_USER_ID', 'BOSS')
    mocker.patch.object(settings, 'POS_USER_PASSWORD', 'boss_pass')
    mocker.patch.object(settings, 'POS_LOCK_RETRIES', 3)
    mocker.patch.object(settings, 'POS_LOCK_RETRY_DELAY', 0)
    mocker.patch.object(settings, 'POS_TIMEZONE', 'Asia/Hong_Kong')
    mocker.patch.object(settings, 'POS_ORDER_PREFIX', 'SW04W')
    mocker.patch.object(settings, 'POS_WAREHOUSE_CODE', 'SW004')
    mocker.patch.object(settings, 'POS_STOCK_TARGET', 'STK')
    mocker.patch.object(settings, 'SHOPIFY_WEBHOOK_SECRET', 'mock_webhook_secret')
    mocker.patch.object(settings, 'SHOPIFY_TEST_WEBHOOK_SECRET', 'mock_test_secret')
    mocker.patch.object(settings, 'SHOPIFY_LOCATION_ID', None)
    return settings


@pytest.fixture
def pos_client(mock_settings):
    return PosClient(base_url=POS_BASE_URL, timeout=1.0, max_redirects=5)


@pytest_asyncio.fixture
async def db_sessionmaker(mocker, tmp_path):
    """File-backed SQLite database patched in for every store module."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'sync.db'}")
    await run_auto_migration(bind=engine)
    maker = async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)
    mocker.patch("app.services.catalog_service.AsyncSessionLocal", maker)
    mocker.patch("app.services.transaction_record_service.AsyncSessionLocal", maker)
    yield maker
    await engine.dispose()


@pytest.fixture
def empty_catalog():
    catalog = MagicMock()
    catalog.get_variant = AsyncMock(return_value=None)
    return catalog


@pytest.fixture
def sample_order():
    return {
        "id": 4501,
        "order_number": 500,
        "created_at": "2023-01-15T10:00:00+08:00",
        "currency": "HKD",
        "total_price": "32.00",
        "gateway": "shopify_payments",
        "customer": {
            "id": 7,
            "email": "amy@example.com",
            "phone": None,
            "first_name": "Amy",
            "last_name": "Chan",
        },
        "line_items": [
            {
                "variant_id": 101,
                "sku": "SKU-A",
                "name": "Rubber Duck - Yellow",
                "price": "30.00",
                "quantity": 1,
                "total_discount": "6.00",
                "discount_allocations": [{"amount": "6.00"}],
            }
        ],
        "shipping_lines": [
            {"title": "Standard", "price": "10.00", "discounted_price": "8.00"}
        ],
    }
