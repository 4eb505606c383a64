import pytest
from ordering.cart.items import AddToCart
from ordering.catalog import set_catalog
from ordering.catalog.memory_adapter import InMemoryCatalog
from ordering.catalog.port import ProductListing
from ordering.points.ledger import EarnPoints
from ordering.promotions.management import CreateDiscountCode
from ordering.settlement.gateway import set_processor
from ordering.settlement.gateway.fake_adapter import FakePaymentProcessor
from ordering.settlement.orchestrator import SettlementOrchestrator
from ordering.settlement.payout import ConnectPayoutAccount
from protean import current_domain
from protean.integrations.pytest import DomainFixture

CUSTOMER_ID = "cust-001"

LISTINGS = [
    ProductListing(
        product_id="prod-a1",
        retailer_id="ret-a",
        retailer_name="Alder Bakery",
        name="Sourdough Loaf",
        unit_price=1500,
        stock=20,
        pickup_location="12 High Street",
    ),
    ProductListing(
        product_id="prod-a2",
        retailer_id="ret-a",
        retailer_name="Alder Bakery",
        name="Almond Croissant",
        unit_price=250,
        stock=50,
        pickup_location="12 High Street",
    ),
    ProductListing(
        product_id="prod-b1",
        retailer_id="ret-b",
        retailer_name="Birch Books",
        name="Paperback Novel",
        unit_price=1000,
        stock=10,
        pickup_location="3 Mill Lane",
    ),
    ProductListing(
        product_id="prod-c1",
        retailer_id="ret-c",
        retailer_name="Cedar Flowers",
        name="Seasonal Bouquet",
        unit_price=999,
        stock=5,
        pickup_location="8 Market Square",
    ),
]

PAYOUT_ACCOUNTS = {
    "ret-a": "acct_alder",
    "ret-b": "acct_birch",
    "ret-c": "acct_cedar",
}


@pytest.fixture(scope="session")
def ordering_bed():
    from ordering.domain import ordering

    bed = DomainFixture(ordering)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(autouse=True)
def _ctx(ordering_bed):
    with ordering_bed.domain_context():
        yield


@pytest.fixture(autouse=True)
def catalog():
    catalog = InMemoryCatalog(LISTINGS)
    set_catalog(catalog)
    return catalog


@pytest.fixture()
def processor():
    processor = FakePaymentProcessor()
    set_processor(processor)
    return processor


@pytest.fixture()
def payout_accounts():
    for retailer_id, account_id in PAYOUT_ACCOUNTS.items():
        current_domain.process(
            ConnectPayoutAccount(retailer_id=retailer_id, account_id=account_id),
            asynchronous=False,
        )
    return PAYOUT_ACCOUNTS


@pytest.fixture()
def orchestrator(processor):
    return SettlementOrchestrator(processor=processor, max_attempts=3, timeout_seconds=0.2, backoff_seconds=0)


@pytest.fixture()
def add_to_cart():
    def _add(product_id, quantity=1, customer_id=CUSTOMER_ID):
        return current_domain.process(
            AddToCart(customer_id=customer_id, product_id=product_id, quantity=quantity),
            asynchronous=False,
        )

    return _add


@pytest.fixture()
def give_points():
    def _give(amount, customer_id=CUSTOMER_ID, order_id="signup-bonus"):
        return current_domain.process(
            EarnPoints(customer_id=customer_id, order_id=order_id, amount=amount, description="Welcome bonus"),
            asynchronous=False,
        )

    return _give


@pytest.fixture()
def create_discount():
    def _create(code, discount_type="Fixed", value=500, **kwargs):
        return current_domain.process(
            CreateDiscountCode(code=code, discount_type=discount_type, value=value, **kwargs),
            asynchronous=False,
        )

    return _create
