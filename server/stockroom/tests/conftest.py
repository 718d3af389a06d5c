import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from stockroom.db import Base
from stockroom.events import RecordingEventSink
from stockroom.models import InventoryLocation, Organization, Product, ProductVariant
from stockroom.scope import CallerScope


def create_session():
    engine = create_engine("sqlite+pysqlite:///:memory:")
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)()


@pytest.fixture()
def db():
    session = create_session()
    yield session
    session.close()


@pytest.fixture()
def make_organization(db):
    def factory(name="Acme Supply"):
        organization = Organization(name=name)
        db.add(organization)
        db.flush()
        return organization

    return factory


@pytest.fixture()
def make_location(db):
    def factory(organization, name="Main Warehouse", code=None):
        location = InventoryLocation(organization_id=organization.id, name=name, code=code, is_active=True)
        db.add(location)
        db.flush()
        return location

    return factory


@pytest.fixture()
def make_product(db):
    def factory(organization, name="Widget", sku=None, **kwargs):
        product = Product(organization_id=organization.id, name=name, sku=sku, stock_quantity=0, **kwargs)
        db.add(product)
        db.flush()
        return product

    return factory


@pytest.fixture()
def make_variant(db):
    def factory(product, name="Large", sku=None):
        variant = ProductVariant(product_id=product.id, name=name, sku=sku)
        db.add(variant)
        db.flush()
        return variant

    return factory


@pytest.fixture()
def organization(make_organization):
    return make_organization()


@pytest.fixture()
def warehouse(make_location, organization):
    return make_location(organization, name="Main Warehouse", code="WH-1")


@pytest.fixture()
def storefront(make_location, organization):
    return make_location(organization, name="Storefront", code="ST-1")


@pytest.fixture()
def product(make_product, organization):
    return make_product(organization, name="Widget", sku="W-1")


@pytest.fixture()
def scope(organization):
    return CallerScope(actor_id=7, organization_id=organization.id)


@pytest.fixture()
def sink():
    return RecordingEventSink()
