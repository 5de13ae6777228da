import os
import threading
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import pytest


def pytest_addoption(parser):
    parser.addoption(
        "--env",
        action="store",
        default="test",
        help="Config environment to run tests on",
    )


def pytest_sessionstart(session):
    """Pytest hook to run before collecting tests.

    Select the config overlay before any module reads the settings.
    """
    os.environ["MOTORHUB_ENV"] = session.config.option.env


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their directory location."""
    for item in items:
        # Get the test file path relative to the tests directory
        test_path = Path(item.fspath)

        # Mark tests based on their directory
        if "/domain/" in str(test_path):
            item.add_marker(pytest.mark.domain)
        elif "/application/" in str(test_path):
            item.add_marker(pytest.mark.application)
        elif "/integration/" in str(test_path):
            item.add_marker(pytest.mark.integration)
            # Integration tests are often slower
            if not any(m.name == "fast" for m in item.iter_markers()):
                item.add_marker(pytest.mark.slow)
        elif "/bdd/" in str(test_path):
            item.add_marker(pytest.mark.bdd)


@pytest.fixture(autouse=True)
def database():
    """A fresh in-memory database for every test."""
    from shared.config import reset_settings
    from shared.database import configure_database, drop_db, setup_db

    reset_settings()
    engine = configure_database("sqlite://")
    setup_db(engine)

    yield engine

    drop_db(engine)


@pytest.fixture(autouse=True)
def run_around_tests():
    """Fixture to automatically reset process-wide collaborators after every test"""
    yield

    from payments.gateway import reset_gateways

    reset_gateways()


@pytest.fixture()
def file_database(database, tmp_path):
    """A file-backed SQLite database, so that every thread gets its own connection."""
    from shared.database import configure_database, drop_db, setup_db

    engine = configure_database(f"sqlite:///{tmp_path / 'motorhub.db'}")
    setup_db(engine)

    yield engine

    drop_db(engine)


@pytest.fixture()
def race():
    """Run callables on separate threads released together; returns each result or CommerceError."""
    from shared.errors import CommerceError

    def _race(*calls):
        barrier = threading.Barrier(len(calls))

        def _run(call):
            barrier.wait()
            try:
                return call()
            except CommerceError as exc:
                return exc

        with ThreadPoolExecutor(max_workers=len(calls)) as pool:
            return list(pool.map(_run, calls))

    return _race


class _TriggerRecorder(list):
    """Stands in for the trigger logger and keeps (trigger, payload) pairs."""

    def info(self, event, trigger, **payload):
        from notifications.triggers import Trigger

        self.append((Trigger(trigger), payload))


@pytest.fixture()
def fired(monkeypatch):
    """Collect every notification trigger fired during the test."""
    import notifications.triggers

    recorder = _TriggerRecorder()
    monkeypatch.setattr(notifications.triggers, "logger", recorder)
    return recorder


@pytest.fixture()
def make_product():
    from catalogue.models import Product, ProductCategory
    from shared.database import unit_of_work

    counter = iter(range(1, 10_000))

    def _make(price="100.00", stock=10, category=ProductCategory.PARTS, **kwargs):
        number = next(counter)
        with unit_of_work() as session:
            product = Product.create(
                sku=kwargs.pop("sku", f"SKU-{number:04d}"),
                name=kwargs.pop("name", f"Product {number}"),
                price=price,
                stock_quantity=stock,
                category=category,
                **kwargs,
            )
            session.add(product)
        return product

    return _make


@pytest.fixture()
def make_service():
    from catalogue.models import Service
    from shared.database import unit_of_work

    def _make(add_ons=(), blocks=(), **kwargs):
        from catalogue.models import ServiceBlock

        kwargs.setdefault("name", "Full Service")
        kwargs.setdefault("base_price", "200.00")
        with unit_of_work() as session:
            service = Service.create(**kwargs)
            for name, price in add_ons:
                service.add_add_on(name, price)
            session.add(service)
            for blocked_date, start_hour, end_hour in blocks:
                session.add(
                    ServiceBlock(
                        service_id=service.id,
                        blocked_date=blocked_date,
                        start_hour=start_hour,
                        end_hour=end_hour,
                        reason="Maintenance",
                    )
                )
        return service

    return _make


@pytest.fixture()
def make_address():
    from identity.address import Address
    from shared.database import unit_of_work

    def _make(user_id="user-001", state="CA", **kwargs):
        with unit_of_work() as session:
            address = Address.create(
                user_id=user_id,
                street_address=kwargs.get("street_address", "1 Main St"),
                city=kwargs.get("city", "Springfield"),
                state=state,
                postal_code=kwargs.get("postal_code", "90001"),
            )
            session.add(address)
        return address

    return _make
