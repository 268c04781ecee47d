from pathlib import Path

import pytest


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their directory location."""
    for item in items:
        test_path = Path(item.fspath)

        if "/domain/" in str(test_path):
            item.add_marker(pytest.mark.domain)
        elif "/application/" in str(test_path):
            item.add_marker(pytest.mark.application)
        elif "/integration/" in str(test_path):
            item.add_marker(pytest.mark.integration)
            # Integration tests are often slower
            if not any(m.name == "fast" for m in item.iter_markers()):
                item.add_marker(pytest.mark.slow)


def _reset_all():
    from dispatch.service import reset_dispatch
    from ordering.order.lifecycle import reset_lifecycle
    from ordering.store import reset_store
    from payments.gateway import reset_gateway
    from shared.config import reset_settings

    reset_dispatch()
    reset_lifecycle()
    reset_store()
    reset_gateway()
    reset_settings()


@pytest.fixture(autouse=True)
def run_around_tests():
    """Give every test fresh settings, store, lifecycle, gateway and dispatch singletons."""
    from shared.config import set_settings_for_test

    _reset_all()
    set_settings_for_test(environment="test", log_dir="", payment_gateway="fake")

    yield

    _reset_all()


@pytest.fixture()
def lifecycle():
    from ordering.order.lifecycle import get_lifecycle

    return get_lifecycle()


@pytest.fixture()
def store():
    from ordering.store import get_store

    return get_store()


@pytest.fixture()
def fake_gateway():
    from payments.gateway import get_gateway

    return get_gateway()


@pytest.fixture()
def dispatch():
    from dispatch.service import get_dispatch

    return get_dispatch()
