import pytest

from menu_admin.menu_service import MenuService
from menu_admin.record_store import RecordStore
from menu_admin.settings_service import SettingsService, default_settings
from menu_admin.write_coordinator import WriteCoordinator


class FakeClock:
    """Monotonic clock the tests can move forward by hand"""

    def __init__(self, start=1000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def menu_store(tmp_path, clock):
    return RecordStore(
        "menuItems",
        tmp_path / "data.json",
        cache_ttl=5.0,
        coordinator=WriteCoordinator("menuItems", max_attempts=10, base_delay=0.01),
        clock=clock,
    )


@pytest.fixture
def settings_store(tmp_path, clock):
    return RecordStore(
        "settings",
        tmp_path / "settings.json",
        expected_type=dict,
        default_factory=default_settings,
        cache_ttl=5.0,
        coordinator=WriteCoordinator("settings", max_attempts=10, base_delay=0.01),
        persist_missing=False,
        clock=clock,
    )


@pytest.fixture
def menu_service(menu_store):
    return MenuService(menu_store)


@pytest.fixture
def settings_service(settings_store):
    return SettingsService(settings_store)
