import pytest
from fastapi.testclient import TestClient

from menu_admin.config import AppConfig, ConfigurationError
from menu_admin.server import create_app

PASSWORD = "let-me-in"


@pytest.fixture
def config(tmp_path):
    return AppConfig(
        data_file=str(tmp_path / "data.json"),
        settings_file=str(tmp_path / "settings.json"),
        cache_ttl=0,
        id_cache_ttl=0,
        admin_password=PASSWORD,
    )


@pytest.fixture
def client(config):
    with TestClient(create_app(config)) as test_client:
        yield test_client


@pytest.fixture
def admin(client):
    response = client.post("/api/auth/login", json={"password": PASSWORD})
    assert response.status_code == 200
    return client


def add_item(client, **fields):
    item = {"name": "Burger", "category": "mains", "price": 9.99}
    item.update(fields)
    response = client.post("/api/menu", json=item)
    assert response.status_code == 200, response.text
    return response.json()["item"]


def test_app_requires_admin_password(tmp_path):
    with pytest.raises(ConfigurationError):
        create_app(AppConfig(data_file=str(tmp_path / "data.json"), admin_password=None))


def test_app_rejects_unknown_timezone(tmp_path):
    config = AppConfig(data_file=str(tmp_path / "data.json"), admin_password=PASSWORD, timezone="Mars/Olympus")
    with pytest.raises(ConfigurationError):
        create_app(config)


def test_health_check(client):
    assert client.get("/ping").json() == {"status": "healthy"}
    assert client.get("/").json() == {"status": "healthy"}


def test_login_flow(client):
    assert client.get("/api/auth/status").json() == {"isAuthenticated": False}
    assert client.post("/api/auth/login", json={}).status_code == 400

    wrong = client.post("/api/auth/login", json={"password": "nope"})
    assert wrong.status_code == 401
    assert wrong.json()["success"] is False

    assert client.post("/api/auth/login", json={"password": PASSWORD}).status_code == 200
    assert client.get("/api/auth/status").json() == {"isAuthenticated": True}

    client.post("/api/auth/logout")
    assert client.get("/api/auth/status").json() == {"isAuthenticated": False}


def test_admin_routes_need_login(client):
    response = client.get("/api/menu")
    assert response.status_code == 401
    assert response.json() == {"success": False, "message": "Unauthorized"}
    assert client.post("/api/menu", json={"name": "Burger"}).status_code == 401
    assert client.put("/api/settings", json={}).status_code == 401


def test_menu_crud(admin):
    first = add_item(admin)
    second = add_item(admin, name="Fries", category="sides", price="3.5")
    assert (first["id"], second["id"]) == (1, 2)

    response = admin.put("/api/menu/2", json={"name": "Large Fries", "category": "sides", "price": 4})
    assert response.status_code == 200
    assert response.json()["item"]["name"] == "Large Fries"

    assert admin.delete("/api/menu/1").json() == {"success": True, "message": "Item deleted successfully"}
    assert add_item(admin, name="Shake")["id"] == 3
    assert [i["id"] for i in admin.get("/api/menu").json()] == [2, 3]


def test_error_statuses(admin):
    invalid = admin.post("/api/menu", json={"name": "Burger", "category": "mains", "price": 900})
    assert invalid.status_code == 400
    assert invalid.json() == {"success": False, "message": "Price must be a number between 0 and 500"}

    missing = admin.put("/api/menu/42", json={"name": "Burger", "category": "mains", "price": 1})
    assert missing.status_code == 404
    assert missing.json()["message"] == "Item not found"

    assert admin.delete("/api/menu/0").status_code == 400
    assert admin.delete("/api/menu/7").status_code == 404

    bad_id = admin.delete("/api/menu/abc")
    assert bad_id.status_code == 400
    assert bad_id.json() == {"success": False, "message": "Invalid item ID"}
    assert admin.put("/api/menu/1.5", json={}).status_code == 400

    not_an_object = admin.post("/api/menu", json=["Burger"])
    assert not_an_object.status_code == 400
    assert not_an_object.json()["success"] is False


def test_availability_toggle(admin):
    add_item(admin)

    response = admin.patch("/api/menu/1/availability", json={"available": False, "unavailableReason": "Sold out"})
    assert response.status_code == 200
    assert response.json()["message"] == "Item marked unavailable"

    feed = admin.get("/data.json").json()
    assert feed[0]["availability"]["isAvailable"] is False
    assert feed[0]["availability"]["reason"] == "Sold out"

    assert admin.patch("/api/menu/1/availability", json={}).status_code == 400


def test_public_feed(admin, client):
    add_item(admin, name="Cola", category="drinks", price=2)
    add_item(admin, name="Burger", price=9)
    add_item(admin, name="Apple Pie", category="dessert", price=4, available=False)
    client.post("/api/auth/logout")

    response = client.get("/data.json")
    assert response.status_code == 200
    assert response.headers["cache-control"] == "public, max-age=300"
    assert [i["name"] for i in response.json()] == ["Cola", "Burger", "Apple Pie"]

    by_price = client.get("/data.json", params={"sort": "price-desc"}).json()
    assert [i["name"] for i in by_price] == ["Burger", "Apple Pie", "Cola"]

    drinks = client.get("/data.json", params={"category": "Drinks"}).json()
    assert [i["name"] for i in drinks] == ["Cola"]

    visible = client.get("/data.json", params={"visibleOnly": "true"}).json()
    assert [i["name"] for i in visible] == ["Cola", "Burger"]


def test_import_export(admin):
    add_item(admin)

    response = admin.post("/api/menu/import", json={
        "data": [{"name": "Tea", "category": "drinks", "price": 2}],
        "replace": False,
    })
    assert response.status_code == 200
    assert response.json()["message"] == "Successfully imported 1 item"
    assert response.json()["total"] == 2

    exported = admin.get("/api/menu/export").json()
    assert exported["success"] is True
    assert exported["count"] == 2

    assert admin.post("/api/menu/import", json=[{"name": "Broken"}]).status_code == 400
    assert admin.get("/api/menu/categories").json()["categories"] == ["drinks", "mains"]


def test_settings_routes(admin, client):
    defaults = client.get("/api/settings").json()
    assert defaults["textColor"] == "#ffffff"

    response = admin.put("/api/settings", json={
        "accentColor": "#123456",
        "priceSize": 9,
        "filterCategories": [{"category": "Starters", "label": "Starters", "enabled": True}],
    })
    assert response.status_code == 200
    saved = response.json()["settings"]
    assert saved["accentColor"] == "#123456"
    assert saved["priceSize"] == 3

    assert client.get("/api/settings").json() == saved
