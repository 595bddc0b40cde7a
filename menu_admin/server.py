import hmac
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Optional
from zoneinfo import ZoneInfo

from fastapi import APIRouter, Body, Depends, FastAPI, HTTPException, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.middleware.sessions import SessionMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import DEFAULT_SESSION_SECRET, AppConfig, ConfigurationError
from .errors import MenuAdminError, ValidationError
from .menu_service import MenuService, filter_by_category, sort_items
from .record_store import RecordStore
from .settings_service import SettingsService, default_settings
from .write_coordinator import WriteCoordinator

logger = logging.getLogger(__name__)

SESSION_MAX_AGE = 24 * 60 * 60
PUBLIC_CACHE_CONTROL = "public, max-age=300"

router = APIRouter()


def build_services(config: AppConfig):
    """Menu and settings services, each with its own store and write lock"""
    menu_store = RecordStore(
        "menuItems",
        config.data_file,
        expected_type=list,
        default_factory=list,
        cache_ttl=config.cache_ttl,
        id_cache_ttl=config.id_cache_ttl,
        coordinator=WriteCoordinator("menuItems", config.lock_attempts, config.lock_base_delay),
        persist_missing=True,
    )
    settings_store = RecordStore(
        "settings",
        config.settings_file,
        expected_type=dict,
        default_factory=default_settings,
        cache_ttl=config.cache_ttl,
        id_cache_ttl=config.id_cache_ttl,
        coordinator=WriteCoordinator("settings", config.lock_attempts, config.lock_base_delay),
        persist_missing=False,
    )
    return MenuService(menu_store), SettingsService(settings_store)


def current_time(config: AppConfig) -> datetime:
    if config.timezone:
        return datetime.now(ZoneInfo(config.timezone))
    return datetime.now()


def require_auth(request: Request):
    if not request.session.get("isAuthenticated"):
        raise HTTPException(status_code=401, detail="Unauthorized")


def _menu(request: Request) -> MenuService:
    return request.app.state.menu_service


def _settings(request: Request) -> SettingsService:
    return request.app.state.settings_service


@router.get("/ping")
@router.get("/")
async def health_check():
    return JSONResponse({"status": "healthy"})


# Authentication

@router.post("/api/auth/login")
async def login(request: Request, payload: dict = Body(...)):
    password = payload.get("password")
    if not password or not isinstance(password, str):
        return JSONResponse({"success": False, "message": "Password is required"}, status_code=400)

    expected = request.app.state.config.admin_password or ""
    if expected and hmac.compare_digest(password.encode(), expected.encode()):
        request.session["isAuthenticated"] = True
        return {"success": True, "message": "Login successful"}
    logger.warning(f"Failed admin login from {request.client.host if request.client else 'unknown'}")
    return JSONResponse({"success": False, "message": "Incorrect password"}, status_code=401)


@router.post("/api/auth/logout")
async def logout(request: Request):
    request.session.clear()
    return {"success": True, "message": "Logged out successfully"}


@router.get("/api/auth/status")
async def auth_status(request: Request):
    return {"isAuthenticated": bool(request.session.get("isAuthenticated"))}


# Menu administration

@router.get("/api/menu", dependencies=[Depends(require_auth)])
async def list_menu(request: Request):
    return await _menu(request).list_items()


@router.get("/api/menu/export", dependencies=[Depends(require_auth)])
async def export_menu(request: Request):
    exported = await _menu(request).export_items()
    return {"success": True, **exported}


@router.get("/api/menu/categories", dependencies=[Depends(require_auth)])
async def menu_categories(request: Request):
    return {"success": True, "categories": await _menu(request).categories()}


@router.post("/api/menu/import", dependencies=[Depends(require_auth)])
async def import_menu(request: Request, payload: Any = Body(...)):
    # Either {"data": [...], "replace": bool} or a bare list of items
    if isinstance(payload, dict) and "data" in payload:
        data = payload["data"]
        replace = payload.get("replace") in (True, "true")
    else:
        data = payload
        replace = False

    result = await _menu(request).import_items(data, replace=replace)
    count = result["count"]
    return {
        "success": True,
        "message": f"Successfully imported {count} item{'s' if count != 1 else ''}",
        **result,
    }


@router.post("/api/menu", dependencies=[Depends(require_auth)])
async def create_item(request: Request, payload: dict = Body(...)):
    item = await _menu(request).create(payload)
    return {"success": True, "item": item, "message": "Item added successfully"}


@router.put("/api/menu/{item_id}", dependencies=[Depends(require_auth)])
async def update_item(request: Request, item_id: str, payload: dict = Body(...)):
    item = await _menu(request).update(item_id, payload, keep_previous_image_if_omitted=True)
    return {"success": True, "item": item, "message": "Item updated successfully"}


@router.patch("/api/menu/{item_id}/availability", dependencies=[Depends(require_auth)])
async def set_item_availability(request: Request, item_id: str, payload: dict = Body(...)):
    if "available" not in payload:
        raise ValidationError("Available must be true or false")
    item = await _menu(request).set_availability(
        item_id, payload["available"], payload.get("unavailableReason")
    )
    state = "available" if item["available"] else "unavailable"
    return {"success": True, "item": item, "message": f"Item marked {state}"}


@router.delete("/api/menu/{item_id}", dependencies=[Depends(require_auth)])
async def delete_item(request: Request, item_id: str):
    await _menu(request).delete(item_id)
    return {"success": True, "message": "Item deleted successfully"}


# Public menu feed

@router.get("/data.json")
async def public_menu(
    request: Request,
    category: Optional[str] = None,
    sort: Optional[str] = None,
    visible_only: bool = Query(False, alias="visibleOnly"),
):
    now = current_time(request.app.state.config)
    items = await _menu(request).list_visible(now)
    items = sort_items(filter_by_category(items, category), sort)
    if visible_only:
        items = [i for i in items if i["availability"]["isAvailable"]]
    return JSONResponse(items, headers={"Cache-Control": PUBLIC_CACHE_CONTROL})


# Settings

@router.get("/api/settings")
async def get_settings(request: Request):
    settings = await _settings(request).get()
    return JSONResponse(settings, headers={"Cache-Control": PUBLIC_CACHE_CONTROL})


@router.put("/api/settings", dependencies=[Depends(require_auth)])
async def update_settings(request: Request, payload: dict = Body(...)):
    settings = await _settings(request).update(payload)
    return {"success": True, "message": "Settings updated successfully", "settings": settings}


async def menu_admin_error_handler(request: Request, exc: MenuAdminError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
    return JSONResponse({"success": False, "message": str(exc)}, status_code=exc.status_code)


async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        {"success": False, "message": str(exc.detail)},
        status_code=exc.status_code,
        headers=getattr(exc, "headers", None),
    )


async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    detail = errors[0].get("msg") if errors else "invalid input"
    return JSONResponse({"success": False, "message": f"Invalid request: {detail}"}, status_code=400)


def create_app(config: Optional[AppConfig] = None) -> FastAPI:
    """Build the FastAPI app; refuses to start without an admin password"""
    config = config or AppConfig.from_env()
    config.validate()
    if not config.admin_password:
        raise ConfigurationError("ADMIN_PASSWORD is not set")

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("=" * 50)
        logger.info("Menu admin server started")
        logger.info(f"Environment: {config.environment}")
        logger.info(f"Menu data: {config.data_file}")
        logger.info(f"Settings: {config.settings_file}")
        logger.info(f"Caching: {config.cache_ttl}s TTL")
        logger.info("=" * 50)
        if config.is_production and config.session_secret == DEFAULT_SESSION_SECRET:
            logger.warning("SESSION_SECRET is the default value; set it in production")
        yield
        logger.info("Menu admin server stopped")

    app = FastAPI(title="Menu Admin Server", lifespan=lifespan)
    app.state.config = config
    app.state.menu_service, app.state.settings_service = build_services(config)

    app.add_middleware(
        SessionMiddleware,
        secret_key=config.session_secret,
        max_age=SESSION_MAX_AGE,
        https_only=config.is_production,
    )
    app.add_exception_handler(MenuAdminError, menu_admin_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_error_handler)
    app.include_router(router)
    return app


def main():
    import uvicorn

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s [%(name)s] %(message)s")
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

    try:
        config = AppConfig.from_env()
        app = create_app(config)
    except ConfigurationError as e:
        logger.error(f"❌ {e}")
        raise SystemExit(1)
    uvicorn.run(app, host=config.host, port=config.port)


if __name__ == "__main__":
    main()
