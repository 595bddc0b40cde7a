"""Exceptions raised by the menu and settings services"""


class MenuAdminError(Exception):
    """Base class for service-level failures"""

    status_code = 500


class ValidationError(MenuAdminError):
    """Raised when input fails field validation, before anything is written"""

    status_code = 400


class ItemNotFoundError(MenuAdminError):
    """Raised when an operation targets an id that is not stored"""

    status_code = 404


class PersistenceError(MenuAdminError):
    """Raised when the record store reports a failed write"""

    status_code = 500
