"""
Services package - Business logic layer.

This package exposes business services while avoiding heavy imports at module load time.
"""

from importlib import import_module
from typing import Any

__all__ = [
    "CardResolver",
    "ImportResult",
    "ImportSettings",
    "OrderImportService",
    "ResolutionProgress",
    "ResolutionReport",
    "ResolutionStatus",
    "SettingsService",
    "get_order_import_service",
]

_LAZY_MODULES = {
    "CardResolver": "services.card_resolver",
    "ResolutionProgress": "services.card_resolver",
    "ResolutionReport": "services.card_resolver",
    "ResolutionStatus": "services.card_resolver",
    "ImportResult": "services.order_import_service",
    "OrderImportService": "services.order_import_service",
    "get_order_import_service": "services.order_import_service",
    "ImportSettings": "services.settings_service",
    "SettingsService": "services.settings_service",
}


def __getattr__(name: str) -> Any:
    if name in _LAZY_MODULES:
        module = import_module(_LAZY_MODULES[name])
        value = getattr(module, name)
        globals()[name] = value
        return value

    raise AttributeError(f"module 'services' has no attribute '{name}'")
