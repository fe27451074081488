import importlib
import os
from types import ModuleType


def get_settings_module() -> str:
    # APP_ENV selects the settings module; development is the default.
    env = os.getenv("APP_ENV", "development").lower()

    if env in {"prod", "production"}:
        return "geoattend.config.production"

    if env in {"test", "testing"}:
        return "geoattend.config.testing"

    return "geoattend.config.development"


def load_settings() -> ModuleType:
    return importlib.import_module(get_settings_module())
