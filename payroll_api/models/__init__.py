# payroll_api/models/__init__.py
import importlib
import pkgutil
from typing import List


def load_all() -> List[str]:
    """Import every model module below this package so db.metadata is complete
    before create_all() or alembic autogenerate run. Returns the module names."""
    loaded: List[str] = []
    for mod in pkgutil.walk_packages(__path__, prefix=f"{__name__}."):
        if mod.name.rsplit(".", 1)[-1].startswith("_"):
            continue
        importlib.import_module(mod.name)
        loaded.append(mod.name)
    return loaded
