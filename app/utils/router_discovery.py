import importlib
import pkgutil

from fastapi import APIRouter, FastAPI
from loguru import logger


def discover_routers(package_name: str = "app.api") -> list[tuple[APIRouter, str]]:
    """Find the ``router`` of every module under ``package_name``.

    Subpackages are scanned too; a router found in ``app.api.admin.foo`` is
    mounted under ``/admin``.

    Returns:
        ``(router, subpath)`` pairs, sorted by module name.
    """
    package = importlib.import_module(package_name)
    package_path = getattr(package, "__path__", None)
    if not package_path:
        logger.warning(f"Cannot scan {package_name} for routers as it's not a package")
        return []

    routers: list[tuple[APIRouter, str]] = []
    for module_info in sorted(pkgutil.iter_modules(package_path), key=lambda m: m.name):
        full_name = f"{package_name}.{module_info.name}"
        if module_info.ispkg:
            routers.extend(discover_routers(full_name))
            continue

        module = importlib.import_module(full_name)
        router = getattr(module, "router", None)
        if not isinstance(router, APIRouter):
            logger.debug(f"{full_name} has no router")
            continue

        # app.api.<sub>.<module> -> /<sub>
        parts = full_name.split(".")
        subpath = "/" + "/".join(parts[2:-1]) if len(parts) > 3 else ""  # noqa: PLR2004
        routers.append((router, subpath))
        logger.debug(f"Discovered router in {full_name}")

    return routers


def register_routers(app: FastAPI, prefix: str = "/api") -> None:
    """Mount every router under ``app.api`` on ``app`` below ``prefix``."""
    for router, subpath in discover_routers():
        app.include_router(router, prefix=f"{prefix}{subpath}")
