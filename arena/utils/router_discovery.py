import importlib
import pkgutil

from fastapi import APIRouter, FastAPI
from loguru import logger


def discover_routers(package_name: str = "arena.api") -> list[APIRouter]:
    """Collect the module-level ``router`` of every module in a package, subpackages included.

    Args:
        package_name: The package to scan.

    Returns:
        The routers in module name order.
    """
    package = importlib.import_module(package_name)
    package_path = getattr(package, "__path__", None)
    if not package_path:
        logger.warning(f"Cannot scan {package_name} for routers as it's not a package")
        return []

    routers: list[APIRouter] = []
    for module_info in sorted(
        pkgutil.walk_packages(package_path, prefix=f"{package_name}."), key=lambda m: m.name
    ):
        if module_info.ispkg:
            continue

        module = importlib.import_module(module_info.name)
        router = getattr(module, "router", None)
        if isinstance(router, APIRouter):
            routers.append(router)
            logger.info(f"Discovered router in {module_info.name}")

    return routers


def register_routers(app: FastAPI, prefix: str = "/api") -> None:
    for router in discover_routers():
        app.include_router(router, prefix=prefix)
