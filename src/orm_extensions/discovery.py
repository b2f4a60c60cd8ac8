"""
Type Discovery
Find mapped entity classes, entity modules, and implementations of an interface
"""
from __future__ import annotations

import importlib
import inspect
import pkgutil
from enum import Enum
from types import ModuleType
from typing import Any, Iterable, Iterator, get_origin

from sqlalchemy.orm import registry as sa_registry

from orm_extensions.infrastructure.observability.logger import get_logger

logger = get_logger(__name__)


def get_mapped_classes(source: Any) -> list[type]:
    """
    List the classes mapped through a declarative base or registry.

    Args:
        source: DeclarativeBase subclass, or a ``sqlalchemy.orm.registry``

    Returns:
        Mapped classes ordered by module and qualified name

    Raises:
        TypeError: If source carries no registry
    """
    if isinstance(source, sa_registry):
        reg = source
    elif isinstance(getattr(source, "registry", None), sa_registry):
        reg = source.registry
    else:
        raise TypeError(f"Expected a declarative base or registry, got {source!r}")

    classes = [mapper.class_ for mapper in reg.mappers]
    return sorted(classes, key=lambda cls: (cls.__module__, cls.__qualname__))


def _is_protocol(cls: type) -> bool:
    return bool(getattr(cls, "_is_protocol", False))


def _is_concrete(cls: type) -> bool:
    return not inspect.isabstract(cls) and not _is_protocol(cls) and not issubclass(cls, Enum)


def _iter_modules(package: str | ModuleType) -> Iterator[ModuleType]:
    module = importlib.import_module(package) if isinstance(package, str) else package
    yield module
    path = getattr(module, "__path__", None)
    if path is None:
        return
    for info in pkgutil.walk_packages(path, prefix=f"{module.__name__}."):
        yield importlib.import_module(info.name)


def iter_module_types(package: str | ModuleType) -> Iterator[type]:
    """Yield every class defined in a module or anywhere in a package, importing submodules."""
    for module in _iter_modules(package):
        for obj in vars(module).values():
            if isinstance(obj, type) and obj.__module__ == module.__name__:
                yield obj


def get_module_types(
    package: str | ModuleType,
    namespace: str = "entities",
    *,
    final_only: bool = False,
) -> list[type]:
    """
    Find concrete classes living under an entity namespace of a package.

    Args:
        package: Package (or dotted name) to scan
        namespace: Fragment the defining module's dotted path must contain (case-insensitive)
        final_only: Only keep classes decorated with ``typing.final``. Off by
            default, since few Python entity classes are marked final; turn it
            on to get the sealed-type behaviour of closed hierarchies.

    Returns:
        Matching classes, excluding abstract classes, Protocols and Enums

    Example:
        get_module_types("billing")  # classes from billing.entities.*
    """
    needle = namespace.lower()
    found = [
        cls
        for cls in iter_module_types(package)
        if needle in cls.__module__.lower()
        and _is_concrete(cls)
        and (not final_only or getattr(cls, "__final__", False))
    ]
    logger.debug("Module types discovered", package=str(package), namespace=namespace, count=len(found))
    return found


def _generic_bases(cls: type) -> set[Any]:
    bases: set[Any] = set()
    for klass in cls.__mro__:
        bases.update(getattr(klass, "__orig_bases__", ()))
    return bases


def _implements(cls: type, required: type) -> bool:
    try:
        return issubclass(cls, required)
    except TypeError:
        # non-runtime-checkable Protocols refuse issubclass()
        return required in cls.__mro__


def get_types_from_interface(types: Iterable[Any], required: Any) -> list[type]:
    """
    Keep the concrete classes implementing ``required``.

    A bare generic (``Repository``) matches any parametrization of it; a
    parametrized one (``Repository[Customer]``) matches only subclasses of
    that exact parametrization.

    Args:
        types: Candidate classes (non-classes are ignored)
        required: Base class, ABC, Protocol, or parametrized generic

    Returns:
        Matching classes in input order
    """
    origin = get_origin(required)
    result: list[type] = []
    for cls in types:
        if not isinstance(cls, type) or cls is required or cls is origin:
            continue
        if not _is_concrete(cls):
            continue
        if origin is None:
            matched = _implements(cls, required)
        else:
            matched = required in _generic_bases(cls)
        if matched:
            result.append(cls)
    return result
