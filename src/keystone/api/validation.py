"""Request validation policy.

Request bodies are declared as subclasses of ``RequestModel``. Unknown fields
are rejected rather than stripped, and values are converted to the declared
types where pydantic's lax mode allows it. ``lenient_body_models`` finds body
models that would silently drop unknown fields so startup can refuse them.
"""

from collections.abc import Iterable, Iterator

from fastapi import APIRouter
from fastapi.routing import APIRoute
from pydantic import BaseModel, ConfigDict


class RequestModel(BaseModel):
    """Base class for request payloads."""

    model_config = ConfigDict(extra="forbid")


def _lenient_models(
    model: type[BaseModel], seen: set[type[BaseModel]]
) -> Iterator[type[BaseModel]]:
    if model in seen:
        return
    seen.add(model)

    if model.model_config.get("extra") != "forbid":
        yield model
    for field in model.model_fields.values():
        annotation = field.annotation
        if isinstance(annotation, type) and issubclass(annotation, BaseModel):
            yield from _lenient_models(annotation, seen)


def lenient_body_models(routers: Iterable[APIRouter]) -> list[str]:
    """List ``"<METHODS> <path>: <Model>"`` for body models accepting extras."""
    violations = []
    for router in routers:
        for route in router.routes:
            if not isinstance(route, APIRoute):
                continue
            for param in route.dependant.body_params:
                annotation = param.field_info.annotation
                if not (
                    isinstance(annotation, type) and issubclass(annotation, BaseModel)
                ):
                    continue
                methods = ",".join(sorted(route.methods or ()))
                violations.extend(
                    f"{methods} {route.path}: {model.__name__}"
                    for model in _lenient_models(annotation, set())
                )
    return violations
