from .registry import (
    ResourceDefinition,
    ResourceRegistry,
    default_registry,
    get_resource_definition,
    register_resource,
)

__all__ = [
    "ResourceDefinition",
    "ResourceRegistry",
    "default_registry",
    "get_resource_definition",
    "register_resource",
]
