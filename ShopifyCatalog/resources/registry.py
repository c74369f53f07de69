"""
Resource Registry

Maps a resource type tag ("product", "variant", ...) to the record model and
the endpoint layout the client needs to fetch it. Record models register
themselves with the @register_resource decorator when imported.
"""

import string
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional, Type

from ..exceptions import ResourceTypeNotRegisteredError, ValidationError

if TYPE_CHECKING:
    from ..models.base_model import ShopifyObject


@dataclass(frozen=True)
class ResourceDefinition:
    """How one resource type is addressed and decoded"""

    name: str
    model: Type["ShopifyObject"]
    singular_key: str
    plural_key: str
    collection_path: str
    member_path: Optional[str] = None
    countable: bool = True

    def _render(self, template: str, path_params: Optional[Mapping[str, Any]]) -> str:
        params = dict(path_params or {})
        required = [field for _, field, _, _ in string.Formatter().parse(template) if field]
        missing = [field for field in required if params.get(field) in (None, "")]
        if missing:
            raise ValidationError(
                f"Missing path parameters for {self.name}: {', '.join(missing)}",
                missing_fields=missing,
            )
        return template.format(**params)

    def collection_endpoint(self, path_params: Optional[Mapping[str, Any]] = None) -> str:
        return f"{self._render(self.collection_path, path_params)}.json"

    def member_endpoint(self, resource_id: Any, path_params: Optional[Mapping[str, Any]] = None) -> str:
        template = self.member_path or f"{self.collection_path}/{{id}}"
        params = {**(path_params or {}), "id": resource_id}
        return f"{self._render(template, params)}.json"

    def count_endpoint(self, path_params: Optional[Mapping[str, Any]] = None) -> str:
        return f"{self._render(self.collection_path, path_params)}/count.json"


class ResourceRegistry:
    """
    Registry of resource definitions.

    Use get() to look up a definition by tag; unknown tags raise
    ResourceTypeNotRegisteredError.
    """

    def __init__(self):
        self._definitions: Dict[str, ResourceDefinition] = {}

    def register(self, definition: ResourceDefinition) -> ResourceDefinition:
        """Register a resource definition, replacing any previous one with the same tag"""
        # models import this module to register themselves
        from ..models.base_model import ShopifyObject

        if not issubclass(definition.model, ShopifyObject):
            raise ValueError("Resource model must inherit from ShopifyObject")

        self._definitions[definition.name.lower()] = definition
        return definition

    def get(self, name: str) -> ResourceDefinition:
        key = name.lower()
        if key not in self._definitions:
            raise ResourceTypeNotRegisteredError(name)
        return self._definitions[key]

    def is_registered(self, name: str) -> bool:
        return name.lower() in self._definitions

    def available(self) -> List[str]:
        return list(self._definitions.keys())

    def copy(self) -> "ResourceRegistry":
        """Independent registry starting with the same definitions"""
        clone = ResourceRegistry()
        clone._definitions = dict(self._definitions)
        return clone


default_registry = ResourceRegistry()


def register_resource(
    name: str,
    plural_key: str,
    collection_path: Optional[str] = None,
    member_path: Optional[str] = None,
    countable: bool = True,
    registry: Optional[ResourceRegistry] = None,
):
    """Decorator registering a record model as a resource type"""

    def decorator(model: Type["ShopifyObject"]):
        (registry or default_registry).register(
            ResourceDefinition(
                name=name,
                model=model,
                singular_key=name,
                plural_key=plural_key,
                collection_path=collection_path or plural_key,
                member_path=member_path,
                countable=countable,
            )
        )
        return model

    return decorator


def get_resource_definition(name: str) -> ResourceDefinition:
    """Look up a resource definition in the default registry"""
    return default_registry.get(name)
