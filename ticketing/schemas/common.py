from typing import Any, Dict, List, Optional, Set, Type

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class APIModel(BaseModel):
    """Base schema: snake_case attributes, camelCase on the wire"""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, from_attributes=True
    )


class InputModel(APIModel):
    """Request bodies keep only the declared fields; anything else is dropped"""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="ignore"
    )


def api_names(schema: Type[BaseModel]) -> Dict[str, str]:
    """Map every wire name of ``schema`` to its attribute name"""
    names: Dict[str, str] = {}
    for attr, field in schema.model_fields.items():
        names[attr] = attr
        names[field.serialization_alias or field.alias or attr] = attr
    return names


def dump(
    obj: Any, schema: Type[APIModel], fields: Optional[Set[str]] = None
) -> Dict[str, Any]:
    """Serialize an ORM object through ``schema``, optionally projected"""
    model = obj if isinstance(obj, schema) else schema.model_validate(obj)
    return model.model_dump(mode="json", by_alias=True, include=fields)


def success(data: Any = None, **meta: Any) -> Dict[str, Any]:
    """Build the uniform ``{status, data}`` response envelope"""
    body: Dict[str, Any] = {"data": data}
    body.update({key: value for key, value in meta.items() if value is not None})
    return {"status": "success", "data": body}


def listing(items: List[Any], page: Any = None) -> Dict[str, Any]:
    """Envelope for list endpoints; page metadata only when paginated"""
    if page is None:
        return success(items, results=len(items))
    return success(
        items, results=len(items), total=page.total, page=page.page, pages=page.pages
    )
