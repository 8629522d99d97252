import typing as t

from fastapi.encoders import jsonable_encoder


if t.TYPE_CHECKING:
    from bavard_entity_store.entity import Entity


CustomEncoder = t.Dict[t.Any, t.Callable[[t.Any], t.Any]]


class FieldsStorageAdapter:
    """
    Converts between an entity's field values and the raw records a storage driver reads and writes. By default
    records are made of basic Python data types only, e.g. enum values become strings and datetimes become ISO 8601
    strings. Drivers whose backend natively supports a type can keep it by passing a ``custom_encoder``, e.g.
    ``{datetime: lambda date: date}``.
    """

    def __init__(self, custom_encoder: t.Optional[CustomEncoder] = None):
        self.custom_encoder = custom_encoder or {}

    def to_storage(self, entity: "Entity", custom_encoder: t.Optional[CustomEncoder] = None) -> t.Dict[str, t.Any]:
        _custom_encoder = dict(self.custom_encoder)
        if custom_encoder is not None:
            # Accept driver overrides and customization.
            _custom_encoder.update(custom_encoder)
        # Dump to a `dict` first so `jsonable_encoder` only ever sees plain containers.
        data = entity.model_dump()
        return jsonable_encoder(data, custom_encoder=_custom_encoder)

    def from_storage(self, entity: "Entity", data: t.Mapping[str, t.Any]):
        """
        Populates ``entity``'s fields from the raw record ``data``, parsing storage representations back into field
        values (e.g. ISO 8601 strings into datetimes). Keys of ``data`` that are not fields are ignored.
        """
        fields = entity.get_fields()
        parsed = type(entity).model_validate({name: value for name, value in data.items() if name in fields})
        for name in parsed.model_fields_set:
            setattr(entity, name, getattr(parsed, name))
