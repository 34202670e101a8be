"""
Resource data: desired configuration, identity and observed state.

ResourceData is the boundary between a reconciler and whoever stores the
declarative configuration. The desired configuration is a frozen pydantic
model; the observed state is a model of the same type rebuilt from the
last successful read and replaced wholesale, never merged.
"""

from typing import Any, Dict, Iterable, List, Optional, Union, get_args, get_origin

from pydantic import BaseModel


def flagged_fields(model_class: type, flag: str) -> List[str]:
    """
    List the fields of a configuration model carrying a schema flag.

    Fields opt in with `Field(json_schema_extra={flag: True})`. Flags in use:
    `force_new` (a change replaces the object) and `ignore_changes` (the
    value is applied at creation only and never diffed afterwards).

    Args:
        model_class: Pydantic model class
        flag: Flag name

    Returns:
        Field names in declaration order
    """
    names = []
    for name, info in model_class.model_fields.items():
        extra = info.json_schema_extra
        if isinstance(extra, dict) and extra.get(flag):
            names.append(name)
    return names


def _nested_model(annotation: Any) -> Optional[type]:
    """Return the model class behind `Model` or `Optional[Model]`, if any."""
    if isinstance(annotation, type) and issubclass(annotation, BaseModel):
        return annotation
    if get_origin(annotation) is Union:
        for arg in get_args(annotation):
            if isinstance(arg, type) and issubclass(arg, BaseModel):
                return arg
    return None


def force_new_fields(model_class: type, prefix: str = '') -> List[str]:
    """
    Paths of the fields whose change forces replacement of the remote object.

    Nested configuration blocks contribute dotted paths
    (`core_instance_group.instance_type`) unless the block itself is flagged.
    """
    paths = []
    for name, info in model_class.model_fields.items():
        path = f'{prefix}{name}'
        extra = info.json_schema_extra
        if isinstance(extra, dict) and extra.get('force_new'):
            paths.append(path)
            continue
        nested = _nested_model(info.annotation)
        if nested is not None:
            paths.extend(force_new_fields(nested, prefix=f'{path}.'))
    return paths


def _lookup(model: Optional[BaseModel], path: str) -> Any:
    """Resolve a dotted attribute path; missing links resolve to None."""
    value: Any = model
    for part in path.split('.'):
        if value is None:
            return None
        value = getattr(value, part, None)
    return value


class ResourceData:
    """
    Typed attribute store for one resource.

    Attributes:
        desired: Desired configuration model
        id: Remote identity, None before creation and after deletion
        state: Observed configuration, same model type as desired
        status: Last observed remote status
        computed: Observed attributes that are not part of the configuration
            (ARN, endpoints, child object ids)
        is_new_resource: True between create and the first read after it
    """

    def __init__(self, desired: BaseModel, resource_id: Optional[str] = None):
        self.desired = desired
        self.id = resource_id
        self.state: Optional[BaseModel] = None
        self.status: Optional[str] = None
        self.computed: Dict[str, Any] = {}
        self.is_new_resource = False

    def __repr__(self) -> str:
        return (
            f"ResourceData({type(self.desired).__name__}, id={self.id!r}, "
            f"status={self.status!r})"
        )

    def get(self, field: str) -> Any:
        """Desired value of a (possibly dotted) configuration field."""
        return _lookup(self.desired, field)

    def get_observed(self, field: str, default: Any = None) -> Any:
        """Observed value of a configuration field or computed attribute."""
        if field in self.computed:
            return self.computed[field]
        value = _lookup(self.state, field)
        return default if value is None else value

    def is_set(self, field: str) -> bool:
        """Whether the caller set a top-level field explicitly."""
        return field in self.desired.model_fields_set

    def set(self, field: str, value: Any) -> None:
        """
        Record one observed value.

        Configuration fields update the observed model; anything else is
        stored as a computed attribute.
        """
        if field in type(self.desired).model_fields:
            base = self.state if self.state is not None else self.desired
            self.state = base.model_copy(update={field: value})
        else:
            self.computed[field] = value

    def set_state(
        self,
        observed: BaseModel,
        status: Optional[str] = None,
        computed: Optional[Dict[str, Any]] = None
    ) -> None:
        """Replace the observed state wholesale after a successful read."""
        self.state = observed
        self.status = status
        self.computed = dict(computed or {})
        self.is_new_resource = False

    def clear(self) -> None:
        """Forget identity and observed state after the object is gone."""
        self.id = None
        self.state = None
        self.status = None
        self.computed = {}
        self.is_new_resource = False

    def has_change(self, field: str) -> bool:
        """
        Whether the desired value of a field differs from the observed one.

        Before the first read every field counts as changed.
        """
        if self.state is None:
            return True
        return _lookup(self.desired, field) != _lookup(self.state, field)

    def has_changes_except(self, *fields: str) -> bool:
        """Whether any top-level field other than the given ones changed."""
        return any(name not in fields for name in self.changed_fields())

    def changed_fields(self) -> List[str]:
        """
        Top-level configuration fields whose desired and observed values differ.

        Fields flagged `ignore_changes` are never reported.
        """
        model_class = type(self.desired)
        ignored = set(flagged_fields(model_class, 'ignore_changes'))
        names = [name for name in model_class.model_fields if name not in ignored]
        if self.state is None:
            return names
        return [
            name for name in names
            if getattr(self.desired, name) != getattr(self.state, name)
        ]

    def force_new_changes(self) -> List[str]:
        """Changed fields that can only be applied by replacing the object."""
        if self.state is None:
            return []
        return [
            name for name in force_new_fields(type(self.desired))
            if self.has_change(name)
        ]


def keep_unset(
    desired: BaseModel,
    observed: Dict[str, Any],
    fields: Iterable[str]
) -> Dict[str, Any]:
    """
    Replace observed values of fields the caller left unset by the desired ones.

    Used for attributes AWS fills in on its own (default security groups,
    generated names): an unset field accepts whatever AWS chose.

    Args:
        desired: Desired configuration model
        observed: Observed field values
        fields: Field names AWS may compute

    Returns:
        The observed values with unset fields taken from desired
    """
    values = dict(observed)
    for name in fields:
        if name not in desired.model_fields_set:
            values[name] = getattr(desired, name)
    return values
