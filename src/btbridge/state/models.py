"""
BT Bridge State - Node Models and Port Bindings

Pydantic models describing what the visual layer knows about a node:
- PortDescriptor: declared port (name, direction, wire type, default)
- PortBinding: a port's bound value, either a literal or a blackboard reference
- ActionModel / ConditionModel / ControlModel / DecoratorModel / SubtreeModel:
  the node-model variants, combined into the ``NodeModel`` tagged union
  discriminated on ``kind``

Reference bindings are written ``$key`` or ``{key}``; anything else is a
literal string.
"""

from typing import Annotated, Dict, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, model_validator

from .base import NodeKind, PortDirection
from .blackboard import MAX_KEY_LENGTH


class PortDescriptor(BaseModel):
    """A port declared by a node model.

    Attributes:
        name: Port name, unique within the model.
        direction: INPUT, OUTPUT or INOUT.
        type_name: Declared wire type ("bool", "int32", "float64", "string",
            or a composite "package/Message" name). Empty means untyped and
            is marshaled as a string.
        default: Default literal used when the node has no binding.
        description: Free text shown by the editor.
    """

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1)
    direction: PortDirection = PortDirection.INPUT
    type_name: str = ""
    default: Optional[str] = None
    description: str = ""

    @property
    def is_output(self) -> bool:
        return self.direction == PortDirection.OUTPUT

    @property
    def wire_type(self) -> str:
        """Wire type used by the marshaler ("string" for untyped ports)."""
        return self.type_name or "string"


class PortBinding(BaseModel):
    """The value bound to a port: a literal XOR a blackboard reference."""

    model_config = ConfigDict(frozen=True)

    literal: Optional[str] = None
    reference: Optional[str] = None

    @model_validator(mode="after")
    def _literal_xor_reference(self) -> "PortBinding":
        if (self.literal is None) == (self.reference is None):
            raise ValueError("a port binding is either a literal or a reference")
        if self.reference is not None and not self.reference:
            raise ValueError("reference key cannot be empty")
        if self.reference is not None and len(self.reference) > MAX_KEY_LENGTH:
            raise ValueError(f"reference key too long: {len(self.reference)} > {MAX_KEY_LENGTH}")
        return self

    @property
    def is_reference(self) -> bool:
        return self.reference is not None

    @classmethod
    def parse(cls, raw: str) -> "PortBinding":
        """Parse the textual form used in tree files and the editor.

        Example:
            >>> PortBinding.parse("{target}").reference
            'target'
            >>> PortBinding.parse("$target").reference
            'target'
            >>> PortBinding.parse("3.5").literal
            '3.5'
        """
        if raw.startswith("$") and len(raw) > 1:
            return cls(reference=raw[1:])
        if len(raw) > 2 and raw.startswith("{") and raw.endswith("}"):
            return cls(reference=raw[1:-1])
        return cls(literal=raw)

    def __str__(self) -> str:
        if self.reference is not None:
            return "{" + self.reference + "}"
        return self.literal or ""


class _NodeModelBase(BaseModel):
    """Fields shared by all node-model variants."""

    model_config = ConfigDict(frozen=True)

    registration_id: str = Field(..., min_length=1)
    ports: Tuple[PortDescriptor, ...] = ()

    @model_validator(mode="after")
    def _unique_port_names(self) -> "_NodeModelBase":
        names = [port.name for port in self.ports]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ValueError(
                f"model '{self.registration_id}' declares ports more than once: {duplicates}"
            )
        return self

    def port(self, name: str) -> Optional[PortDescriptor]:
        """Find the descriptor for a port name."""
        for descriptor in self.ports:
            if descriptor.name == name:
                return descriptor
        return None

    def port_names(self) -> List[str]:
        return [port.name for port in self.ports]

    def default_bindings(self) -> Dict[str, PortBinding]:
        """Bindings derived from the declared defaults."""
        return {
            port.name: PortBinding.parse(port.default)
            for port in self.ports
            if port.default is not None
        }


class ActionModel(_NodeModelBase):
    kind: Literal[NodeKind.ACTION] = NodeKind.ACTION


class ConditionModel(_NodeModelBase):
    kind: Literal[NodeKind.CONDITION] = NodeKind.CONDITION


class ControlModel(_NodeModelBase):
    kind: Literal[NodeKind.CONTROL] = NodeKind.CONTROL


class DecoratorModel(_NodeModelBase):
    kind: Literal[NodeKind.DECORATOR] = NodeKind.DECORATOR


class SubtreeModel(_NodeModelBase):
    kind: Literal[NodeKind.SUBTREE] = NodeKind.SUBTREE


NodeModel = Annotated[
    Union[ActionModel, ConditionModel, ControlModel, DecoratorModel, SubtreeModel],
    Field(discriminator="kind"),
]

node_model_adapter: TypeAdapter = TypeAdapter(NodeModel)

_MODEL_CLASSES = {
    NodeKind.ACTION: ActionModel,
    NodeKind.CONDITION: ConditionModel,
    NodeKind.CONTROL: ControlModel,
    NodeKind.DECORATOR: DecoratorModel,
    NodeKind.SUBTREE: SubtreeModel,
}


def make_model(
    kind: NodeKind,
    registration_id: str,
    ports: Tuple[PortDescriptor, ...] = (),
) -> NodeModel:
    """Create the node-model variant for ``kind``."""
    return _MODEL_CLASSES[kind](registration_id=registration_id, ports=tuple(ports))


__all__ = [
    "PortDescriptor",
    "PortBinding",
    "ActionModel",
    "ConditionModel",
    "ControlModel",
    "DecoratorModel",
    "SubtreeModel",
    "NodeModel",
    "node_model_adapter",
    "make_model",
]
