"""
Unit tests for node models, port descriptors and bindings.

Tests:
- PortBinding parsing and the literal XOR reference rule
- NodeModel tagged union (discriminated on kind)
- Duplicate port detection and default bindings
- NodeStatus helpers and BridgeError codes
"""

import pytest
from pydantic import ValidationError

from btbridge.state.base import NodeKind, NodeStatus, PortDirection
from btbridge.state.errors import (
    MissingInputError,
    RemoteConnectionError,
    UnsupportedTypeError,
)
from btbridge.state.models import (
    ActionModel,
    ConditionModel,
    PortBinding,
    PortDescriptor,
    SubtreeModel,
    make_model,
    node_model_adapter,
)


# =============================================================================
# PortBinding
# =============================================================================


class TestPortBinding:
    @pytest.mark.parametrize("raw,key", [("{goal}", "goal"), ("$goal", "goal")])
    def test_reference_forms(self, raw, key):
        binding = PortBinding.parse(raw)
        assert binding.is_reference
        assert binding.reference == key
        assert binding.literal is None

    @pytest.mark.parametrize("raw", ["3.5", "", "$", "{}", "plain text"])
    def test_literals(self, raw):
        binding = PortBinding.parse(raw)
        assert not binding.is_reference
        assert binding.literal == raw

    def test_str_round_trip(self):
        assert str(PortBinding.parse("$goal")) == "{goal}"
        assert str(PortBinding.parse("42")) == "42"

    def test_literal_and_reference_exclusive(self):
        with pytest.raises(ValidationError):
            PortBinding(literal="1", reference="key")
        with pytest.raises(ValidationError):
            PortBinding()

    def test_frozen(self):
        binding = PortBinding(literal="1")
        with pytest.raises(ValidationError):
            binding.literal = "2"


# =============================================================================
# Node Models
# =============================================================================


class TestNodeModels:
    def test_port_lookup(self):
        model = ActionModel(
            registration_id="MoveTo",
            ports=(
                PortDescriptor(name="server_name", default="/move_to"),
                PortDescriptor(name="distance", direction=PortDirection.OUTPUT, type_name="float64"),
            ),
        )
        assert model.kind == NodeKind.ACTION
        assert model.port("distance").is_output
        assert model.port("missing") is None
        assert model.port_names() == ["server_name", "distance"]

    def test_untyped_port_is_string(self):
        assert PortDescriptor(name="label").wire_type == "string"
        assert PortDescriptor(name="x", type_name="int32").wire_type == "int32"

    def test_default_bindings(self):
        model = ConditionModel(
            registration_id="IsReady",
            ports=(
                PortDescriptor(name="service_name", default="/is_ready"),
                PortDescriptor(name="threshold", default="{limit}"),
                PortDescriptor(name="note"),
            ),
        )
        defaults = model.default_bindings()
        assert defaults["service_name"].literal == "/is_ready"
        assert defaults["threshold"].reference == "limit"
        assert "note" not in defaults

    def test_duplicate_ports_rejected(self):
        with pytest.raises(ValidationError, match="more than once"):
            ActionModel(
                registration_id="Dup",
                ports=(PortDescriptor(name="a"), PortDescriptor(name="a")),
            )

    def test_empty_registration_id_rejected(self):
        with pytest.raises(ValidationError):
            ActionModel(registration_id="")

    def test_tagged_union_validation(self):
        model = node_model_adapter.validate_python(
            {
                "kind": "condition",
                "registration_id": "IsReady",
                "ports": [{"name": "service_name"}],
            }
        )
        assert isinstance(model, ConditionModel)
        assert model.ports[0].direction == PortDirection.INPUT

    def test_make_model(self):
        model = make_model(NodeKind.SUBTREE, "Dock")
        assert isinstance(model, SubtreeModel)
        assert model.kind == NodeKind.SUBTREE


# =============================================================================
# Enums and Errors
# =============================================================================


class TestStatusAndErrors:
    def test_status_helpers(self):
        assert NodeStatus.from_bool(True) == NodeStatus.SUCCESS
        assert NodeStatus.from_bool(False) == NodeStatus.FAILURE
        assert NodeStatus.SUCCESS.is_complete()
        assert not NodeStatus.RUNNING.is_complete()
        assert NodeStatus.RUNNING.is_running()

    def test_leaf_kinds(self):
        assert NodeKind.ACTION.is_leaf()
        assert NodeKind.CONDITION.is_leaf()
        assert not NodeKind.SUBTREE.is_leaf()

    def test_error_codes_in_message(self):
        error = MissingInputError("target", "MoveTo", "port is not bound")
        assert str(error).startswith("[E2001]")
        assert error.port_name == "target"

        error = UnsupportedTypeError("quaternion", "q", "Rotate")
        assert str(error) == "[E2005] Invalid port type: quaternion for q at Rotate"

        error = RemoteConnectionError("Connection closed.", address="h:1")
        assert error.detail == "Connection closed."
        assert error.address == "h:1"
