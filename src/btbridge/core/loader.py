"""
TreeLoader - Builds runtime trees from BehaviorTree.CPP v3 XML.

Supported structure:

    <root main_tree_to_execute="MainTree">
      <BehaviorTree ID="MainTree">
        <Sequence>
          <Condition ID="IsReady" service_name="/is_ready"/>
          <MoveTo target="{goal}"/>
          <SubTree ID="Dock"/>
        </Sequence>
      </BehaviorTree>
      <BehaviorTree ID="Dock"> ... </BehaviorTree>
      <TreeNodesModel>
        <Action ID="MoveTo">
          <input_port name="server_name" default="/move_to"/>
          <input_port name="target" type="geometry_msgs/Pose"/>
        </Action>
        <Condition ID="IsReady">
          <input_port name="service_name"/>
        </Condition>
      </TreeNodesModel>
    </root>

Leaves are written either as ``<Action ID="X"/>`` / ``<Condition ID="X"/>``
or with their ID as the tag. Attributes other than ``ID`` and ``name``
are port bindings. SubTree references are expanded inline.

Error codes:
- E4001: File not found, malformed XML, unknown node, undeclared port,
  or recursive SubTree
"""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Union

from ..nodes.adapters import ActionAdapter, ConditionAdapter
from ..nodes.base import TreeNode
from ..nodes.composites import CONTROL_NODES, Parallel
from ..nodes.decorators import DECORATOR_NODES, SubtreeNode
from ..state.base import NodeKind, PortDirection
from ..state.blackboard import SharedValueStore
from ..state.errors import BridgeError, TreeLoadError
from ..state.models import NodeModel, PortBinding, PortDescriptor, SubtreeModel, make_model
from .tree import RuntimeTree

logger = logging.getLogger(__name__)

DEFAULT_MAIN_TREE = "BehaviorTree"

RESERVED_ATTRIBUTES = ("ID", "name")

_MODEL_TAGS = {
    "Action": NodeKind.ACTION,
    "Condition": NodeKind.CONDITION,
    "Control": NodeKind.CONTROL,
    "Decorator": NodeKind.DECORATOR,
    "SubTree": NodeKind.SUBTREE,
}

_PORT_TAGS = {
    "input_port": PortDirection.INPUT,
    "output_port": PortDirection.OUTPUT,
    "inout_port": PortDirection.INOUT,
}


# =============================================================================
# Node Models
# =============================================================================


def parse_node_models(root: ET.Element) -> Dict[str, NodeModel]:
    """Read the ``<TreeNodesModel>`` section into node models by ID."""
    models: Dict[str, NodeModel] = {}
    section = root.find("TreeNodesModel")
    if section is None:
        return models

    for element in section:
        kind = _MODEL_TAGS.get(element.tag)
        if kind is None:
            raise TreeLoadError(f"Unknown node model tag <{element.tag}>")
        registration_id = element.get("ID")
        if not registration_id:
            raise TreeLoadError(f"<{element.tag}> model without ID")

        ports: List[PortDescriptor] = []
        try:
            for port in element:
                direction = _PORT_TAGS.get(port.tag)
                if direction is None:
                    raise TreeLoadError(
                        f"Unknown port tag <{port.tag}> in model '{registration_id}'"
                    )
                ports.append(
                    PortDescriptor(
                        name=port.get("name", ""),
                        direction=direction,
                        type_name=port.get("type", ""),
                        default=port.get("default"),
                        description=(port.text or "").strip(),
                    )
                )
            models[registration_id] = make_model(kind, registration_id, tuple(ports))
        except ValueError as e:
            raise TreeLoadError(f"Invalid node model '{registration_id}': {e}") from e
    return models


# =============================================================================
# TreeLoader
# =============================================================================


class TreeLoader:
    """Loads XML tree definitions into RuntimeTree instances.

    Args:
        main_tree: Tree to build when the file names no main tree and
            defines more than one.
        models: Extra node models, merged under the file's own models.
    """

    def __init__(
        self,
        main_tree: str = DEFAULT_MAIN_TREE,
        models: Optional[Mapping[str, NodeModel]] = None,
    ) -> None:
        self._main_tree = main_tree
        self._extra_models: Dict[str, NodeModel] = dict(models or {})

    def load(
        self, path: Union[str, Path], store: Optional[SharedValueStore] = None
    ) -> RuntimeTree:
        """Load a tree from an XML file.

        Raises:
            TreeLoadError: If the file is missing or invalid.
        """
        path = Path(path)
        if not path.is_file():
            raise TreeLoadError(f"Tree file not found: {path}")
        return self.load_string(path.read_text(encoding="utf-8"), source_name=str(path), store=store)

    def load_string(
        self,
        text: str,
        source_name: str = "<string>",
        store: Optional[SharedValueStore] = None,
    ) -> RuntimeTree:
        """Load a tree from XML text.

        Raises:
            TreeLoadError: If the text is not a valid tree definition.
        """
        try:
            root = ET.fromstring(text)
        except ET.ParseError as e:
            raise TreeLoadError(f"Malformed XML in {source_name}: {e}") from e
        if root.tag != "root":
            raise TreeLoadError(f"Expected <root> element in {source_name}, got <{root.tag}>")

        models = {**self._extra_models, **parse_node_models(root)}
        bodies: Dict[str, ET.Element] = {}
        for element in root.findall("BehaviorTree"):
            tree_id = element.get("ID") or self._main_tree
            bodies[tree_id] = element
        if not bodies:
            raise TreeLoadError(f"No <BehaviorTree> in {source_name}")

        main_id = root.get("main_tree_to_execute")
        if not main_id:
            main_id = next(iter(bodies)) if len(bodies) == 1 else self._main_tree
        if main_id not in bodies:
            raise TreeLoadError(f"Main tree '{main_id}' is not defined in {source_name}")

        builder = _TreeBuilder(models, bodies)
        tree_root = builder.build_body(main_id)
        tree = RuntimeTree(main_id, tree_root, store=store)
        logger.info(f"Loaded tree '{main_id}' from {source_name} ({len(tree)} nodes)")
        return tree


class _TreeBuilder:
    """Recursive element-to-node conversion for one load."""

    def __init__(self, models: Dict[str, NodeModel], bodies: Dict[str, ET.Element]) -> None:
        self._models = models
        self._bodies = bodies
        self._stack: List[str] = []

    def build_body(self, tree_id: str) -> TreeNode:
        if tree_id in self._stack:
            cycle = " -> ".join(self._stack + [tree_id])
            raise TreeLoadError(f"Recursive SubTree reference: {cycle}")
        body = self._bodies.get(tree_id)
        if body is None:
            raise TreeLoadError(f"SubTree '{tree_id}' is not defined")
        children = list(body)
        if len(children) != 1:
            raise TreeLoadError(
                f"<BehaviorTree ID=\"{tree_id}\"> must have exactly one child, has {len(children)}"
            )
        self._stack.append(tree_id)
        try:
            return self.build(children[0])
        finally:
            self._stack.pop()

    def _bindings(self, element: ET.Element, model: NodeModel, name: str) -> Dict[str, PortBinding]:
        bindings: Dict[str, PortBinding] = {}
        for attribute, value in element.attrib.items():
            if attribute in RESERVED_ATTRIBUTES:
                continue
            if model.port(attribute) is None:
                raise TreeLoadError(
                    f"Node '{name}' ({model.registration_id}) has no port named '{attribute}'"
                )
            try:
                bindings[attribute] = PortBinding.parse(value)
            except ValueError as e:
                raise TreeLoadError(f"Node '{name}' port '{attribute}': {e}") from e
        return bindings

    def build(self, element: ET.Element) -> TreeNode:
        tag = element.tag
        children = list(element)

        if tag == "SubTree":
            tree_id = element.get("ID")
            if not tree_id:
                raise TreeLoadError("<SubTree> without ID")
            remaps = [a for a in element.attrib if a not in RESERVED_ATTRIBUTES]
            if remaps:
                logger.debug(f"SubTree '{tree_id}': ignoring remapped ports {remaps}")
            child = self.build_body(tree_id)
            return SubtreeNode(
                element.get("name") or tree_id,
                child,
                model=SubtreeModel(registration_id=tree_id),
            )

        if tag in CONTROL_NODES:
            node_class = CONTROL_NODES[tag]
            model = node_class.default_model()
            name = element.get("name") or tag
            if not children:
                raise TreeLoadError(f"Control node '{name}' has no children")
            node = node_class(
                name,
                [self.build(child) for child in children],
                bindings=self._bindings(element, model, name),
            )
            if isinstance(node, Parallel):
                try:
                    node.check_thresholds()
                except BridgeError as e:
                    raise TreeLoadError(f"Control node '{name}': {e.detail}") from e
            return node

        if tag in DECORATOR_NODES:
            node_class = DECORATOR_NODES[tag]
            model = node_class.default_model()
            name = element.get("name") or tag
            if len(children) != 1:
                raise TreeLoadError(
                    f"Decorator '{name}' must have exactly one child, has {len(children)}"
                )
            return node_class(
                name,
                self.build(children[0]),
                bindings=self._bindings(element, model, name),
            )

        registration_id = element.get("ID") if tag in ("Action", "Condition") else tag
        if not registration_id:
            raise TreeLoadError(f"<{tag}> without ID")
        model = self._models.get(registration_id)
        if model is None:
            raise TreeLoadError(f"Unknown node type '{registration_id}'")
        if children:
            raise TreeLoadError(f"Leaf '{registration_id}' cannot have children")

        name = element.get("name") or registration_id
        bindings = self._bindings(element, model, name)
        if model.kind == NodeKind.ACTION:
            return ActionAdapter(name, model, bindings)
        if model.kind == NodeKind.CONDITION:
            return ConditionAdapter(name, model, bindings)
        raise TreeLoadError(
            f"Node '{name}' uses {model.kind.value} model '{registration_id}', "
            f"which has no runtime implementation"
        )


def load_tree(
    text: Optional[str] = None,
    path: Optional[Union[str, Path]] = None,
    main_tree: str = DEFAULT_MAIN_TREE,
    store: Optional[SharedValueStore] = None,
) -> RuntimeTree:
    """Load a tree from XML ``text`` or from the file at ``path``."""
    if (text is None) == (path is None):
        raise ValueError("load_tree() takes exactly one of text or path")
    loader = TreeLoader(main_tree=main_tree)
    if path is not None:
        return loader.load(path, store=store)
    return loader.load_string(text, store=store)


__all__ = ["TreeLoader", "load_tree", "parse_node_models", "DEFAULT_MAIN_TREE"]
