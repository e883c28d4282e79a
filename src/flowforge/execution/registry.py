"""
Node method registry

Node behavior lives outside the engine. Implementations are registered under
a (node type, function id) key and resolved when a node runs::

    registry = MethodRegistry()

    @registry.method("http", "get")
    async def http_get(call: NodeCall):
        return await fetch(call.data["url"])
"""
import importlib
import inspect
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from ..exceptions import MethodResolutionError, NodeExecutionError
from ..models.execution import ExecutionContext
from ..models.flow import Node


logger = logging.getLogger(__name__)


@dataclass
class NodeCall:
    """Everything a node method receives"""
    node: Node
    data: Dict[str, Any]
    inputs: Dict[str, Any]
    context: ExecutionContext


# A node method takes a NodeCall and returns the node's output, sync or async.
NodeMethod = Callable[[NodeCall], Any]
MethodLoader = Callable[[str, str], Optional[NodeMethod]]
MethodKey = Tuple[str, str]


class MethodRegistry:
    """Typed capability table keyed by (node type, function id)"""

    def __init__(self, loader: MethodLoader = None):
        self.methods: Dict[MethodKey, NodeMethod] = {}
        self.loader = loader

    def register(self, node_type: str, function_id: str, method: NodeMethod):
        """Register a method"""
        if not callable(method):
            raise ValueError(f"Method for ({node_type}, {function_id}) must be callable")

        key = (node_type, function_id)
        if key in self.methods:
            logger.warning(f"Replacing node method {key}")
        self.methods[key] = method
        logger.debug(f"Registered node method {key}")

    def method(self, node_type: str, function_id: str):
        """Decorator form of register()"""
        def decorator(func: NodeMethod) -> NodeMethod:
            self.register(node_type, function_id, func)
            return func
        return decorator

    def unregister(self, node_type: str, function_id: str):
        self.methods.pop((node_type, function_id), None)

    def has(self, node_type: str, function_id: str) -> bool:
        return (node_type, function_id) in self.methods

    def list_methods(self) -> List[MethodKey]:
        return sorted(self.methods)

    def resolve(self, node_type: str, function_id: str, node_id: str = None) -> NodeMethod:
        """
        Look up a method, consulting the lazy loader on a miss.

        Raises:
            MethodResolutionError: nothing is registered or loadable for the key
        """
        key = (node_type, function_id)
        method = self.methods.get(key)

        if method is None and self.loader is not None:
            try:
                method = self.loader(node_type, function_id)
            except Exception as e:
                logger.error(f"Method loader failed for {key}: {e}", exc_info=True)
                raise MethodResolutionError(node_type, function_id, node_id, cause=e) from e
            if method is not None:
                self.register(node_type, function_id, method)

        if method is None:
            raise MethodResolutionError(node_type, function_id, node_id)

        return method

    async def invoke(self, call: NodeCall) -> Any:
        """
        Resolve and run the method for a node.

        Raises:
            MethodResolutionError: no method for the node
            NodeExecutionError: the method raised
        """
        node = call.node
        method = self.resolve(node.type, node.function_id, node.id)

        try:
            result = method(call)
            if inspect.isawaitable(result):
                result = await result
            return result
        except NodeExecutionError:
            raise
        except Exception as e:
            raise NodeExecutionError(node.id, str(e) or type(e).__name__, e) from e

    def load_plugins(self, module_names: Iterable[str]):
        """Import modules exposing ``register_methods(registry)`` and let them register"""
        for module_name in module_names:
            module = importlib.import_module(module_name)
            register = getattr(module, "register_methods", None)
            if register is None:
                raise ValueError(f"Plugin module {module_name} has no register_methods(registry)")
            register(self)
            logger.info(f"Loaded node methods from {module_name}")
