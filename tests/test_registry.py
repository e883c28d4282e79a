"""
Method registry tests
"""
import sys
import types

import pytest

from flowforge.exceptions import MethodResolutionError, NodeExecutionError
from flowforge.execution.registry import MethodRegistry, NodeCall
from flowforge.models.execution import ExecutionContext
from flowforge.models.flow import Node


def _call(node_type="test", function_id="fn", **inputs) -> NodeCall:
    node = Node(id="n1", type=node_type, function_id=function_id, data={"k": "v"})
    context = ExecutionContext(flow_id="flow-1", execution_id="exec-1")
    return NodeCall(node=node, data=dict(node.data), inputs=inputs, context=context)


def test_register_and_resolve():
    registry = MethodRegistry()

    def method(call):
        return 1

    registry.register("test", "fn", method)

    assert registry.has("test", "fn")
    assert registry.resolve("test", "fn") is method
    assert registry.list_methods() == [("test", "fn")]


def test_decorator_registers_and_returns_function():
    registry = MethodRegistry()

    @registry.method("test", "fn")
    def method(call):
        return 1

    assert registry.resolve("test", "fn") is method


def test_same_function_id_under_different_types():
    registry = MethodRegistry()
    registry.register("http", "get", lambda call: "http")
    registry.register("cache", "get", lambda call: "cache")

    assert registry.resolve("http", "get")(None) == "http"
    assert registry.resolve("cache", "get")(None) == "cache"


def test_unknown_method_raises_resolution_error():
    registry = MethodRegistry()

    with pytest.raises(MethodResolutionError) as exc_info:
        registry.resolve("test", "missing", "n1")

    assert exc_info.value.node_id == "n1"
    assert exc_info.value.node_type == "test"
    assert exc_info.value.function_id == "missing"


def test_register_rejects_non_callable():
    with pytest.raises(ValueError):
        MethodRegistry().register("test", "fn", "not callable")


def test_unregister():
    registry = MethodRegistry()
    registry.register("test", "fn", lambda call: None)
    registry.unregister("test", "fn")
    assert not registry.has("test", "fn")


def test_loader_is_consulted_on_miss_and_cached():
    calls = []

    def loader(node_type, function_id):
        calls.append((node_type, function_id))
        if function_id == "dynamic":
            return lambda call: "loaded"
        return None

    registry = MethodRegistry(loader=loader)

    assert registry.resolve("test", "dynamic")(None) == "loaded"
    registry.resolve("test", "dynamic")
    assert calls == [("test", "dynamic")]

    with pytest.raises(MethodResolutionError):
        registry.resolve("test", "other")


def test_loader_errors_become_resolution_errors():
    def loader(node_type, function_id):
        raise ImportError("No module named 'plugins.reports'")

    registry = MethodRegistry(loader=loader)

    with pytest.raises(MethodResolutionError) as exc_info:
        registry.resolve("report", "render", "n1")

    error = exc_info.value
    assert error.node_id == "n1"
    assert isinstance(error.cause, ImportError)
    assert error.__cause__ is error.cause
    assert "plugins.reports" in str(error)
    assert not registry.has("report", "render")


@pytest.mark.asyncio
async def test_invoke_sync_and_async_methods():
    registry = MethodRegistry()

    @registry.method("test", "sync")
    def sync_method(call):
        return {"x": call.inputs["x"], "k": call.data["k"]}

    @registry.method("test", "async")
    async def async_method(call):
        return call.context.execution_id

    assert await registry.invoke(_call(function_id="sync", x=1)) == {"x": 1, "k": "v"}
    assert await registry.invoke(_call(function_id="async")) == "exec-1"


@pytest.mark.asyncio
async def test_invoke_wraps_method_errors():
    registry = MethodRegistry()

    @registry.method("test", "fn")
    async def broken(call):
        raise KeyError("missing")

    with pytest.raises(NodeExecutionError) as exc_info:
        await registry.invoke(_call())

    error = exc_info.value
    assert error.node_id == "n1"
    assert isinstance(error.cause, KeyError)
    assert error.to_dict()["type"] == "KeyError"
    assert not isinstance(error, MethodResolutionError)


@pytest.mark.asyncio
async def test_invoke_unknown_method():
    with pytest.raises(MethodResolutionError) as exc_info:
        await MethodRegistry().invoke(_call(function_id="nope"))

    assert exc_info.value.node_id == "n1"
    assert exc_info.value.to_dict()["type"] == "MethodResolutionError"


def test_load_plugins(monkeypatch):
    plugin = types.ModuleType("flowforge_test_plugin")

    def register_methods(registry):
        registry.register("plugin", "hello", lambda call: "hi")

    plugin.register_methods = register_methods
    monkeypatch.setitem(sys.modules, "flowforge_test_plugin", plugin)

    registry = MethodRegistry()
    registry.load_plugins(["flowforge_test_plugin"])

    assert registry.has("plugin", "hello")


def test_load_plugins_requires_register_hook(monkeypatch):
    monkeypatch.setitem(sys.modules, "flowforge_empty_plugin", types.ModuleType("flowforge_empty_plugin"))

    with pytest.raises(ValueError, match="register_methods"):
        MethodRegistry().load_plugins(["flowforge_empty_plugin"])
