"""
Flow executor
"""
import logging
from typing import Any, Dict, List, Optional

from ..exceptions import FlowExecutionError, GraphError, NodeExecutionError
from ..models.execution import (
    Execution, ExecutionContext, ExecutionStatus, TriggerSource
)
from ..models.flow import Flow, Node
from ..monitoring import EventLogger
from ..storage.repository import ExecutionRepository
from .registry import MethodRegistry, NodeCall


logger = logging.getLogger(__name__)


class FlowExecutor:
    """Runs a flow's nodes in dependency order and records the outcome"""

    def __init__(
        self,
        execution_repository: ExecutionRepository,
        method_registry: MethodRegistry,
        event_logger: EventLogger = None
    ):
        self.execution_repo = execution_repository
        self.methods = method_registry
        self.events = event_logger or EventLogger()

    async def execute_flow(
        self,
        flow: Flow,
        inputs: Dict[str, Any] = None,
        user_id: Optional[str] = None,
        triggered_by: TriggerSource = TriggerSource.MANUAL,
        schedule_id: Optional[str] = None,
        execution_id: Optional[str] = None
    ) -> Execution:
        """
        Execute a flow once.

        Args:
            flow: flow definition
            inputs: resolved global inputs, handed to every node
            user_id: user the run is attributed to
            triggered_by: manual or schedule
            schedule_id: originating schedule, if any
            execution_id: pre-allocated record id

        Returns:
            The finalized execution record (status success)

        Raises:
            GraphError: the flow is not a DAG; the failed record is attached
            FlowExecutionError: a node failed; the failed record is attached
        """
        inputs = dict(inputs or {})
        execution = Execution(
            flow_id=flow.id,
            user_id=user_id,
            triggered_by=TriggerSource(triggered_by),
            schedule_id=schedule_id,
            inputs=inputs,
        )
        if execution_id:
            execution.id = execution_id

        context = ExecutionContext(
            flow_id=flow.id,
            execution_id=execution.id,
            user_id=user_id,
            triggered_by=execution.triggered_by,
            schedule_id=schedule_id,
            inputs=inputs,
        )

        execution.start()
        await self.execution_repo.save(execution)
        logger.info(f"Starting execution {execution.id} of flow {flow.id} ({execution.triggered_by.value})")

        try:
            order = flow.topological_order()
        except GraphError as e:
            execution.fail({"node_id": None, "type": type(e).__name__, "message": str(e)})
            await self._finalize(flow, execution)
            e.execution = execution
            raise

        for node in order:
            try:
                await self._execute_node(flow, node, execution, context)
            except NodeExecutionError as e:
                execution.fail(e.to_dict())
                await self._finalize(flow, execution)
                raise FlowExecutionError(str(e), execution=execution, cause=e) from e

        execution.complete()
        await self._finalize(flow, execution)
        return execution

    async def _execute_node(
        self,
        flow: Flow,
        node: Node,
        execution: Execution,
        context: ExecutionContext
    ):
        node_execution = execution.create_node_execution(node.id)
        node_execution.start()

        call = NodeCall(
            node=node,
            data=dict(node.data),
            inputs=self._node_inputs(flow, node, context),
            context=context,
        )

        try:
            output = await self.methods.invoke(call)
        except NodeExecutionError as e:
            node_execution.fail(e.cause or e)
            logger.error(f"Node {node.id} failed in execution {execution.id}: {e}")
            raise

        node_execution.complete(output)
        context.set_node_output(node.id, output)
        execution.record_result(node.id, output)
        logger.debug(f"Node {node.id} completed in {node_execution.duration}s")

    def _node_inputs(self, flow: Flow, node: Node, context: ExecutionContext) -> Dict[str, Any]:
        # upstream outputs shadow global inputs with the same key
        node_inputs = dict(context.inputs)
        for upstream_id in flow.upstream_ids(node.id):
            node_inputs[upstream_id] = context.get_node_output(upstream_id)
        return node_inputs

    async def _finalize(self, flow: Flow, execution: Execution):
        await self.execution_repo.update(execution)

        level = logging.INFO if execution.status == ExecutionStatus.SUCCESS else logging.ERROR
        logger.log(
            level,
            f"Execution {execution.id} of flow {flow.id} finished with status "
            f"{execution.status.value} after {execution.nodes_executed} node(s)"
        )
        self.events.flow_execution(
            flow.id,
            execution.user_id,
            execution.status.value,
            execution.duration,
            execution_id=execution.id,
            schedule_id=execution.schedule_id,
            triggered_by=execution.triggered_by.value,
            nodes_executed=execution.nodes_executed,
            error=execution.error,
        )

    async def get_execution(self, execution_id: str) -> Optional[Execution]:
        return await self.execution_repo.get(execution_id)

    async def list_schedule_executions(self, schedule_id: str, limit: int = 100) -> List[Execution]:
        return await self.execution_repo.list_by_schedule(schedule_id, limit=limit)
