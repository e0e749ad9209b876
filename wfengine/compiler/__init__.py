from wfengine.compiler.dependency_resolver import DependencyResolver, topological_stages
from wfengine.compiler.execution_plan import ExecutionPlan, build_execution_plan

__all__ = ["DependencyResolver", "topological_stages", "ExecutionPlan", "build_execution_plan"]
