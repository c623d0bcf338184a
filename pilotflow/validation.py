"""Static checks applied to custom workflow definitions before they are stored."""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterator, List, Mapping, Set, Union

from pydantic import ValidationError

from .contracts import STEP_TYPES, AgentStep, Step, WorkflowDefinition, walk_steps
from .errors import DefinitionError
from .expressions import referenced_step
from .registry import AgentRegistry

logger = logging.getLogger(__name__)

CIRCULAR_DEPENDENCY = "Circular dependency detected"


def _template_leaves(template: Any) -> Iterator[Any]:
    if isinstance(template, Mapping):
        for value in template.values():
            yield from _template_leaves(value)
    elif isinstance(template, list):
        for item in template:
            yield from _template_leaves(item)
    else:
        yield template


def step_references(step: Step) -> Set[str]:
    """Return the step ids referenced by ``${steps.<id>...}`` in the step input."""
    if not isinstance(step, AgentStep):
        return set()
    refs = set()
    for leaf in _template_leaves(step.input):
        ref = referenced_step(leaf)
        if ref is not None:
            refs.add(ref)
    return refs


class DefinitionValidator:
    """Validates user-authored workflow definitions against an agent registry."""

    def __init__(self, registry: AgentRegistry) -> None:
        self._registry = registry

    def validate(
        self, definition: Union[Mapping[str, Any], WorkflowDefinition]
    ) -> WorkflowDefinition:
        """Run every check and return the parsed definition.

        Raises:
            DefinitionError: On the first problem found.
        """
        if isinstance(definition, WorkflowDefinition):
            data: Mapping[str, Any] = definition.model_dump(by_alias=True)
        elif isinstance(definition, Mapping):
            data = definition
        else:
            raise DefinitionError("Workflow definition must be an object")

        name = data.get("name")
        if not isinstance(name, str) or not name.strip():
            raise DefinitionError("Workflow name is required")
        steps = data.get("steps")
        if not steps:
            raise DefinitionError("Workflow must have at least one step")
        if not isinstance(steps, list):
            raise DefinitionError("Workflow steps must be a list")

        self.check_structure(steps)
        parsed = self.parse(data)
        self.check_unique_ids(parsed.steps)
        self.check_references(parsed.steps)
        return parsed

    def check_structure(self, steps: List[Any]) -> None:
        """Reject unknown step types and agents missing from the registry."""
        for step in steps:
            if not isinstance(step, Mapping):
                raise DefinitionError("Each step must be an object")
            step_type = step.get("type")
            if step_type not in STEP_TYPES:
                raise DefinitionError(f"Invalid step type: {step_type}")
            agent = step.get("agent")
            if step_type == "agent" and agent is not None:
                if not isinstance(agent, str):
                    raise DefinitionError(f"Agent name must be a string: {agent!r}")
                if agent and agent not in self._registry:
                    raise DefinitionError(f"Unknown agent: {agent}")
            for nested in ("then", "else", "branches"):
                children = step.get(nested)
                if isinstance(children, list):
                    self.check_structure(children)

    @staticmethod
    def parse(data: Mapping[str, Any]) -> WorkflowDefinition:
        try:
            return WorkflowDefinition.model_validate(data)
        except ValidationError as e:
            raise DefinitionError(
                "Invalid workflow definition", details=e.errors(include_url=False)
            ) from e

    @staticmethod
    def check_unique_ids(steps: List[Step]) -> None:
        seen: Set[str] = set()
        for step in walk_steps(steps):
            if step.id in seen:
                raise DefinitionError(f"Duplicate step id: {step.id}")
            seen.add(step.id)

    @staticmethod
    def check_references(steps: List[Step]) -> None:
        """Reject forward references between siblings and reference cycles.

        A step may only reference steps that come before it in its own
        sibling list; referencing a later sibling is reported as a circular
        dependency even when no cycle exists.
        """
        graph: Dict[str, Set[str]] = {}

        def collect(siblings: List[Step]) -> None:
            positions = {step.id: index for index, step in enumerate(siblings)}
            for index, step in enumerate(siblings):
                refs = step_references(step)
                for ref in refs:
                    if positions.get(ref, -1) > index:
                        raise DefinitionError(
                            f"{CIRCULAR_DEPENDENCY}: step '{step.id}' references "
                            f"later step '{ref}'"
                        )
                graph[step.id] = refs
                collect(step.children())

        collect(steps)

        visited: Set[str] = set()
        on_stack: Set[str] = set()

        def has_cycle(node: str) -> bool:
            visited.add(node)
            on_stack.add(node)
            for ref in graph.get(node, ()):
                if ref in on_stack:
                    return True
                if ref not in visited and has_cycle(ref):
                    return True
            on_stack.discard(node)
            return False

        for node in graph:
            if node not in visited and has_cycle(node):
                logger.debug(f"Reference cycle found starting at step {node}")
                raise DefinitionError(CIRCULAR_DEPENDENCY)
