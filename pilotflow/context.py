"""Per-execution state shared by the step executor and the expression resolver."""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterator, List, Mapping, Optional

from .contracts import StepOutcome

logger = logging.getLogger(__name__)


class ResultMap(Mapping[str, StepOutcome]):
    """Append-only mapping from step id / output key to a step outcome.

    A child map created with :meth:`fork` reads through to its parent but
    keeps its own writes local until :meth:`merge_child` folds them back.
    Parallel branches each work on a fork so they never see each other's
    partial state.
    """

    def __init__(self, parent: Optional["ResultMap"] = None) -> None:
        self._parent = parent
        self._entries: Dict[str, StepOutcome] = {}
        self._output_keys: List[str] = []

    def __getitem__(self, key: str) -> StepOutcome:
        if key in self._entries:
            return self._entries[key]
        if self._parent is not None:
            return self._parent[key]
        raise KeyError(key)

    def __iter__(self) -> Iterator[str]:
        if self._parent is not None:
            yield from self._parent
        for key in self._entries:
            if self._parent is None or key not in self._parent:
                yield key

    def __len__(self) -> int:
        return sum(1 for _ in self)

    def _set(self, key: str, outcome: StepOutcome) -> bool:
        if key in self:
            logger.warning(f"Result for '{key}' already recorded; keeping first value")
            return False
        self._entries[key] = outcome
        return True

    def publish(
        self, step_id: str, outcome: StepOutcome, output_key: Optional[str] = None
    ) -> None:
        """Record ``outcome`` under ``step_id`` and, if given, ``output_key``."""
        self._set(step_id, outcome)
        if output_key and self._set(output_key, outcome):
            self._output_keys.append(output_key)

    def fork(self) -> "ResultMap":
        return ResultMap(parent=self)

    def merge_child(self, child: "ResultMap") -> None:
        """Fold the local writes of a forked map into this one."""
        for key, outcome in child._entries.items():
            if key in child._output_keys:
                if self._set(key, outcome):
                    self._output_keys.append(key)
            else:
                self._set(key, outcome)

    def output_keys(self) -> List[str]:
        keys = list(self._parent.output_keys()) if self._parent is not None else []
        return keys + [k for k in self._output_keys if k not in keys]

    def named_outputs(self) -> Dict[str, Any]:
        """Return ``{output_key: output}`` for every aliased result."""
        return {key: self[key].output for key in self.output_keys()}


class ExecutionContext:
    """Input object plus result map for a single workflow execution."""

    def __init__(
        self, input: Mapping[str, Any], results: Optional[ResultMap] = None
    ) -> None:
        self.input = input
        self.results = results if results is not None else ResultMap()

    def fork(self) -> "ExecutionContext":
        return ExecutionContext(self.input, self.results.fork())
