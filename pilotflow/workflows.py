"""Built-in workflow definitions."""

from __future__ import annotations

from typing import Dict, Optional

from .contracts import WorkflowDefinition

_BUILTIN_DATA = [
    {
        "id": "full-test-suite",
        "name": "Full Test Suite Generation",
        "description": "Generate comprehensive test suite: TestWeaver → ScriptSmith → CodeGuardian",
        "steps": [
            {
                "id": "step-1",
                "type": "agent",
                "agent": "TestWeaver",
                "operation": "generate",
                "input": {
                    "specification": "${input.specification}",
                    "inputMethod": "specification",
                },
                "outputKey": "testWeaver",
            },
            {
                "id": "step-2",
                "type": "agent",
                "agent": "ScriptSmith",
                "operation": "generate",
                "input": {
                    "testCases": "${steps.step-1.output.testCases}",
                    "inputMethod": "test_case",
                },
                "outputKey": "scriptSmith",
            },
            {
                "id": "step-3",
                "type": "agent",
                "agent": "CodeGuardian",
                "operation": "generate",
                "input": {
                    "code": "${steps.step-2.output.code}",
                    "language": "typescript",
                },
                "outputKey": "codeGuardian",
            },
        ],
    },
    {
        "id": "visual-regression-flow",
        "name": "Visual Regression Testing Flow",
        "description": "Visual analysis with conditional bug pattern detection",
        "steps": [
            {
                "id": "step-1",
                "type": "agent",
                "agent": "VisualAnalysis",
                "operation": "analyze",
                "input": {
                    "screenshot": "${input.screenshot}",
                    "baselineScreenshot": "${input.baselineScreenshot}",
                },
                "outputKey": "visualAnalysis",
            },
            {
                "id": "step-2",
                "type": "condition",
                "condition": "${steps.step-1.output.hasVisualRegression}",
                "then": [
                    {
                        "id": "step-2a",
                        "type": "agent",
                        "agent": "BugPattern",
                        "operation": "analyze",
                        "input": {"differences": "${steps.step-1.output}"},
                        "outputKey": "bugPattern",
                    }
                ],
                "else": [],
            },
        ],
    },
    {
        "id": "api-test-flow",
        "name": "API Test Generation Flow",
        "description": "Generate API tests: FlowPilot → CodeGuardian",
        "steps": [
            {
                "id": "step-1",
                "type": "agent",
                "agent": "FlowPilot",
                "operation": "generate",
                "input": {"openApiSpec": "${input.openApiSpec}"},
                "outputKey": "flowPilot",
            },
            {
                "id": "step-2",
                "type": "agent",
                "agent": "CodeGuardian",
                "operation": "generate",
                "input": {
                    "code": "${steps.step-1.output.setup}",
                    "tests": "${steps.step-1.output.tests}",
                    "language": "typescript",
                },
                "outputKey": "codeGuardian",
            },
        ],
    },
    {
        "id": "code-quality-audit",
        "name": "Code Quality Audit",
        "description": "Parallel code analysis and test evolution",
        "steps": [
            {
                "id": "step-1",
                "type": "parallel",
                "branches": [
                    {
                        "id": "branch-1",
                        "type": "agent",
                        "agent": "CodeAnalysis",
                        "operation": "analyze",
                        "input": {"code": "${input.code}"},
                        "outputKey": "codeAnalysis",
                    },
                    {
                        "id": "branch-2",
                        "type": "agent",
                        "agent": "TestEvolution",
                        "operation": "analyze",
                        "input": {"testCases": "${input.testCases}"},
                        "outputKey": "testEvolution",
                    },
                ],
            }
        ],
    },
]

BUILTIN_WORKFLOWS: Dict[str, WorkflowDefinition] = {
    data["id"]: WorkflowDefinition.model_validate(data) for data in _BUILTIN_DATA
}


def get_builtin_workflow(workflow_id: str) -> Optional[WorkflowDefinition]:
    return BUILTIN_WORKFLOWS.get(workflow_id)


def is_builtin_workflow(workflow_id: str) -> bool:
    return workflow_id in BUILTIN_WORKFLOWS
