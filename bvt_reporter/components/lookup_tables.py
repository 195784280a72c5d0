"""
Lookup Tables - ID-keyed arena for structural references between events
"""
from typing import Dict, Iterator, Optional

from ..models.events import (
    DocumentStep,
    GherkinDocument,
    Pickle,
    PickleStep,
    Scenario,
    TestCase,
    TestStep,
)


class ProtocolViolationError(RuntimeError):
    """Raised when the event stream references something never announced."""

    def __init__(self, kind: str, key: str):
        super().__init__(f"{kind} with id {key} not found")
        self.kind = kind
        self.key = key


class LookupTables:
    """
    Arena of compiled structures keyed by opaque identifier.

    ``find_*`` accessors return None on a miss; ``require_*`` accessors raise
    ProtocolViolationError, for call sites where a miss means the stream broke
    its ordering contract.
    """

    def __init__(self):
        self.documents: Dict[str, GherkinDocument] = {}
        self.document_steps: Dict[str, DocumentStep] = {}
        self.scenarios: Dict[str, Scenario] = {}
        self.pickles: Dict[str, Pickle] = {}
        self.pickle_steps: Dict[str, PickleStep] = {}
        self.test_cases: Dict[str, TestCase] = {}
        self.test_steps: Dict[str, TestStep] = {}

    # Indexing

    def add_document(self, document: GherkinDocument):
        self.documents[document.uri] = document
        for scenario in _iter_scenarios(document):
            self.scenarios[scenario.id] = scenario
        for step in _iter_document_steps(document):
            self.document_steps[step.id] = step

    def add_pickle(self, pickle: Pickle):
        self.pickles[pickle.id] = pickle
        for step in pickle.steps:
            self.pickle_steps[step.id] = step

    def add_test_case(self, test_case: TestCase):
        self.test_cases[test_case.id] = test_case
        for test_step in test_case.test_steps:
            self.test_steps[test_step.id] = test_step

    # Lookups

    def find_document(self, uri: str) -> Optional[GherkinDocument]:
        return self.documents.get(uri)

    def find_document_step(self, step_id: str) -> Optional[DocumentStep]:
        return self.document_steps.get(step_id)

    def find_scenario(self, scenario_id: str) -> Optional[Scenario]:
        return self.scenarios.get(scenario_id)

    def find_pickle(self, pickle_id: str) -> Optional[Pickle]:
        return self.pickles.get(pickle_id)

    def find_test_case(self, test_case_id: str) -> Optional[TestCase]:
        return self.test_cases.get(test_case_id)

    def find_test_step(self, test_step_id: str) -> Optional[TestStep]:
        return self.test_steps.get(test_step_id)

    def find_pickle_step(self, pickle_step_id: str) -> Optional[PickleStep]:
        return self.pickle_steps.get(pickle_step_id)

    def require_document(self, uri: str) -> GherkinDocument:
        return _require(self.find_document(uri), "gherkinDocument", uri)

    def require_scenario(self, scenario_id: str) -> Scenario:
        return _require(self.find_scenario(scenario_id), "scenario", scenario_id)

    def require_pickle(self, pickle_id: str) -> Pickle:
        return _require(self.find_pickle(pickle_id), "pickle", pickle_id)

    def require_pickle_step(self, pickle_step_id: str) -> PickleStep:
        return _require(self.find_pickle_step(pickle_step_id), "pickleStep", pickle_step_id)

    def require_test_case(self, test_case_id: str) -> TestCase:
        return _require(self.find_test_case(test_case_id), "testCase", test_case_id)

    def require_test_step(self, test_step_id: str) -> TestStep:
        return _require(self.find_test_step(test_step_id), "testStep", test_step_id)


def _require(value, kind: str, key: str):
    if value is None:
        raise ProtocolViolationError(kind, key)
    return value


def _iter_scenarios(document: GherkinDocument) -> Iterator[Scenario]:
    if document.feature is None:
        return
    for child in document.feature.children:
        if child.scenario is not None:
            yield child.scenario
        if child.rule is not None:
            for rule_child in child.rule.children:
                if rule_child.scenario is not None:
                    yield rule_child.scenario


def _iter_document_steps(document: GherkinDocument) -> Iterator[DocumentStep]:
    if document.feature is None:
        return
    for child in document.feature.children:
        containers = [child.background, child.scenario]
        if child.rule is not None:
            for rule_child in child.rule.children:
                containers.extend([rule_child.background, rule_child.scenario])
        for container in containers:
            if container is not None:
                yield from container.steps
