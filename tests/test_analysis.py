from __future__ import annotations

from typing import List

from editloop.analysis import CompileErrorAnalysis, Diagnosis, HeuristicErrorAnalyzer, LLMErrorAnalyzer
from editloop.models.llm_client import LLMRetryError
from editloop.tools.vcs import GitError


class FakeRepo:
    def __init__(self, paths: List[str] | None = None, *, broken: bool = False) -> None:
        self.paths = paths or []
        self.broken = broken

    def list_tracked_paths(self) -> List[str]:
        if self.broken:
            raise GitError("not a repository")
        return list(self.paths)


class FakeClient:
    def __init__(self, answer: CompileErrorAnalysis | None = None, *, fail: bool = False) -> None:
        self.answer = answer
        self.fail = fail
        self.prompts: List[str] = []

    def generate_json(self, prompt, response_model, *, operation="generate_json"):
        self.prompts.append(prompt)
        if self.fail:
            raise LLMRetryError("no valid JSON")
        return self.answer


TRACKED = ["src/app.ts", "src/util.ts", "tests/app.test.ts"]


def test_heuristic_proposes_tracked_paths_mentioned_in_output() -> None:
    analyzer = HeuristicErrorAnalyzer(FakeRepo(TRACKED))
    diagnostic = "src/util.ts(4,10): error TS2304: Cannot find name 'x'.\n./src/app.ts:1 also broken"

    diagnosis = analyzer.analyze(diagnostic, ["src/app.ts"])

    assert diagnosis.additional_files == ["src/util.ts"]
    assert diagnosis.install_packages == []


def test_heuristic_maps_missing_modules_to_packages() -> None:
    analyzer = HeuristicErrorAnalyzer()
    diagnostic = (
        "ModuleNotFoundError: No module named 'yaml.loader'\n"
        "Error: Cannot find module '@scope/pkg/dist/index.js'\n"
        "Error: Cannot find module './local'\n"
        "Error: Cannot find module 'lodash'"
    )

    diagnosis = analyzer.analyze(diagnostic, [])

    assert diagnosis.install_packages == ["yaml", "@scope/pkg", "lodash"]
    assert diagnosis.additional_files == []


def test_llm_analysis_filters_unknown_and_existing_files() -> None:
    answer = CompileErrorAnalysis(
        reasoning="util exports the helper",
        additional_files=["src/util.ts", "src/app.ts", "src/missing.ts", "src/util.ts"],
        install_packages=[" jest ", ""],
    )
    client = FakeClient(answer)
    analyzer = LLMErrorAnalyzer(client, FakeRepo(TRACKED))

    diagnosis = analyzer.analyze("FAIL tests/app.test.ts", ["src/app.ts"])

    assert diagnosis == Diagnosis(additional_files=["src/util.ts"], install_packages=["jest"])
    prompt = client.prompts[0]
    assert "<project_files>\nsrc/app.ts\nsrc/util.ts\ntests/app.test.ts\n</project_files>" in prompt
    assert "<files_being_edited>\nsrc/app.ts\n</files_being_edited>" in prompt
    assert "FAIL tests/app.test.ts" in prompt


def test_llm_analysis_falls_back_to_heuristics_on_client_error() -> None:
    analyzer = LLMErrorAnalyzer(FakeClient(fail=True), FakeRepo(TRACKED))

    diagnosis = analyzer.analyze("src/util.ts:3 error; Cannot find module 'chalk'", [])

    assert diagnosis.additional_files == ["src/util.ts"]
    assert diagnosis.install_packages == ["chalk"]


def test_llm_analysis_falls_back_when_git_is_unavailable() -> None:
    client = FakeClient(CompileErrorAnalysis())
    analyzer = LLMErrorAnalyzer(client, FakeRepo(broken=True))

    diagnosis = analyzer.analyze("No module named 'requests'", [])

    assert diagnosis.install_packages == ["requests"]
    assert client.prompts == []


def test_empty_diagnosis() -> None:
    assert Diagnosis().empty
    assert not Diagnosis(install_packages=["x"]).empty
