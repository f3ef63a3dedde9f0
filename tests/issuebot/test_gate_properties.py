"""Property-based tests for the fix safety gate.

Properties:
1. The gate is pure: evaluating twice gives the same decision and leaves
   its inputs unchanged
2. Low confidence, high risk, too many files, a critical path with
   non-low risk, and dangerous content each force a rejection
3. An edit set satisfying every rule is approved
"""

from hypothesis import assume, given, settings, strategies as st

from src.issuebot.analysis.models import (
    Classification,
    EditSet,
    FileAction,
    FileEdit,
    IssueType,
    LineAction,
    LineEdit,
    Priority,
    RiskLevel,
    Severity,
)
from src.issuebot.autofix.gate import (
    CRITICAL_PATHS,
    evaluate,
    find_dangerous_pattern,
    is_critical_path,
    is_safe,
)
from src.issuebot.config import SafetyPolicy


POLICY = SafetyPolicy(confidence_threshold=0.8, max_auto_fix_complexity=3)


def _classification(auto_fixable: bool = True) -> Classification:
    return Classification(
        type=IssueType.BUG,
        severity=Severity.LOW,
        priority=Priority.LOW,
        confidence=0.9,
        description="Typo",
        auto_fixable=auto_fixable,
    )


# =============================================================================
# Strategies
# =============================================================================


safe_paths = st.from_regex(r"src/[a-z]{1,10}\.py", fullmatch=True)
safe_content = st.text(alphabet="abcdefghijklmno \n=()", max_size=60)


@st.composite
def file_edits(draw, paths=safe_paths, content=safe_content):
    return FileEdit(
        path=draw(paths),
        action=draw(st.sampled_from(list(FileAction))),
        content=draw(st.one_of(st.none(), content)),
    )


@st.composite
def edit_sets(draw, min_files=1, max_files=6):
    return EditSet(
        description="fix",
        files=draw(st.lists(file_edits(), min_size=min_files, max_size=max_files)),
        confidence=draw(st.floats(min_value=0.0, max_value=1.0)),
        risk_level=draw(st.sampled_from(list(RiskLevel))),
    )


@st.composite
def approvable_edit_sets(draw):
    return EditSet(
        description="fix",
        files=draw(st.lists(file_edits(), min_size=1, max_size=3)),
        confidence=draw(st.floats(min_value=0.8, max_value=1.0)),
        risk_level=draw(st.sampled_from([RiskLevel.LOW, RiskLevel.MEDIUM])),
    )


# =============================================================================
# Properties
# =============================================================================


class TestGateProperties:
    @settings(max_examples=100)
    @given(edit_sets())
    def test_gate_is_pure(self, edit_set):
        before = edit_set.model_copy(deep=True)
        classification = _classification()

        first = evaluate(edit_set, classification, POLICY)
        second = evaluate(edit_set, classification, POLICY)

        assert first == second
        assert edit_set == before
        assert is_safe(edit_set, classification, POLICY) == first.approved

    @settings(max_examples=100)
    @given(edit_sets(), st.floats(min_value=0.0, max_value=0.79))
    def test_low_confidence_rejected(self, edit_set, confidence):
        edit_set = edit_set.model_copy(update={"confidence": confidence})
        assert not is_safe(edit_set, _classification(), POLICY)

    @settings(max_examples=100)
    @given(edit_sets())
    def test_high_risk_rejected(self, edit_set):
        edit_set = edit_set.model_copy(update={"risk_level": RiskLevel.HIGH, "confidence": 1.0})
        assert not is_safe(edit_set, _classification(), POLICY)

    @settings(max_examples=100)
    @given(edit_sets(min_files=4, max_files=8))
    def test_too_many_files_rejected(self, edit_set):
        edit_set = edit_set.model_copy(update={"risk_level": RiskLevel.LOW, "confidence": 1.0})
        decision = evaluate(edit_set, _classification(), POLICY)
        assert not decision.approved
        assert any("more than the maximum" in reason for reason in decision.reasons)

    @settings(max_examples=100)
    @given(
        approvable_edit_sets(),
        st.sampled_from(CRITICAL_PATHS),
        st.sampled_from(["", "deploy/", "services/api/"]),
    )
    def test_critical_path_needs_low_risk(self, edit_set, name, prefix):
        critical = FileEdit(path=prefix + name, action=FileAction.UPDATE, content="x")
        files = [critical] + edit_set.files[:2]

        medium = edit_set.model_copy(update={"files": files, "risk_level": RiskLevel.MEDIUM})
        low = edit_set.model_copy(update={"files": files, "risk_level": RiskLevel.LOW})

        assert not is_safe(medium, _classification(), POLICY)
        assert is_safe(low, _classification(), POLICY)

    @settings(max_examples=100)
    @given(
        approvable_edit_sets(),
        st.sampled_from(["rm -rf /", "SUDO make", "chmod 777 x", "PASSWORD=1", "api_key", "Private-Key"]),
    )
    def test_dangerous_content_rejected(self, edit_set, snippet):
        dangerous = FileEdit(path="src/x.py", action=FileAction.UPDATE, content=f"a\n{snippet}\n")
        edit_set = edit_set.model_copy(update={"files": [dangerous]})
        assert not is_safe(edit_set, _classification(), POLICY)

    @settings(max_examples=100)
    @given(approvable_edit_sets())
    def test_compliant_edit_set_approved(self, edit_set):
        decision = evaluate(edit_set, _classification(), POLICY)
        assert decision.approved
        assert decision.reasons == []


class TestGateExamples:
    def _edit_set(self, **overrides) -> EditSet:
        fields = dict(
            files=[FileEdit(path="src/app.py", action=FileAction.UPDATE, content="print(1)")],
            confidence=0.95,
            risk_level=RiskLevel.LOW,
        )
        fields.update(overrides)
        return EditSet(**fields)

    def test_threshold_is_inclusive(self):
        assert is_safe(self._edit_set(confidence=0.8), _classification(), POLICY)

    def test_not_auto_fixable_rejected(self):
        assert not is_safe(self._edit_set(), _classification(auto_fixable=False), POLICY)

    def test_empty_edit_set_rejected(self):
        assert not is_safe(self._edit_set(files=[]), _classification(), POLICY)

    def test_dangerous_line_edit_rejected(self):
        file = FileEdit(
            path="src/app.py",
            action=FileAction.UPDATE,
            line_edits=[LineEdit(line=1, action=LineAction.ADD, content="secret = 'x'")],
        )
        decision = evaluate(self._edit_set(files=[file]), _classification(), POLICY)
        assert not decision.approved
        assert "src/app.py" in decision.reasons[0]

    def test_reasons_accumulate(self):
        decision = evaluate(
            self._edit_set(confidence=0.1, risk_level=RiskLevel.HIGH),
            _classification(),
            POLICY,
        )
        assert len(decision.reasons) == 2

    def test_critical_path_matching(self):
        assert is_critical_path("Dockerfile")
        assert is_critical_path("web/package.json")
        assert is_critical_path("my.env")
        assert is_critical_path("config/app.env")
        assert not is_critical_path("docs/Dockerfile.md")

    def test_env_file_suffix_needs_low_risk(self):
        file = FileEdit(path="deploy/prod.env", action=FileAction.UPDATE, content="DEBUG=0")
        decision = evaluate(
            self._edit_set(files=[file], risk_level=RiskLevel.MEDIUM),
            _classification(),
            POLICY,
        )
        assert not decision.approved
        assert decision.reasons == ["modifies critical file deploy/prod.env with medium risk"]

    def test_dangerous_pattern_lookup(self):
        assert find_dangerous_pattern("harmless") == ""
        assert find_dangerous_pattern("echo $API-KEY") == r"api[_-]?key"

    def test_zero_complexity_rejects_everything(self):
        policy = SafetyPolicy(confidence_threshold=0.0, max_auto_fix_complexity=0)
        assert not is_safe(self._edit_set(), _classification(), policy)
