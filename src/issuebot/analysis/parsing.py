"""Tolerant parsing of model output into analysis models.

Every function here accepts arbitrary text and never raises. Structurally
invalid output maps to the deterministic fallbacks on Classification and
RemediationPlan; an unusable edit set maps to None.
"""

import json
import logging
from enum import Enum
from typing import Any, Dict, List, Optional, Type, TypeVar

from pydantic import ValidationError

from src.issuebot.analysis.models import (
    AnalysisResult,
    Classification,
    Difficulty,
    EditSet,
    EditSetType,
    FileAction,
    FileEdit,
    IssueType,
    LineAction,
    LineEdit,
    Priority,
    RemediationPlan,
    RiskLevel,
    Severity,
    SolutionStep,
)


logger = logging.getLogger(__name__)

E = TypeVar("E", bound=Enum)


def extract_json_object(text: Any) -> Optional[Dict[str, Any]]:
    """Pull a JSON object out of a model response.

    Handles markdown code fences and leading or trailing prose around the
    object. Returns None when no JSON object can be recovered.
    """
    if not isinstance(text, str):
        return None

    candidate = text.strip()
    if candidate.startswith("```json"):
        candidate = candidate[7:]
    elif candidate.startswith("```"):
        candidate = candidate[3:]
    if candidate.endswith("```"):
        candidate = candidate[:-3]
    candidate = candidate.strip()

    try:
        data = json.loads(candidate)
    except ValueError:
        start = candidate.find("{")
        end = candidate.rfind("}")
        if start == -1 or end <= start:
            return None
        try:
            data = json.loads(candidate[start:end + 1])
        except ValueError:
            return None

    return data if isinstance(data, dict) else None


def _get(data: Dict[str, Any], *keys: str) -> Any:
    """First present value among snake_case and camelCase spellings."""
    for key in keys:
        if key in data:
            return data[key]
    return None


def _enum_value(enum_cls: Type[E], value: Any) -> Optional[E]:
    if not isinstance(value, str):
        return None
    try:
        return enum_cls(value.strip().lower())
    except ValueError:
        return None


def _string_list(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [item.strip() for item in value if isinstance(item, str) and item.strip()]


def _number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return None
    return None


def _degraded(reason: str, preview: Any) -> AnalysisResult:
    logger.warning(
        "Falling back to default classification",
        extra={"reason": reason, "response_preview": str(preview)[:200]},
    )
    return AnalysisResult(classification=Classification.fallback(), degraded=True)


def parse_classification(text: Any) -> AnalysisResult:
    """Parse an analysis response.

    Required fields are type, severity, priority, confidence and
    description; if any is missing or unrecognized the fallback
    classification is returned with degraded=True. Optional fields are
    defaulted and confidence is clamped into [0, 1].
    """
    data = extract_json_object(text)
    if data is None:
        return _degraded("response is not a JSON object", text)

    issue_type = _enum_value(IssueType, _get(data, "type", "issue_type"))
    severity = _enum_value(Severity, data.get("severity"))
    priority = _enum_value(Priority, data.get("priority"))
    confidence = _number(data.get("confidence"))
    description = data.get("description")

    if issue_type is None or severity is None or priority is None:
        return _degraded("missing or unknown type, severity or priority", data)
    if confidence is None:
        return _degraded("missing or non-numeric confidence", data)
    if not isinstance(description, str) or not description.strip():
        return _degraded("missing description", data)

    estimated_time = _get(data, "estimated_time", "estimatedTime")

    try:
        classification = Classification(
            type=issue_type,
            severity=severity,
            priority=priority,
            confidence=confidence,
            description=description.strip(),
            suggested_labels=_string_list(_get(data, "suggested_labels", "suggestedLabels")),
            # Anything but a literal true is treated as not auto-fixable
            auto_fixable=_get(data, "auto_fixable", "autoFixable") is True,
            related_files=_string_list(_get(data, "related_files", "relatedFiles")),
            dependencies=_string_list(data.get("dependencies")),
            estimated_time=estimated_time if isinstance(estimated_time, str) else None,
        )
    except ValidationError as e:
        return _degraded(f"classification validation failed: {e}", data)

    return AnalysisResult(classification=classification, degraded=False)


def _parse_line_edit(data: Any) -> Optional[LineEdit]:
    if not isinstance(data, dict):
        return None
    line = data.get("line")
    action = _enum_value(LineAction, _get(data, "action", "type"))
    content = data.get("content", "")
    if isinstance(line, bool) or not isinstance(line, int) or line < 1:
        return None
    if action is None or not isinstance(content, str):
        return None
    return LineEdit(line=line, action=action, content=content)


def _parse_file_edit(data: Any) -> Optional[FileEdit]:
    if not isinstance(data, dict):
        return None
    path = data.get("path")
    action = _enum_value(FileAction, data.get("action"))
    content = data.get("content")
    if not isinstance(path, str) or not path.strip() or action is None:
        return None
    if content is not None and not isinstance(content, str):
        return None

    raw_line_edits = _get(data, "line_edits", "changes") or []
    if not isinstance(raw_line_edits, list):
        return None
    line_edits = [_parse_line_edit(item) for item in raw_line_edits]
    if any(edit is None for edit in line_edits):
        return None

    return FileEdit(
        path=path.strip(),
        action=action,
        content=content,
        line_edits=line_edits,
    )


def parse_edit_set(data: Any) -> Optional[EditSet]:
    """Build an EditSet from a decoded JSON object.

    The whole edit set is discarded if any file entry is malformed or if
    it has no files. An unrecognized risk level is read as high.
    """
    if not isinstance(data, dict):
        return None
    if _get(data, "auto_fixable", "autoFixable") is False:
        return None

    raw_files = data.get("files")
    if not isinstance(raw_files, list) or not raw_files:
        return None
    files = [_parse_file_edit(item) for item in raw_files]
    if any(f is None for f in files):
        logger.warning("Discarding edit set with malformed file entries")
        return None

    raw_risk = _get(data, "risk_level", "riskLevel")
    if raw_risk is None:
        risk_level = RiskLevel.MEDIUM
    else:
        risk_level = _enum_value(RiskLevel, raw_risk) or RiskLevel.HIGH

    test_required = _get(data, "test_required", "testRequired")
    description = data.get("description")

    return EditSet(
        type=_enum_value(EditSetType, data.get("type")) or EditSetType.CODE_CHANGE,
        description=description if isinstance(description, str) else "",
        files=files,
        commands=_string_list(data.get("commands")),
        confidence=_number(data.get("confidence")) or 0.0,
        risk_level=risk_level,
        test_required=test_required if isinstance(test_required, bool) else True,
    )


def parse_auto_fix_response(text: Any) -> Optional[EditSet]:
    """Parse a dedicated auto-fix response.

    {"auto_fixable": false, "reason": "..."} and anything unparseable
    yield None.
    """
    data = extract_json_object(text)
    if data is None:
        logger.warning("Auto-fix response is not a JSON object")
        return None
    if _get(data, "auto_fixable", "autoFixable") is False:
        logger.info(
            "Model declined to produce an auto-fix",
            extra={"reason": str(data.get("reason", ""))[:200]},
        )
        return None
    return parse_edit_set(data)


def _parse_step(data: Any) -> Optional[SolutionStep]:
    if not isinstance(data, dict):
        return None
    title = data.get("title")
    if not isinstance(title, str) or not title.strip():
        return None
    description = data.get("description")
    code = data.get("code")
    return SolutionStep(
        title=title.strip(),
        description=description if isinstance(description, str) else "",
        code=code if isinstance(code, str) and code else None,
        commands=_string_list(data.get("commands")),
        files=_string_list(data.get("files")),
    )


def parse_remediation_plan(text: Any) -> RemediationPlan:
    """Parse a solution response, returning the fallback plan on failure."""
    data = extract_json_object(text)
    summary = data.get("summary") if data is not None else None
    if not isinstance(summary, str) or not summary.strip():
        logger.warning(
            "Falling back to default remediation plan",
            extra={"response_preview": str(text)[:200]},
        )
        return RemediationPlan.fallback()

    raw_steps = data.get("steps")
    if not isinstance(raw_steps, list):
        raw_steps = []
    steps = [s for s in (_parse_step(item) for item in raw_steps) if s]
    estimated_time = _get(data, "estimated_time", "estimatedTime")

    return RemediationPlan(
        summary=summary.strip(),
        steps=steps,
        edit_set=parse_edit_set(_get(data, "edit_set", "auto_fix", "autoFix")),
        resources=_string_list(_get(data, "resources", "additionalResources")),
        estimated_time=estimated_time if isinstance(estimated_time, str) else "unknown",
        difficulty=_enum_value(Difficulty, data.get("difficulty")) or Difficulty.MEDIUM,
    )
