"""
Build traces for track maps.

A CalculationTrace follows one TrackMapBuilder.build through its stages
(smoothing, corners, sectors, zones). Each stage records the parameters
it ran with and a summary of what it produced; consistency checks on the
finished map are kept as SanityChecks.

Usage:
    trace = CalculationTrace.start("TrackMapBuilder", sample_count=1200)
    trace.record_stage("corners", {"lookahead": 10}, corner_count=14)
    trace.check("sectors_partition_track", ok, "sector ends meet", severity="error")
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


@dataclass
class SanityCheck:
    """One consistency check on a built track map."""
    name: str
    passed: bool
    message: str
    severity: str = "warning"  # "warning" or "error"
    expected: Optional[Any] = None
    actual: Optional[Any] = None

    @property
    def status(self) -> str:
        """'pass', or 'fail' for a failed error check and 'warn' otherwise"""
        if self.passed:
            return "pass"
        return "fail" if self.severity == "error" else "warn"

    def to_dict(self) -> dict:
        result = {
            "name": self.name,
            "status": self.status,
            "message": self.message,
            "severity": self.severity,
        }
        if self.expected is not None:
            result["expected"] = self.expected
        if self.actual is not None:
            result["actual"] = self.actual
        return result


@dataclass
class BuildStage:
    """Parameters and result summary of one build stage."""
    name: str
    parameters: Dict[str, Any] = field(default_factory=dict)
    results: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {"parameters": self.parameters, "results": self.results}


@dataclass
class CalculationTrace:
    """Trace of one build. Only created when a caller passes include_trace=True."""
    component: str
    timestamp: str
    inputs: Dict[str, Any] = field(default_factory=dict)
    stages: List[BuildStage] = field(default_factory=list)
    sanity_checks: List[SanityCheck] = field(default_factory=list)

    @classmethod
    def start(cls, component: str, **inputs) -> "CalculationTrace":
        """Create a trace stamped with the current UTC time."""
        return cls(
            component=component,
            timestamp=datetime.now(timezone.utc).isoformat(),
            inputs=dict(inputs),
        )

    @property
    def has_failures(self) -> bool:
        return any(c.status == "fail" for c in self.sanity_checks)

    @property
    def has_warnings(self) -> bool:
        return any(c.status == "warn" for c in self.sanity_checks)

    def stage(self, name: str) -> Optional[BuildStage]:
        for stage in self.stages:
            if stage.name == name:
                return stage
        return None

    def record_stage(self, name: str, parameters: Dict[str, Any], **results) -> BuildStage:
        """Append a stage in build order."""
        stage = BuildStage(name=name, parameters=dict(parameters), results=results)
        self.stages.append(stage)
        return stage

    def check(self, name: str, passed: bool, message: str,
              expected: Optional[Any] = None, actual: Optional[Any] = None,
              severity: str = "warning") -> SanityCheck:
        check = SanityCheck(
            name=name, passed=bool(passed), message=message,
            severity=severity, expected=expected, actual=actual,
        )
        self.sanity_checks.append(check)
        return check

    def to_dict(self) -> dict:
        return {
            "component": self.component,
            "timestamp": self.timestamp,
            "inputs": self.inputs,
            "stages": {s.name: s.to_dict() for s in self.stages},
            "sanity_checks": [c.to_dict() for c in self.sanity_checks],
            "has_failures": self.has_failures,
            "has_warnings": self.has_warnings,
        }
