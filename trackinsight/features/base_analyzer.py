"""
Base class for analysis result objects.

Reports implement to_dict(); to_json() and trace serialization are shared.
"""

import json

from ..utils.dataframe_helpers import sanitize_for_json


class BaseAnalysisReport:
    """Base class for analysis result/report objects.

    Subclasses are @dataclass decorated, so this base avoids __init__ to
    not conflict with dataclass generation.

    Trace support: set report.trace to a CalculationTrace after
    construction and merge _trace_dict() into to_dict().
    """

    def to_dict(self) -> dict:
        """Serialize report to a JSON-safe dictionary."""
        raise NotImplementedError

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(sanitize_for_json(self.to_dict()), indent=indent)

    def _trace_dict(self) -> dict:
        trace = getattr(self, 'trace', None)
        if trace is not None:
            return {"_trace": trace.to_dict()}
        return {}
