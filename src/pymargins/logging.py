"""Machine-readable run reports for marginal effects.

Creates JSON logs containing the configuration, every AME with its
inference, the AME covariance matrix and timing, so runs can be compared
and audited later.
"""

import json
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

import numpy as np
import pandas as pd

from .results import MarginsResult


def _safe_float(val: Any) -> Any:
    """Convert numpy types to Python native types for JSON serialization."""
    if isinstance(val, np.bool_):
        return bool(val)
    if isinstance(val, (np.floating, np.integer)):
        val = float(val)
    if isinstance(val, np.ndarray):
        return [_safe_float(v) for v in val.tolist()]
    if isinstance(val, (list, tuple)):
        return [_safe_float(v) for v in val]
    if isinstance(val, dict):
        return {str(k): _safe_float(v) for k, v in val.items()}
    if isinstance(val, float) and not np.isfinite(val):
        return None
    if val is not None and np.ndim(val) == 0 and pd.isna(val):
        return None
    return val


def extract_effects(result: MarginsResult) -> list:
    """One JSON record per AME (inference fields only when estimated)."""
    return [_safe_float(record.to_dict()) for record in result.results]


def extract_unit_counts(result: MarginsResult) -> dict:
    """Row and column counts of the unit-level output."""
    counts = {
        "n_obs": result.n_obs,
        "unit_rows": int(result.unit_effects.shape[0]),
        "unit_columns": list(result.unit_effects.columns.astype(str)),
    }
    if result.unit_variances is not None:
        counts["unit_variance_rows"] = int(result.unit_variances.shape[0])
    return counts


def create_report(
    result: MarginsResult,
    timing: Optional[dict] = None,
    extra: Optional[dict] = None,
) -> str:
    """Generate a JSON report of one margins() run.

    Args:
        result: Output of margins()
        timing: Timing information (defaults to result.timing)
        extra: Free-form metadata stored under "extra" (model name, data source...)

    Returns:
        JSON string containing the full report
    """
    vcov = None if result.vcov is None else _safe_float(result.vcov)
    coefficients = None
    if result.coefficients is not None:
        coefficients = {str(k): _safe_float(v) for k, v in result.coefficients.items()}

    report = {
        "meta": {
            "generated": datetime.now().isoformat(),
            "version": "1.0",
            "framework": "pymargins",
        },
        "config": _safe_float(result.config.to_dict()),
        "distribution": result.distribution if result.has_variance else None,
        "df": _safe_float(result.df),
        "effects": extract_effects(result),
        "vcov": vcov,
        "coefficients": coefficients,
        "units": extract_unit_counts(result),
        "timing": _safe_float(timing if timing is not None else result.timing),
        "extra": extra or {},
    }

    return json.dumps(report, indent=2, default=str)


def save_report(report: str, output_dir: str = "logs") -> str:
    """Save report to timestamped log file.

    Args:
        report: JSON string report
        output_dir: Directory to save report

    Returns:
        Path to saved report file
    """
    Path(output_dir).mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S_%f")
    path = f"{output_dir}/margins_{timestamp}.log"
    with open(path, "w") as f:
        f.write(report)
    return path


def format_human_readable(report_json: str) -> str:
    """Format report as human-readable text with JSON sections."""
    report = json.loads(report_json)

    lines = []
    lines.append("=" * 78)
    lines.append("MARGINAL EFFECTS REPORT")
    lines.append(f"Generated: {report['meta']['generated']}")
    lines.append("=" * 78)
    lines.append("")

    lines.append("## CONFIGURATION")
    lines.append(json.dumps(report["config"], indent=2))
    lines.append("")

    lines.append("## EFFECTS")
    lines.append(json.dumps(report["effects"], indent=2))
    lines.append("")

    if report.get("vcov") is not None:
        lines.append(f"## VCOV: {len(report['vcov'])} x {len(report['vcov'])}")
        lines.append("")

    if report.get("timing"):
        lines.append("## TIMING")
        lines.append(json.dumps(report["timing"], indent=2))
        lines.append("")

    lines.append(f"## UNIT EFFECTS: {report['units']['unit_rows']} rows")
    lines.append("")

    lines.append("=" * 78)
    lines.append("END REPORT")
    lines.append("=" * 78)

    return "\n".join(lines)
