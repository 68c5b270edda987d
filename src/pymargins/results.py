"""Results containers for marginal effects.

AMEResult holds one average marginal effect; MarginsResult holds all of
them plus the covariance matrix and the unit-level effects, and provides
summary(), to_frame() and confint().
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Iterator, List, Optional

import numpy as np
import pandas as pd
from tabulate import tabulate

from .config import MarginsConfig
from .engine.variance import critical_value
from .utils.formatting import format_at, format_pvalue, format_short_repr, format_summary_header

INFERENCE_FIELDS = ("variance", "std_error", "statistic", "p_value", "ci_lower", "ci_upper")


@dataclass(frozen=True)
class AMEResult:
    """One average marginal effect.

    Attributes
    ----------
    term : str
        Effect label ("x" or "g[level]" for factor contrasts).
    estimate : float
        Average marginal effect.
    at : dict, optional
        Grid values this effect was computed at; None without an "at" spec.
    variance, std_error, statistic, p_value, ci_lower, ci_upper : float, optional
        Inference; all None when variance estimation was skipped.
    """

    term: str
    estimate: float
    at: Optional[Dict[str, Any]] = None
    variance: Optional[float] = None
    std_error: Optional[float] = None
    statistic: Optional[float] = None
    p_value: Optional[float] = None
    ci_lower: Optional[float] = None
    ci_upper: Optional[float] = None

    @property
    def has_variance(self) -> bool:
        return self.std_error is not None

    def to_dict(self) -> dict:
        record = asdict(self)
        if not self.has_variance:
            for name in INFERENCE_FIELDS:
                record.pop(name)
        return record


@dataclass
class MarginsResult:
    """Container for average marginal effects with inference.

    Attributes
    ----------
    results : list[AMEResult]
        One record per (grid point, effect), grid points outermost.
    vcov : np.ndarray, optional
        Covariance of the AME vector in results order; None for vce='none'.
    unit_effects : pd.DataFrame
        Unit-level effects, grid points stacked (with at_* columns when tagged).
    unit_variances : pd.DataFrame, optional
        Delta-method variances of the unit-level effects (config.unit_ses).
    config : MarginsConfig
        Options the result was computed with.
    n_obs : int
        Observations per grid point.
    df : float, optional
        Degrees of freedom of the reference distribution (None = normal).
    coefficients : pd.Series, optional
        Coefficients the effects were evaluated at.
    timing : dict
        Wall-clock seconds per stage.
    """

    results: List[AMEResult]
    vcov: Optional[np.ndarray]
    unit_effects: pd.DataFrame
    config: MarginsConfig
    n_obs: int
    df: Optional[float] = None
    unit_variances: Optional[pd.DataFrame] = None
    coefficients: Optional[pd.Series] = None
    timing: Dict[str, float] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.results)

    def __iter__(self) -> Iterator[AMEResult]:
        return iter(self.results)

    def __getitem__(self, index: int) -> AMEResult:
        return self.results[index]

    @property
    def has_variance(self) -> bool:
        return self.vcov is not None

    @property
    def distribution(self) -> str:
        return "normal" if self.df is None else "t"

    @property
    def terms(self) -> List[str]:
        return [r.term for r in self.results]

    @property
    def estimates(self) -> np.ndarray:
        return np.array([r.estimate for r in self.results])

    @property
    def std_errors(self) -> Optional[np.ndarray]:
        if not self.has_variance:
            return None
        return np.array([r.std_error for r in self.results])

    def get(self, term: str, at: Optional[Dict[str, Any]] = None) -> AMEResult:
        """Look up the record for a term (and grid point)."""
        for record in self.results:
            if record.term == term and (record.at or None) == (at or None):
                return record
        raise KeyError(f"No effect {term!r} at {at}")

    def to_frame(self) -> pd.DataFrame:
        """
        One row per AME.

        Grid values appear as at_<name> columns. Inference columns are
        omitted entirely when variance estimation was skipped.
        """
        rows = []
        for record in self.results:
            row: Dict[str, Any] = {"term": record.term}
            for name, value in (record.at or {}).items():
                row[f"at_{name}"] = value
            row["estimate"] = record.estimate
            if record.has_variance:
                for name in INFERENCE_FIELDS:
                    row[name] = getattr(record, name)
            rows.append(row)
        return pd.DataFrame(rows)

    def confint(self, level: Optional[float] = None) -> pd.DataFrame:
        """Compute confidence intervals.

        Parameters
        ----------
        level : float, optional
            Confidence level; defaults to config.level.

        Returns
        -------
        pd.DataFrame
            Columns ['term', at_*, 'lower', 'upper'].
        """
        if not self.has_variance:
            raise ValueError("No variance estimates (vce='none'); confidence intervals unavailable")
        level = self.config.level if level is None else level
        q = critical_value(level, self.df)
        frame = self.to_frame()
        keep = [c for c in frame.columns if c == "term" or c.startswith("at_")]
        out = frame[keep].copy()
        out["lower"] = frame["estimate"] - q * frame["std_error"]
        out["upper"] = frame["estimate"] + q * frame["std_error"]
        return out

    def summary(self) -> str:
        """Generate a Stata-style summary table.

        Returns
        -------
        str
            Formatted summary table, one block per grid point.
        """
        cfg = self.config
        left = [
            ("Scale:", cfg.scale),
            ("No. Observations:", f"{self.n_obs:,}"),
            ("VCE:", cfg.vce),
        ]
        right = [
            ("Change:", str(cfg.change)),
            ("Grid points:", str(len({format_at(r.at) for r in self.results}))),
            ("Distribution:", self.distribution if self.has_variance else "-"),
        ]
        lines = [format_summary_header("Average Marginal Effects", left, right)]

        stat_label = "z" if self.df is None else "t"
        ci_pct = f"{cfg.level * 100:g}%"

        blocks: Dict[str, List[AMEResult]] = {}
        for record in self.results:
            blocks.setdefault(format_at(record.at), []).append(record)

        for at_label, records in blocks.items():
            if at_label:
                lines.append(f"at: {at_label}")
            if self.has_variance:
                headers = ["", "AME", "std err", stat_label, f"P>|{stat_label}|", f"[{ci_pct} CI]"]
                rows = [
                    [
                        r.term,
                        f"{r.estimate:.6f}",
                        f"{r.std_error:.6f}",
                        f"{r.statistic:.3f}",
                        format_pvalue(r.p_value),
                        f"[{r.ci_lower:.4f}, {r.ci_upper:.4f}]",
                    ]
                    for r in records
                ]
            else:
                headers = ["", "AME"]
                rows = [[r.term, f"{r.estimate:.6f}"] for r in records]
            lines.append(tabulate(rows, headers=headers, tablefmt="simple"))
            lines.append("-" * 78)

        lines.append("=" * 78)
        return "\n".join(lines)

    def __repr__(self) -> str:
        return format_short_repr("MarginsResult", len(self.results), self.n_obs, self.config.vce)
