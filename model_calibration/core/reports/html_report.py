"""HTML report generation.

Produces a standalone HTML report for a
:class:`~model_calibration.core.results.calibration_result.CalibrationResult`.
"""

from __future__ import annotations

import html
import math

from ..results.calibration_result import CalibrationResult


def _fmt(value, spec: str = ".6g") -> str:
    if value is None:
        return "-"
    if isinstance(value, float) and not math.isfinite(value):
        return "-"
    return format(value, spec)


def render_html_report(result: CalibrationResult, title: str | None = None) -> str:
    """Render a :class:`CalibrationResult` as a standalone HTML document."""
    if title is None:
        name = result.parameter_set_name
        title = f"Calibration Report: {name}" if name else "Calibration Report"

    def esc(s: object) -> str:
        return html.escape(str(s))

    css = """
    body { font-family: Arial, sans-serif; margin: 24px; }
    h1 { margin-bottom: 4px; }
    .meta { color: #555; margin-bottom: 16px; }
    table { border-collapse: collapse; width: 100%; margin: 12px 0 24px 0; }
    th, td { border: 1px solid #ddd; padding: 6px 8px; font-size: 13px; }
    th { background: #f5f5f5; text-align: left; }
    .ok { color: #067d00; font-weight: bold; }
    .bad { color: #b00020; font-weight: bold; }
    .fixed { color: #888; }
    .small { font-size: 12px; color: #666; }
    """

    solver = result.solver_result

    parts: list[str] = []
    parts.append("<!doctype html>")
    parts.append("<html><head><meta charset='utf-8'>")
    parts.append(f"<title>{esc(title)}</title>")
    parts.append(f"<style>{css}</style>")
    parts.append("</head><body>")

    parts.append(f"<h1>{esc(title)}</h1>")
    parts.append(
        f"<div class='meta'>Success: <span class='{'ok' if result.success else 'bad'}'>{esc(result.success)}</span> | "
        f"Converged: <span class='{'ok' if result.converged else 'bad'}'>{esc(result.converged)}</span> | "
        f"Status: {esc(result.status.value)} | "
        f"Iterations: {esc(result.iterations)} | DOF: {esc(result.degrees_of_freedom)} | "
        f"Cost: {_fmt(result.cost)} | σ₀²: {_fmt(result.variance_factor)}</div>"
    )

    if solver is not None:
        parts.append("<h2>Solver</h2>")
        parts.append(
            "<table><thead><tr><th>Reason</th><th>Iterations</th><th>Accepted steps</th>"
            "<th>Residual evals</th><th>Jacobian evals</th><th>Final λ</th></tr></thead><tbody>"
        )
        parts.append(
            "<tr>"
            f"<td>{esc(solver.convergence_reason or '-')}</td>"
            f"<td>{solver.iterations}</td><td>{solver.accepted_steps}</td>"
            f"<td>{solver.residual_evaluations}</td><td>{solver.jacobian_evaluations}</td>"
            f"<td>{_fmt(solver.lambda_final, '.3g')}</td>"
            "</tr>"
        )
        parts.append("</tbody></table>")

    if result.chi_square_test is not None:
        c = result.chi_square_test
        parts.append("<h2>Chi-square Goodness-of-fit Test</h2>")
        parts.append("<table><thead><tr><th>Statistic</th><th>Lower</th><th>Upper</th><th>p-value</th><th>DOF</th><th>Passed</th></tr></thead><tbody>")
        parts.append(
            "<tr>"
            f"<td>{_fmt(c.test_statistic)}</td>"
            f"<td>{_fmt(c.critical_lower)}</td>"
            f"<td>{_fmt(c.critical_upper)}</td>"
            f"<td>{_fmt(c.p_value, '.4f')}</td>"
            f"<td>{esc(c.degrees_of_freedom)}</td>"
            f"<td class='{'ok' if c.passed else 'bad'}'>{esc(c.passed)}</td>"
            "</tr>"
        )
        parts.append("</tbody></table>")

    level = f"{result.confidence_level * 100:.0f}%"
    parts.append("<h2>Parameters</h2>")
    parts.append(
        "<table><thead><tr><th>Name</th><th>Estimate</th><th>Std. error</th>"
        f"<th>{esc(level)} lower</th><th>{esc(level)} upper</th><th>Adjusted</th></tr></thead><tbody>"
    )
    for name, value in result.parameters.items():
        adjusted = name in result.optimized
        lo, hi = result.confidence_intervals.get(name, (None, None))
        parts.append(
            f"<tr class='{'' if adjusted else 'fixed'}'>"
            f"<td>{esc(name)}</td><td>{_fmt(value)}</td>"
            f"<td>{_fmt(result.standard_errors.get(name))}</td>"
            f"<td>{_fmt(lo)}</td><td>{_fmt(hi)}</td>"
            f"<td>{'Yes' if adjusted else 'No'}</td>"
            "</tr>"
        )
    parts.append("</tbody></table>")

    if result.correlation_matrix is not None:
        names = result.optimized
        parts.append("<h2>Correlations</h2>")
        parts.append("<table><thead><tr><th></th>" + "".join(f"<th>{esc(n)}</th>" for n in names) + "</tr></thead><tbody>")
        for i, row_name in enumerate(names):
            cells = "".join(f"<td>{_fmt(float(v), '.3f')}</td>" for v in result.correlation_matrix[i])
            parts.append(f"<tr><th>{esc(row_name)}</th>{cells}</tr>")
        parts.append("</tbody></table>")

    parts.append("<h2>Residuals</h2>")
    parts.append(
        "<table><thead><tr>"
        "<th>Observation</th><th>Target</th><th>Predicted</th><th>Residual</th><th>Weight</th><th>Weighted</th>"
        "</tr></thead><tbody>"
    )
    for r in result.residual_details:
        parts.append(
            "<tr>"
            f"<td>{esc(r.name)}</td>"
            f"<td>{_fmt(r.target)}</td><td>{_fmt(r.predicted)}</td>"
            f"<td>{_fmt(r.residual)}</td><td>{_fmt(r.weight)}</td><td>{_fmt(r.weighted_residual)}</td>"
            "</tr>"
        )
    parts.append("</tbody></table>")

    if solver is not None and solver.cost_trace:
        parts.append("<h2>Cost Trace</h2>")
        parts.append("<table><thead><tr><th>Accepted step</th><th>Cost</th></tr></thead><tbody>")
        for k, cost in enumerate(solver.cost_trace):
            parts.append(f"<tr><td>{k}</td><td>{_fmt(cost)}</td></tr>")
        parts.append("</tbody></table>")

    if result.messages:
        parts.append("<h2>Messages</h2><ul>")
        for m in result.messages:
            parts.append(f"<li>{esc(m)}</li>")
        parts.append("</ul>")

    if result.error_message:
        parts.append("<h2>Errors</h2>")
        parts.append(f"<pre>{esc(result.error_message)}</pre>")

    parts.append("<div class='small'>Generated by model_calibration</div>")
    parts.append("</body></html>")
    return "\n".join(parts)


def save_html_report(path: str, result: CalibrationResult, title: str | None = None) -> None:
    """Write an HTML report to disk."""
    html_str = render_html_report(result, title=title)
    with open(path, "w", encoding="utf-8") as f:
        f.write(html_str)
