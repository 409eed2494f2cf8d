"""Formatters for per-file check summaries.

The checker produces plain dicts (see ``checker.check_assembly``); everything
here only renders them: a human-readable text block, a tab-separated table
for scripts, and an HTML report.
"""

from __future__ import annotations

import datetime as _dt
import logging
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence

from jinja2 import Template

from .models import FragmentClass

logger = logging.getLogger(__name__)

CI_LABELS = ("LB", "ML", "UB")


def _class_labels() -> List[str]:
    return [klass.label for klass in FragmentClass]


def _fmt_ci(ci: Optional[Mapping[str, float]]) -> List[str]:
    if ci is None:
        return ["N/A", "N/A", "N/A"]
    return [f"{ci['lower']:.1f}", f"{ci['estimate']:.1f}", f"{ci['upper']:.1f}"]


def _span_suffix(summary: Mapping[str, Any]) -> str:
    span = summary.get("span")
    if not span:
        return ""
    lo, hi = span
    return f" in range [{lo},{hi if hi is not None else 'end'})"


def _results_block(counts: Mapping[str, int], ci: Optional[Mapping[str, float]]) -> List[str]:
    labels = _class_labels()
    width = max(len(label) for label in labels)
    lines = []
    for label in labels:
        line = f"  {label:>{width}} fragments: {counts.get(label, 0)}"
        if label == FragmentClass.DIRT.label and ci is not None:
            line += f" ({ci['lower']:.1f} .. {ci['estimate']:.1f} .. {ci['upper']:.1f}%)"
        lines.append(line)
    return lines


def format_text(summary: Mapping[str, Any]) -> str:
    """Human-readable report for one file."""
    span = _span_suffix(summary)
    lines = [
        str(summary["input"]),
        "",
        f"  {summary['alignment_distance']} alignment distance between reference and assembly.",
        f"  {summary['n_differences']} total differences between reference and assembly.",
        f"  {summary['n_differences']} diagnostic positions{span}, "
        f"{summary['n_strong']} of which are strongly diagnostic.",
        f"  {summary['n_effective']} effectively diagnostic positions{span}, "
        f"{summary['n_transversions']} of which are transversions.",
        "",
        f"  strongly diagnostic positions: {summary['n_strong']}",
    ]
    lines += _results_block(summary["counts_strong"], summary.get("ci_strong"))
    lines.append("")
    lines.append(f"  effectively diagnostic positions: {summary['n_effective']}")
    lines += _results_block(summary["counts_all"], summary.get("ci_all"))
    lines.append("")
    return "\n".join(lines) + "\n"


def table_header() -> str:
    cols = ["#Filename", "Aln.dist", "#diff", "#weak", "#tv"]
    labels = _class_labels() + list(CI_LABELS)
    cols.append("#strong")
    cols += labels
    cols.append("#eff")
    cols += [label + "'" for label in labels]
    return "\t".join(cols)


def table_row(summary: Mapping[str, Any]) -> str:
    labels = _class_labels()
    cols: List[str] = [
        str(summary["input"]),
        str(summary["alignment_distance"]),
        str(summary["n_differences"]),
        str(summary["n_weak"]),
        str(summary["n_transversions"]),
        str(summary["n_strong"]),
    ]
    cols += [str(summary["counts_strong"].get(label, 0)) for label in labels]
    cols += _fmt_ci(summary.get("ci_strong"))
    cols.append(str(summary["n_effective"]))
    cols += [str(summary["counts_all"].get(label, 0)) for label in labels]
    cols += _fmt_ci(summary.get("ci_all"))
    return "\t".join(cols)


def format_table(summaries: Sequence[Mapping[str, Any]]) -> str:
    return "\n".join([table_header()] + [table_row(s) for s in summaries]) + "\n"


_REPORT_TEMPLATE = Template(
    """<!doctype html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <title>contamcheck report</title>
  <style>
    body { font-family: Arial, Helvetica, sans-serif; margin: 24px; }
    code, pre { background: #f6f8fa; padding: 2px 4px; border-radius: 4px; }
    h1, h2, h3 { margin-top: 1.2em; }
    table { border-collapse: collapse; margin-top: 0.6em; }
    th, td { border: 1px solid #ddd; padding: 8px; }
    th { background: #f2f2f2; text-align: left; }
    .grid { display: grid; grid-template-columns: 1fr 1fr; gap: 16px; }
    .card { border: 1px solid #ddd; border-radius: 8px; padding: 12px; }
    .small { color: #666; font-size: 0.9em; }
    .warn { color: #a15c00; }
    img { max-width: 100%; height: auto; border: 1px solid #eee; border-radius: 6px; }
  </style>
</head>
<body>

<h1>contamcheck report</h1>
<p class="small">Generated: {{ generated_at }}</p>
<p>Contaminant reference: <code>{{ reference_path }}</code></p>

{% for s in summaries %}
<h2><code>{{ s.input }}</code></h2>
<div class="grid">
  <div class="card">
    <h3>Alignment</h3>
    <table>
      <tr><th>Consensus</th><td><code>{{ s.consensus }}</code> ({{ s.consensus_length }} bp)</td></tr>
      <tr><th>Alignment distance</th><td>{{ s.alignment_distance }} (bound {{ s.max_distance }})</td></tr>
      <tr><th>Differences</th><td>{{ s.n_differences }}</td></tr>
      <tr><th>Strongly diagnostic</th><td>{{ s.n_strong }}</td></tr>
      <tr><th>Effectively diagnostic</th><td>{{ s.n_effective }} ({{ s.n_transversions }} transversions)</td></tr>
      <tr><th>Ancient DNA mode</th><td>{{ "yes" if s.adna else "no" }}</td></tr>
    </table>
  </div>
  <div class="card">
    <h3>Contamination estimate</h3>
    <table>
      <tr><th></th><th>LB</th><th>ML</th><th>UB</th></tr>
      {% for name, ci in [("strong positions", s.ci_strong), ("all positions", s.ci_all)] %}
      <tr><th>{{ name }}</th>
      {% if ci %}
        <td>{{ "%.1f"|format(ci.lower) }}%</td><td>{{ "%.1f"|format(ci.estimate) }}%</td><td>{{ "%.1f"|format(ci.upper) }}%</td>
      {% else %}
        <td>N/A</td><td>N/A</td><td>N/A</td>
      {% endif %}
      </tr>
      {% endfor %}
    </table>
  </div>
</div>

<h3>Fragments</h3>
<table>
  <tr><th>Class</th><th>strong positions</th><th>all positions</th></tr>
  {% for label in labels %}
  <tr><td>{{ label }}</td><td>{{ s.counts_strong[label] }}</td><td>{{ s.counts_all[label] }}</td></tr>
  {% endfor %}
</table>

{% if s.anomalies.missing_positions or s.anomalies.missing_backs or s.anomalies.unclaimed_backs %}
<p class="warn">Anomalies: {{ s.anomalies.missing_positions }} missing diagnostic positions,
{{ s.anomalies.missing_backs }} front halves without back,
{{ s.anomalies.unclaimed_backs }} back halves without front.</p>
{% endif %}

{% if s.plots %}
<div class="grid">
  <div class="card">
    <h3>Fragment classes</h3>
    <img src="{{ s.plots.class_counts }}" alt="class counts">
  </div>
  <div class="card">
    <h3>Votes per fragment</h3>
    <img src="{{ s.plots.vote_hist }}" alt="vote histogram">
  </div>
</div>
{% endif %}
{% endfor %}

<h2>Interpretation notes</h2>
<ul>
  <li>"Strong positions" counts only positions where the two references are incompatible even allowing for ambiguity codes.</li>
  <li>"All positions" adds weakly diagnostic positions confirmed by at least one fragment.</li>
  <li>The interval is a 95% Wilson score interval over clean and polluting fragments only.</li>
</ul>

<hr>
<p class="small">contamcheck {{ version }}</p>
</body>
</html>"""
)


def render_report(
    *,
    outdir: str | Path,
    version: str,
    reference_path: str,
    summaries: Sequence[Dict[str, Any]],
) -> Path:
    outdir = Path(outdir)
    outdir.mkdir(parents=True, exist_ok=True)

    html = _REPORT_TEMPLATE.render(
        generated_at=_dt.datetime.now().isoformat(timespec="seconds"),
        version=version,
        reference_path=reference_path,
        summaries=summaries,
        labels=_class_labels(),
    )

    out_path = outdir / "report.html"
    out_path.write_text(html, encoding="utf-8")
    return out_path
