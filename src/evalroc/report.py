from __future__ import annotations

import datetime as _dt
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from jinja2 import Template

from .utils import real_format, round_half_up

logger = logging.getLogger(__name__)


_REPORT_TEMPLATE = Template(
    """<!doctype html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <title>evalroc Report</title>
  <style>
    body { font-family: Arial, Helvetica, sans-serif; margin: 24px; }
    code, pre { background: #f6f8fa; padding: 2px 4px; border-radius: 4px; }
    pre { padding: 12px; overflow-x: auto; }
    h1, h2, h3 { margin-top: 1.2em; }
    table { border-collapse: collapse; margin-top: 0.6em; }
    th, td { border: 1px solid #ddd; padding: 8px; }
    th { background: #f2f2f2; text-align: left; }
    td.num { text-align: right; }
    .grid { display: grid; grid-template-columns: 1fr 1fr; gap: 16px; }
    .card { border: 1px solid #ddd; border-radius: 8px; padding: 12px; }
    .small { color: #666; font-size: 0.9em; }
    img { max-width: 100%; height: auto; border: 1px solid #eee; border-radius: 6px; }
  </style>
</head>
<body>

<h1>evalroc Report</h1>
<p class="small">Generated: {{ generated_at }}</p>

<h2>Run summary</h2>
<div class="grid">
  <div class="card">
    <h3>Inputs</h3>
    <table>
      {% for vcf in inputs %}
      <tr><th>VCF</th><td><code>{{ vcf }}</code></td></tr>
      {% endfor %}
      <tr><th>Score field</th><td><code>{{ summary.score_field }}</code></td></tr>
      <tr><th>Threshold selection</th><td>{{ summary.criteria }}</td></tr>
      <tr><th>Filters</th><td>{{ summary.filters | join(", ") }}</td></tr>
    </table>
  </div>
  <div class="card">
    <h3>Phasing</h3>
    <table>
      <tr><th>Correct phasings</th><td class="num">{{ summary.phasing.correct }}</td></tr>
      <tr><th>Incorrect phasings</th><td class="num">{{ summary.phasing.incorrect }}</td></tr>
      <tr><th>Unresolvable phasings</th><td class="num">{{ summary.phasing.unresolvable }}</td></tr>
    </table>
  </div>
</div>

<h2>Summary statistics</h2>
{% if summary.summary %}
<table>
  <tr>
    <th>Threshold</th><th>True-pos-baseline</th><th>True-pos-call</th><th>False-pos</th>
    <th>False-neg</th><th>Precision</th><th>Sensitivity</th><th>F-measure</th>
  </tr>
  {% for row in rows %}
  <tr>
    {% for cell in row %}<td class="num">{{ cell }}</td>{% endfor %}
  </tr>
  {% endfor %}
</table>
{% else %}
<p>0 total baseline variants, no summary statistics available.</p>
{% endif %}
{% if summary.ignored_variants %}
<p class="small">{{ summary.ignored_variants }} calls had no usable {{ summary.score_field }} value and were not thresholded.</p>
{% endif %}

{% if plots %}
<h2>Plots</h2>
<div class="grid">
  {% for name, src in plots.items() %}
  <div class="card">
    <h3>{{ name }}</h3>
    <img src="{{ src }}" alt="{{ name }}">
  </div>
  {% endfor %}
</div>
{% endif %}

<h2>Outputs</h2>
<ul>
  {% for path in summary.files.roc %}
  <li><code>{{ path }}</code></li>
  {% endfor %}
  <li><code>{{ summary.files.phasing }}</code> (phasing counts)</li>
  <li><code>summary.txt</code>, <code>summary.json</code> (summary statistics)</li>
</ul>

<h2>Interpretation notes</h2>
<ul>
  <li>Rescaled tables map call-side true positives onto the baseline count for that subset.</li>
  <li>The <code>None</code> threshold row counts every call, including calls without a score.</li>
</ul>

<hr>
<p class="small">evalroc {{ version }}</p>
</body>
</html>"""
)


def render_report(
    *,
    outdir: str | Path,
    version: str,
    summary: Dict[str, Any],
    inputs: List[str],
    plots: Optional[Dict[str, str]] = None,
) -> Path:
    """Write ``report.html`` for a finished ROC run.

    ``summary`` is the dictionary returned by :meth:`RocEvaluator.finish`;
    ``plots`` maps a caption to a path relative to ``outdir``.
    """
    outdir = Path(outdir)
    outdir.mkdir(parents=True, exist_ok=True)

    rows = []
    for r in summary.get("summary", []):
        rows.append(
            [
                r["threshold"],
                round_half_up(r["true_positives_baseline"]),
                round_half_up(r["true_positives_call"]),
                round_half_up(r["false_positives"]),
                round_half_up(r["false_negatives"]),
                real_format(r["precision"], 4),
                real_format(r["sensitivity"], 4),
                real_format(r["f_measure"], 4),
            ]
        )

    html = _REPORT_TEMPLATE.render(
        generated_at=_dt.datetime.now().isoformat(timespec="seconds"),
        version=version,
        inputs=inputs,
        summary=summary,
        rows=rows,
        plots=plots or {},
    )

    out_path = outdir / "report.html"
    out_path.write_text(html, encoding="utf-8")
    logger.debug("Report written: %s", out_path)
    return out_path
