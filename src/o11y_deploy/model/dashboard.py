"""Grafana dashboard data models.

Modules build dashboards with these types and hand them to the pipeline
as plain JSON payloads; the grafana module then provisions the payloads.
"""

from __future__ import annotations

import copy
import hashlib
import re
from dataclasses import dataclass, field
from typing import Any

DATASOURCE_VARIABLE = "prometheus_ds"
DATASOURCE_UID = "${%s}" % DATASOURCE_VARIABLE
GROUP_VARIABLE = "group_name"

# label_values(metric{selectors},label)
_LABEL_VALUES_RE = re.compile(
    r"label_values\((?P<metric>[a-zA-Z_:][a-zA-Z0-9_:]*)(\{(?P<labels>.*)\})?,\s*"
    r"(?P<label>[a-zA-Z_][a-zA-Z0-9_]*)\)"
)


@dataclass
class Target:
    """Prometheus query target for a panel."""

    expr: str  # PromQL expression
    legend_format: str = "{{instance}}"
    ref_id: str = "A"

    def to_dict(self) -> dict[str, Any]:
        return {
            "datasource": {"type": "prometheus", "uid": DATASOURCE_UID},
            "expr": self.expr,
            "legendFormat": self.legend_format,
            "refId": self.ref_id,
        }


@dataclass
class Panel:
    """Grafana dashboard panel."""

    title: str
    targets: list[Target]
    panel_type: str = "timeseries"  # timeseries, gauge, stat, table
    unit: str | None = None
    width: int = 12
    height: int = 8

    # Internal tracking
    id: int = 0

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "type": self.panel_type,
            "datasource": {"type": "prometheus", "uid": DATASOURCE_UID},
            "targets": [t.to_dict() for t in self.targets],
            "gridPos": {"h": self.height, "w": self.width, "x": 0, "y": 0},
        }
        if self.unit:
            result["fieldConfig"] = {"defaults": {"unit": self.unit}, "overrides": []}
        return result


@dataclass
class TemplateVariable:
    """Dashboard template variable."""

    name: str
    query: str
    label: str = ""
    var_type: str = "query"  # query, custom, interval, datasource
    multi: bool = False
    include_all: bool = False
    refresh: int = 1

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "name": self.name,
            "label": self.label,
            "type": self.var_type,
            "query": self.query,
            "multi": self.multi,
            "includeAll": self.include_all,
            "refresh": self.refresh,
        }
        if self.var_type == "query":
            result["datasource"] = {"type": "prometheus", "uid": DATASOURCE_UID}
        return result


@dataclass
class Dashboard:
    """Complete Grafana dashboard."""

    title: str
    panels: list[Panel] = field(default_factory=list)
    template_variables: list[TemplateVariable] = field(default_factory=list)
    uid: str | None = None
    tags: list[str] = field(default_factory=list)
    time_from: str = "now-6h"
    time_to: str = "now"
    refresh: str = "30s"

    def to_dict(self) -> dict[str, Any]:
        panel_id = 1
        x_pos = y_pos = 0
        panels = []
        for panel in self.panels:
            panel.id = panel_id
            panel_id += 1
            panel_dict = panel.to_dict()
            panel_dict["gridPos"].update({"x": x_pos, "y": y_pos})
            panels.append(panel_dict)
            x_pos += panel.width
            if x_pos >= 24:
                x_pos = 0
                y_pos += panel.height

        dashboard: dict[str, Any] = {
            "title": self.title,
            "panels": panels,
            "editable": True,
            "tags": self.tags,
            "time": {"from": self.time_from, "to": self.time_to},
            "refresh": self.refresh,
            "schemaVersion": 38,
            "version": 0,
            "templating": {"list": [tv.to_dict() for tv in self.template_variables]},
        }
        if self.uid:
            dashboard["uid"] = self.uid
        return dashboard


def recode_label_values(query: str, new_label: str) -> str:
    """Rewrite ``label_values(m{..},x)`` to list ``new_label`` instead of ``x``.

    Raises:
        ValueError: if the query is not a label_values query
    """
    match = _LABEL_VALUES_RE.search(query)
    if not match:
        raise ValueError(f"invalid label_values query: {query!r}")
    metric = match.group("metric")
    if match.group("labels"):
        metric = f"{metric}{{{match.group('labels')}}}"
    return f"label_values({metric},{new_label})"


def provision_dashboard(payload: dict[str, Any]) -> dict[str, Any]:
    """Prepare a dashboard payload for file provisioning.

    Points every panel, query and template variable at the datasource
    variable, prepends that variable, and adds a ``group_name`` variable
    derived from the first label_values variable.
    """
    dashboard = copy.deepcopy(payload)
    variables = dashboard.setdefault("templating", {}).setdefault("list", [])
    variables[:] = [v for v in variables if v.get("name") not in (DATASOURCE_VARIABLE, GROUP_VARIABLE)]

    for variable in variables:
        if variable.get("type", "query") == "query":
            variable["datasource"] = {"type": "prometheus", "uid": DATASOURCE_UID}

    query_vars = [v for v in variables if v.get("type", "query") == "query"]
    if query_vars:
        query = query_vars[0].get("query")
        if isinstance(query, dict):
            query = query.get("query", "")
        variables.insert(
            0,
            TemplateVariable(
                name=GROUP_VARIABLE,
                label="group",
                query=recode_label_values(query or "", GROUP_VARIABLE),
                multi=True,
                include_all=True,
            ).to_dict(),
        )
    variables.insert(
        0,
        {
            "hide": 1,
            "includeAll": False,
            "label": "",
            "multi": False,
            "name": DATASOURCE_VARIABLE,
            "options": [],
            "query": "prometheus",
            "refresh": 1,
            "regex": "",
            "skipUrlSync": False,
            "type": "datasource",
        },
    )

    for panel in dashboard.get("panels", []):
        panel["datasource"] = {"type": "prometheus", "uid": DATASOURCE_UID}
        for target in panel.get("targets", []):
            target["datasource"] = {"type": "prometheus", "uid": DATASOURCE_UID}
    return dashboard


def dashboard_filename(title: str) -> str:
    """File name for a dashboard, stable across runs."""
    return hashlib.sha1(title.encode()).hexdigest() + ".json"

