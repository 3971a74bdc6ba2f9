"""Dependency graph export helpers for DOT and simple standalone HTML outputs."""

from __future__ import annotations

import html
import json
from pathlib import Path
from typing import Dict, List

from .entities import DependencyEdge, DependencyGraph, DependencyNode

LANGUAGE_COLORS = {
    "python": "#3572A5",
    "typescript": "#3178c6",
    "javascript": "#f1e05a",
    "go": "#00ADD8",
}


def export_dot(graph: DependencyGraph, output_file: Path, focus: str = "") -> None:
    nodes, edges = _focused_subgraph(graph, focus)
    cyclic = {(c.nodes[i], c.path[i + 1]) for c in graph.cycles for i in range(c.length)}

    lines = ["digraph Dependencies {"]
    lines.append("  rankdir=LR;")
    lines.append("  node [shape=box, style=filled, fontcolor=white];")

    clusters: Dict[str, List[DependencyNode]] = {}
    for node in nodes:
        clusters.setdefault(node.cluster or node.language, []).append(node)

    for index, (cluster, members) in enumerate(sorted(clusters.items())):
        lines.append(f'  subgraph "cluster_{index}" {{')
        lines.append(f'    label="{_esc(cluster)}";')
        for node in members:
            label = f"{_esc(node.type)}\\n{_esc(node.name)}"
            color = LANGUAGE_COLORS.get(node.language, "#777777")
            lines.append(f'    "{_esc(node.id)}" [label="{label}", fillcolor="{color}"];')
        lines.append("  }")

    for edge in edges:
        attrs = f'label="{_esc(edge.type)}"'
        if (edge.source, edge.target) in cyclic:
            attrs += ", color=red"
        if edge.protocol == "http":
            attrs += ", style=dashed"
        lines.append(f'  "{_esc(edge.source)}" -> "{_esc(edge.target)}" [{attrs}];')

    lines.append("}")
    output_file.write_text("\n".join(lines), encoding="utf-8")


def export_html(graph: DependencyGraph, output_file: Path, focus: str = "") -> None:
    nodes, edges = _focused_subgraph(graph, focus)
    payload = {
        "nodes": [
            {
                "id": n.id,
                "label": f"{n.type}: {n.name}",
                "title": n.file,
                "language": n.language,
                "cluster": n.cluster,
            }
            for n in nodes
        ],
        "edges": [
            {"src": e.source, "dst": e.target, "edge_type": e.type, "weight": e.weight}
            for e in edges
        ],
        "cycles": [{"nodes": c.nodes, "severity": c.severity} for c in graph.cycles],
    }
    output_file.write_text(_basic_html_export(payload), encoding="utf-8")


def _basic_html_export(graph_payload: dict) -> str:
    metrics_title = html.escape(
        f"{len(graph_payload['nodes'])} nodes, {len(graph_payload['edges'])} edges, "
        f"{len(graph_payload['cycles'])} cycles"
    )
    return f"""<!doctype html>
<html>
<head>
  <meta charset="utf-8" />
  <title>Dependency Graph</title>
  <style>
    body {{ font-family: ui-monospace, SFMono-Regular, Menlo, monospace; margin: 20px; }}
    #container {{ display: grid; grid-template-columns: 1fr 1fr 1fr; gap: 18px; }}
    .panel {{ border: 1px solid #ddd; border-radius: 8px; padding: 10px; }}
    ul {{ list-style: none; padding: 0; margin: 0; }}
    li {{ margin: 4px 0; }}
    .critical {{ color: #c0392b; }}
    .warning {{ color: #d68910; }}
  </style>
</head>
<body>
  <h1>Dependency Graph</h1>
  <p>{metrics_title}</p>
  <div id="container">
    <div class="panel">
      <h2>Nodes</h2>
      <ul id="nodes"></ul>
    </div>
    <div class="panel">
      <h2>Edges</h2>
      <ul id="edges"></ul>
    </div>
    <div class="panel">
      <h2>Cycles</h2>
      <ul id="cycles"></ul>
    </div>
  </div>
  <script>
    const graph = {json.dumps(graph_payload)};
    const nodesEl = document.getElementById('nodes');
    const edgesEl = document.getElementById('edges');
    const cyclesEl = document.getElementById('cycles');
    graph.nodes.forEach(n => {{
      const li = document.createElement('li');
      li.textContent = `[${{n.language}}] ${{n.label}} (${{n.title}})`;
      nodesEl.appendChild(li);
    }});
    graph.edges.forEach(e => {{
      const li = document.createElement('li');
      li.textContent = `${{e.src}} --${{e.edge_type}}--> ${{e.dst}}`;
      edgesEl.appendChild(li);
    }});
    graph.cycles.forEach(c => {{
      const li = document.createElement('li');
      li.className = c.severity;
      li.textContent = c.nodes.concat([c.nodes[0]]).join(' -> ');
      cyclesEl.appendChild(li);
    }});
  </script>
</body>
</html>
"""


def _focused_subgraph(graph: DependencyGraph, focus: str):
    if not focus:
        return graph.nodes, graph.edges

    focus_ids = {n.id for n in graph.nodes if focus in n.id or focus in n.name}
    if not focus_ids:
        return graph.nodes, graph.edges

    edge_subset: List[DependencyEdge] = [
        e for e in graph.edges if e.source in focus_ids or e.target in focus_ids
    ]
    keep = set(focus_ids)
    for e in edge_subset:
        keep.add(e.source)
        keep.add(e.target)
    return [n for n in graph.nodes if n.id in keep], edge_subset


def _esc(text: str) -> str:
    return text.replace("\\", "\\\\").replace('"', '\\"')
