from pathlib import Path

import networkx as nx
from pyvis.network import Network

from uk_baci_trade_analysis.utils.logging_config import get_logger

logger = get_logger(__name__)

NETWORK_OPTIONS = """
{
  "nodes": {
    "font": { "size": 14 },
    "scaling": { "min": 10, "max": 40 }
  },
  "edges": {
    "smooth": { "enabled": true, "type": "dynamic" },
    "color": { "inherit": false, "color": "#999999" }
  },
  "physics": {
    "enabled": true,
    "barnesHut": {
      "gravitationalConstant": -8000,
      "centralGravity": 0.3,
      "springLength": 200,
      "springConstant": 0.05,
      "damping": 0.75,
      "avoidOverlap": 0.3
    },
    "solver": "barnesHut",
    "stabilization": { "enabled": true, "iterations": 500, "fit": true }
  },
  "interaction": { "hover": true, "tooltipDelay": 200 }
}
"""


def to_display_graph(G: nx.Graph) -> nx.Graph:
    """Copies a correlation graph, adding the vis.js attributes used for display."""
    H = nx.Graph()
    for node, data in G.nodes(data=True):
        cluster = data.get("cluster")
        total_value = data.get("total_value", 0.0)
        H.add_node(
            node,
            label=str(node),
            group=cluster,
            value=total_value,
            title=f"{node}\nCluster {cluster}\nTotal value: {total_value:,.0f}",
        )
    H.add_edges_from(G.edges())
    return H


def build_network(G: nx.Graph, height: str = "750px", width: str = "100%") -> Network:
    """Builds a pyvis network: node colour by cluster, node size by total value."""
    net = Network(height, width, cdn_resources="remote")
    net.from_nx(to_display_graph(G))
    net.set_options(NETWORK_OPTIONS)
    return net


def write_network_html(G: nx.Graph, output_path: str | Path) -> Path:
    """Writes the correlation graph to a standalone interactive HTML file."""
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    net = build_network(G)
    net.write_html(str(output_path), notebook=False)

    logger.info(f"Correlation network written to {output_path}")
    return output_path
