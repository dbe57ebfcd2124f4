#!/usr/bin/env python3
"""
Static rendering and analysis of graph snapshots.

Draws the nodes and edges of a GraphState at their laid-out coordinates with
matplotlib/networkx; nothing here feeds back into the engine.
"""

from typing import Dict, Optional, Tuple

import matplotlib.pyplot as plt
import networkx as nx
import numpy as np
import pandas as pd
from matplotlib import colormaps
from matplotlib.colors import Normalize
from matplotlib.patches import Patch

from graph_state import GraphState


# ============================================================================
# CONVERSION
# ============================================================================

def snapshot_graph(state: GraphState, depths: Optional[Dict[str, int]] = None) -> nx.DiGraph:
    """
    Build a NetworkX graph from a snapshot.

    Args:
        state: Current graph snapshot
        depths: Depth map from build_depths() (missing ids count as 0)

    Returns:
        DiGraph with edges course -> prerequisite and node attributes
        title, depth, persisted, pinned
    """
    depths = depths or {}
    G = nx.DiGraph()
    for node_id, node in state.nodes.items():
        G.add_node(
            node_id,
            title=node.subtitle or "",
            depth=depths.get(node_id, 0),
            persisted=node.persisted,
            pinned=node.pinned or node.hover_pinned,
        )
    for edge in state.edges.values():
        G.add_edge(edge.source, edge.target, ephemeral=edge.ephemeral)
    return G


def snapshot_positions(state: GraphState) -> Dict[str, Tuple[float, float]]:
    """Node coordinates flipped to matplotlib's y-up axis; unplaced nodes sit at 0,0"""
    return {
        node_id: (node.x or 0.0, -(node.y or 0.0))
        for node_id, node in state.nodes.items()
    }


def snapshot_frames(state: GraphState,
                    depths: Optional[Dict[str, int]] = None) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """Node and edge tables for CSV export"""
    depths = depths or {}
    nodes = pd.DataFrame([
        {
            "Course ID": node.id,
            "Title": node.subtitle or "",
            "Depth": depths.get(node.id, 0),
            "Primary Parent": node.primary_parent_id or "",
            "X": node.x,
            "Y": node.y,
            "Persisted": node.persisted,
        }
        for node in state.nodes.values()
    ], columns=["Course ID", "Title", "Depth", "Primary Parent", "X", "Y", "Persisted"])
    edges = pd.DataFrame([
        {"Course": e.source, "Prerequisite": e.target, "Ephemeral": e.ephemeral}
        for e in state.edges.values()
    ], columns=["Course", "Prerequisite", "Ephemeral"])
    nodes = nodes.sort_values(["Depth", "Course ID"]).reset_index(drop=True)
    edges = edges.sort_values(["Course", "Prerequisite"]).reset_index(drop=True)
    return nodes, edges


def build_adjacency_matrix(state: GraphState) -> pd.DataFrame:
    """
    Adjacency matrix of the visible graph as a DataFrame.

    Row = course, column = prerequisite, 1 where an edge is shown.
    """
    courses = sorted(state.nodes)
    index_map = {c: i for i, c in enumerate(courses)}
    mat = np.zeros((len(courses), len(courses)), dtype=int)
    for edge in state.edges.values():
        mat[index_map[edge.source], index_map[edge.target]] = 1
    return pd.DataFrame(mat, index=courses, columns=courses)


# ============================================================================
# ANALYSIS
# ============================================================================

def analyze_snapshot(state: GraphState, depths: Optional[Dict[str, int]] = None,
                     top_n: int = 10) -> Dict:
    """
    Key statistics for the visible graph.

    Args:
        state: Current graph snapshot
        depths: Depth map from build_depths()
        top_n: Number of top courses to return in rankings

    Returns:
        Dictionary with analysis results
    """
    G = snapshot_graph(state, depths)
    prereq_counts = {node: G.out_degree(node) for node in G.nodes()}
    dependent_counts = {node: G.in_degree(node) for node in G.nodes()}
    node_depths = [data["depth"] for _, data in G.nodes(data=True)]

    return {
        "total_courses": G.number_of_nodes(),
        "total_prerequisites": G.number_of_edges(),
        "courses_with_most_prereqs": sorted(
            prereq_counts.items(), key=lambda x: (-x[1], x[0]))[:top_n],
        "most_required_courses": sorted(
            dependent_counts.items(), key=lambda x: (-x[1], x[0]))[:top_n],
        "max_depth": max(node_depths) if node_depths else 0,
        "avg_depth": float(np.mean(node_depths)) if node_depths else 0.0,
    }


def print_snapshot_analysis(state: GraphState, depths: Optional[Dict[str, int]] = None,
                            top_n: int = 10):
    """Print a formatted analysis of a graph snapshot"""
    analysis = analyze_snapshot(state, depths, top_n=top_n)

    print("=" * 70)
    print(f"PREREQUISITE GRAPH ANALYSIS: {state.root_id}")
    print("=" * 70)

    print("\nOverview:")
    print(f"  Visible Courses: {analysis['total_courses']}")
    print(f"  Visible Prerequisite Edges: {analysis['total_prerequisites']}")
    print(f"  Max Depth: {analysis['max_depth']}")
    print(f"  Avg Depth: {analysis['avg_depth']:.2f}")

    print("\nCourses with Most Prerequisites Shown:")
    for course_id, count in analysis["courses_with_most_prereqs"]:
        if count > 0:
            print(f"  {course_id}: {count} prerequisites")

    print("\nMost Required Courses:")
    for course_id, count in analysis["most_required_courses"]:
        if count > 0:
            print(f"  {course_id}: required by {count} courses")

    print("=" * 70)


# ============================================================================
# DRAWING
# ============================================================================

def render_snapshot(state: GraphState,
                    depths: Optional[Dict[str, int]] = None,
                    color_by: str = "depth",
                    figsize: tuple = (20, 15),
                    title: Optional[str] = None,
                    save_path: Optional[str] = None,
                    show: bool = False,
                    verbose: bool = True) -> tuple:
    """
    Draw a snapshot at its laid-out positions.

    Args:
        state: Graph snapshot (positions already computed)
        depths: Depth map used for colouring
        color_by: "depth", "persisted", or "uniform"
        figsize: Figure size (width, height)
        title: Graph title (auto-generated if None)
        save_path: Path to save figure (e.g., "graph.png")
        show: Whether to display the figure
        verbose: Print where the figure was saved

    Returns:
        tuple: (figure, axis, graph, positions)

    Raises:
        ValueError: If color_by is unknown
    """
    G = snapshot_graph(state, depths)
    pos = snapshot_positions(state)
    legend_elements = None

    if color_by == "depth":
        node_depths = [G.nodes[n]["depth"] for n in G.nodes()]
        max_depth = max(node_depths) if node_depths else 1
        cmap = colormaps["viridis"]
        norm = Normalize(vmin=0, vmax=max(max_depth, 1))
        node_colors = [cmap(norm(d)) for d in node_depths]
    elif color_by == "persisted":
        palette = {True: "#2196F3", False: "#BDBDBD"}
        node_colors = [palette[G.nodes[n]["persisted"]] for n in G.nodes()]
        legend_elements = [Patch(facecolor=palette[True], label="Opened"),
                           Patch(facecolor=palette[False], label="Preview")]
    elif color_by == "uniform":
        node_colors = "lightblue"
    else:
        raise ValueError(
            f"Unknown color_by: {color_by}. Use 'depth', 'persisted', or 'uniform'")

    fig, ax = plt.subplots(figsize=figsize)

    solid = [(u, v) for u, v, d in G.edges(data=True) if not d["ephemeral"]]
    dashed = [(u, v) for u, v, d in G.edges(data=True) if d["ephemeral"]]
    nx.draw_networkx_nodes(G, pos, ax=ax, node_color=node_colors, node_shape="s",
                           node_size=3000, linewidths=2)
    nx.draw_networkx_labels(G, pos, ax=ax, font_size=8, font_weight="bold")
    nx.draw_networkx_edges(G, pos, ax=ax, edgelist=solid, arrows=True,
                           arrowsize=20, edge_color="gray")
    if dashed:
        nx.draw_networkx_edges(G, pos, ax=ax, edgelist=dashed, arrows=True,
                               arrowsize=20, edge_color="gray", style="dashed")

    if title is None:
        title = f"{state.root_id} - Prerequisite Graph"
    ax.set_title(title, fontsize=16, fontweight="bold")
    ax.axis("off")

    if legend_elements:
        ax.legend(handles=legend_elements, loc="upper right")

    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches="tight")
        if verbose:
            print(f"Graph saved to: {save_path}")

    if show:
        plt.show()

    return fig, ax, G, pos
