#!/usr/bin/env python3

import argparse
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent / "api"))

from course_store import load_courses  # noqa: E402
from depth_index import build_adjacency, detect_cycles, get_bottleneck_courses  # noqa: E402
from graph_engine import GraphEngine  # noqa: E402
from graph_render import print_snapshot_analysis, render_snapshot, snapshot_frames  # noqa: E402
from graph_settings import GraphSettings, course_data_path  # noqa: E402
from prereq_groups import format_prerequisites  # noqa: E402


def build_prereq_graph(data_path: str, root: str, max_depth=None,
                       use_parent_anchors: bool = True, verbose: bool = True):
    """Load the export, open the prerequisite tree under root and lay it out."""
    index = load_courses(data_path, verbose=verbose)
    if root not in index:
        print(f"Warning: {root} is not in the course data; graph will only contain the root")

    settings = GraphSettings(animate=False, use_parent_anchors=use_parent_anchors)
    engine = GraphEngine(index=index, settings=settings)
    engine.set_root(root)
    engine.expand(max_depth=max_depth)

    if verbose:
        groups = index.extract_alternative_groups(root)
        print(f"{engine.root_id} requires: {format_prerequisites(groups) or 'None'}")
        state = engine.snapshot()
        print(f"Expanded {len(state.nodes)} courses, {len(state.edges)} prerequisite edges")

    return engine


def main():
    ap = argparse.ArgumentParser(description="Lay out the prerequisite graph of one course")
    ap.add_argument("--data", default=course_data_path(), help="Path to course export JSON")
    ap.add_argument("--root", required=True, help="Root course, e.g. \"ECON 201\"")
    ap.add_argument("--max-depth", type=int, default=None, help="Levels to expand below the root")
    ap.add_argument("--no-anchors", action="store_true", help="Evenly space every ring")
    ap.add_argument("--nodes-out", required=True, help="Output path for node table (CSV)")
    ap.add_argument("--edges-out", required=True, help="Output path for edge table (CSV)")
    ap.add_argument("--png", default=None, help="Optional path for a rendered PNG")

    args = ap.parse_args()

    engine = build_prereq_graph(args.data, args.root, max_depth=args.max_depth,
                                use_parent_anchors=not args.no_anchors)
    state = engine.snapshot()

    nodes_df, edges_df = snapshot_frames(state, engine.depths)
    nodes_df.to_csv(args.nodes_out, index=False)
    edges_df.to_csv(args.edges_out, index=False)
    print(f"Node table written: {args.nodes_out} ({len(nodes_df)} rows)")
    print(f"Edge table written: {args.edges_out} ({len(edges_df)} rows)")

    if args.png:
        render_snapshot(state, engine.depths, save_path=args.png)

    print()
    print_snapshot_analysis(state, engine.depths, top_n=5)

    adjacency = build_adjacency(engine.index)
    cycles = detect_cycles(adjacency)
    if cycles:
        print(f"\nWARNING: Found {len(cycles)} prerequisite cycles!")
        for cycle in cycles[:3]:
            print(f"  {' -> '.join(cycle)}")

    print("\nMost required courses in this graph:")
    for course_id, data in get_bottleneck_courses(adjacency, list(state.nodes), top_n=5).items():
        print(f"  {course_id}: required by {data['blocks']} courses")


if __name__ == "__main__":
    main()
