#!/usr/bin/env python3

import argparse
import json
import sys
from pathlib import Path

import pandas as pd

sys.path.insert(0, str(Path(__file__).resolve().parent / "api"))

from course_store import build_index, courses_frame  # noqa: E402
from requirement_tree import make_course_id  # noqa: E402

KEEP_COLS = ["dept", "number", "title", "prerequisites", "parsed_prerequisites"]


#basic cleaning of a raw course export
def clean_course_export(payload) -> pd.DataFrame:

    df = courses_frame(payload)

    #drop columns the graph never reads
    df = df[[c for c in KEEP_COLS if c in df.columns]].copy()

    #remove extra spaces, upper-case codes
    for col in ["dept", "number"]:
        df[col] = df[col].fillna("").astype(str).str.strip().str.upper()
        df[col] = df[col].str.replace(r"\s+", " ", regex=True)
    df["number"] = df["number"].str.replace(r"\.0$", "", regex=True)
    df["title"] = df["title"].fillna("").astype(str).str.strip()

    #rows without a course code cannot be looked up
    df = df[(df["dept"] != "") & (df["number"] != "")]

    #first record wins for duplicate courses
    df["course_id"] = [make_course_id(d, n) for d, n in zip(df["dept"], df["number"])]
    df = df.drop_duplicates(subset=["course_id"], keep="first")

    df = df.sort_values("course_id").reset_index(drop=True)
    return df.astype(object).where(pd.notna(df), None)


def trim_to_root(df: pd.DataFrame, root: str) -> pd.DataFrame:
    """Keep only the courses reachable from root through prerequisites"""
    index = build_index(df)
    keep = {course.course_id for course in index.collect_graph_courses(root)}
    return df[df["course_id"].isin(keep)].reset_index(drop=True)


def main():
    ap = argparse.ArgumentParser(description="Clean a raw course export into canonical records")
    ap.add_argument("--input", required=True, help="Path to raw export JSON")
    ap.add_argument("--out", required=True, help="Output path for cleaned JSON")
    ap.add_argument("--root", default=None, help="Only keep courses reachable from this course")

    args = ap.parse_args()

    with open(args.input, encoding="utf-8") as fh:
        payload = json.load(fh)

    df = clean_course_export(payload)
    print(f"Cleaned export: {len(df)} courses")

    if args.root:
        df = trim_to_root(df, args.root)
        print(f"Trimmed to {len(df)} courses reachable from {args.root}")

    records = df.drop(columns=["course_id"]).to_dict("records")
    with open(args.out, "w", encoding="utf-8") as fh:
        json.dump(records, fh, indent=2)
    print(f"Cleaned export written: {args.out}")


if __name__ == "__main__":
    main()
