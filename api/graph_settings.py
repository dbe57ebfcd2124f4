#!/usr/bin/env python3
"""
Settings for the interactive prerequisite graph
"""

import os

from pydantic import BaseModel

ROOT_SIZE = (320.0, 140.0)
NODE_SIZE = (300.0, 120.0)
MIN_BOX_HEIGHT = 100.0

HIGHLIGHT_SECONDS = 0.6
FRAME_SECONDS = 1.0 / 60.0

DEFAULT_DATA_PATH = "sfu-verified-courses.json"


class GraphSettings(BaseModel):
    ring_base: float = 50
    ring_step: float = 350
    iterations: int = 32
    pull_alpha: float = 0.40
    sep_padding: float = 16
    ring_spring: float = 0.15
    clamp_pad: float = 24
    ring_spacing_pad: float = 16
    iters_per_frame: int = 2
    settle_passes: int = 200
    use_parent_anchors: bool = True
    animate: bool = True
    show_min_grade: bool = False

    def merged(self, **changes) -> "GraphSettings":
        """Copy with the given fields replaced (None values are ignored)"""
        data = self.model_dump()
        data.update({k: v for k, v in changes.items() if v is not None})
        return GraphSettings(**data)


def course_data_path() -> str:
    return os.environ.get("COURSE_DATA_PATH", DEFAULT_DATA_PATH)


def export_api_key():
    return os.environ.get("CROWDSOURCE_API_KEY")


def export_url():
    return os.environ.get("COURSE_EXPORT_URL")
