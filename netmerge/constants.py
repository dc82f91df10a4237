import json
from functools import lru_cache
from pathlib import Path

# Arc segments per quarter circle for every buffer built by the pipeline
DEFAULT_QUAD_SEGS = 2

# Buffer widths (m)
DEFAULT_JOIN_DIST = 5.0
DEFAULT_SUBSET_DIST = 5.0
DEFAULT_MERGE_SUBSET_DIST = 20.0

# End cap used when buffering individual target features
DEFAULT_BUFFER_STYLE = "flat"
BUFFER_STYLES = ("flat", "round", "square")

# Endpoints closer than this (m) are treated as the same network node
ENDPOINT_TOLERANCE_M = 0.01

# Auxiliary columns written by the pipeline
LENGTH_Y_COL = "length_y"
LENGTH_X_COL = "length_x"
LENGTH_X_ORIGINAL_COL = "length_x_original"

# Path to default merge parameters JSON
MERGE_PARAMS_PATH = Path(__file__).parent / "merge_parameters.json"


@lru_cache()
def load_merge_params(path: str | Path = MERGE_PARAMS_PATH) -> dict:
    """Load merge parameters (distances, segmentation, aggregation functions)."""
    path = Path(path)
    with path.open("r", encoding="utf-8") as f:
        return json.load(f)
