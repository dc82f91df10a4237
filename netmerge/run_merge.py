import argparse
import logging
import os
from dataclasses import replace
from typing import Dict, List, Optional, Sequence

import geopandas as gpd

from netmerge.conflation.merge import MergeConfig, rnet_merge
from netmerge.constants import MERGE_PARAMS_PATH, load_merge_params
from netmerge.logging_config import configure_logging
from netmerge.network_utils.geometry_utils import to_metric_crs

logger = logging.getLogger(__name__)


def parse_funs(items: Optional[List[str]]) -> Optional[Dict[str, str]]:
    """Parse ['flow=sum', 'quietness=mean'] into {'flow': 'sum', 'quietness': 'mean'}."""
    if not items:
        return None
    funs = {}
    for item in items:
        col, sep, fn = item.partition("=")
        if not sep or not col or not fn:
            raise ValueError(f"Expected COLUMN=FUNCTION, got {item!r}")
        funs[col.strip()] = fn.strip()
    return funs


def run_merge(
    target_path: str,
    source_path: str,
    output_path: str,
    cfg: Optional[MergeConfig] = None,
) -> gpd.GeoDataFrame:
    """
    Read target and source networks, merge source attributes onto the
    target and write the result.

    Geographic inputs are reprojected to the target's estimated UTM zone;
    the output stays in that projected CRS.
    """
    if cfg is None:
        cfg = MergeConfig.from_params(load_merge_params())

    logger.info("Reading target network from %s", target_path)
    target = to_metric_crs(gpd.read_file(target_path))
    logger.info("Reading source network from %s", source_path)
    source = gpd.read_file(source_path)
    if source.crs is not None and target.crs is not None and source.crs != target.crs:
        source = source.to_crs(target.crs)

    merged = rnet_merge(target, source, **cfg.merge_kwargs())

    out_dir = os.path.dirname(output_path)
    if out_dir:
        os.makedirs(out_dir, exist_ok=True)
    if os.path.exists(output_path):
        os.remove(output_path)
    merged.to_file(output_path)
    logger.info("Wrote %d merged features to %s", len(merged), output_path)
    return merged


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Transfer attributes from a source route network onto target geometry."
    )
    parser.add_argument("target", help="target network (geometry kept), any format geopandas reads")
    parser.add_argument("source", help="source network (attributes transferred)")
    parser.add_argument("output", help="output file, e.g. merged.gpkg")

    parser.add_argument('--params', type=str, default=str(MERGE_PARAMS_PATH),
                        help='JSON file with default merge parameters')
    parser.add_argument('--dist', type=float, help='buffer width around target features (m)')
    parser.add_argument('--subset-dist', type=float, help='buffer width for subsetting the target (m)')
    parser.add_argument('--segment-length', type=float,
                        help='split source lines into segments of at most this length (m); 0 = no split')
    parser.add_argument('--buffer-style', choices=["flat", "round", "square"])
    parser.add_argument('--key-column', type=str, help='name of the target key column')
    parser.add_argument('--fun', action='append', metavar='COLUMN=FUNCTION',
                        help="aggregation per column, e.g. flow=sum or quietness=mean; repeatable")
    parser.add_argument('--no-sum-flows', action='store_true',
                        help='plain sums for additive columns, no length weighting or rescaling')
    parser.add_argument('--no-subset', action='store_true', help='do not subset the target first')
    parser.add_argument('--keep-disconnected', action='store_true',
                        help='keep disconnected fragments after subsetting')
    parser.add_argument('--log-dir', type=str, help='directory for run.log')
    parser.add_argument('--verbose', action='store_true', help='debug output on the console')
    return parser


def main(argv: Optional[Sequence[str]] = None) -> gpd.GeoDataFrame:
    args = build_parser().parse_args(argv)

    configure_logging(args.log_dir, console_level=logging.DEBUG if args.verbose else logging.INFO)

    cfg = MergeConfig.from_params(load_merge_params(args.params))

    overrides = {
        "dist": args.dist,
        "subset_dist": args.subset_dist,
        "segment_length": args.segment_length,
        "buffer_style": args.buffer_style,
        "key_column": args.key_column,
        "funs": parse_funs(args.fun),
    }
    cfg = replace(cfg, **{k: v for k, v in overrides.items() if v is not None})
    if args.no_sum_flows:
        cfg = replace(cfg, sum_flows=False)
    if args.no_subset:
        cfg = replace(cfg, subset_target=False)
    if args.keep_disconnected:
        cfg = replace(cfg, remove_disconnected=False)

    logger.debug("Using %s", cfg)
    return run_merge(args.target, args.source, args.output, cfg=cfg)


if __name__ == "__main__":
    main()
