#!/usr/bin/env python3
"""
Weather-Code Strategy Comparison for NWP Consensus

Runs every weather-code strategy over the same multi-model payload and
prints one column per strategy, so disagreements between e.g. bary and
smart_bary rounding show up hour by hour.

This script:
1. Loads the weather_code parameter config from the config directory
2. Builds the hourly frame from a forecast payload (Open-Meteo layout)
3. Prints the consensus code of each strategy per hour, flagging hours
   where the strategies disagree

Usage:
    python scripts/compare_wmo_algorithms.py forecast.json
    python scripts/compare_wmo_algorithms.py forecast.json --config-dir config --only-diff
"""

import argparse
import json
import sys
from collections import Counter
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from nwp_consensus.config import WmoAlgorithm, load_config_dir
from nwp_consensus.ensemble import ConsensusEngine
from nwp_consensus.wmo_algorithms import aggregate_wmo, clean_codes
from nwp_consensus.wmo_tables import weather_code_to_condition

SHORT_NAMES = {
    WmoAlgorithm.MODE: "mode",
    WmoAlgorithm.SEVERITY_GROUPS: "sevgrp",
    WmoAlgorithm.MAX_SEVERITY: "max",
    WmoAlgorithm.MEDIAN: "median",
    WmoAlgorithm.REMAPPED_MEDIAN: "remap",
    WmoAlgorithm.BARY: "bary",
    WmoAlgorithm.SMART_BARY: "smart",
}


def compare(payload_path: Path, config_dir: Path, only_diff: bool = False):
    """Print the per-hour strategy comparison table."""
    configs = load_config_dir(config_dir)
    wmo_config = next((c for c in configs.values() if c.wmo is not None), None)
    if wmo_config is None:
        print(f"ERROR: No weather_code config found in {config_dir}")
        return

    with open(payload_path, 'r', encoding='utf-8') as f:
        payload = json.load(f)

    df = ConsensusEngine.hourly_frame(payload)

    print("=" * 78)
    print(f"WEATHER-CODE STRATEGY COMPARISON - {payload_path.name}")
    print(f"Models: {', '.join(m.label for m in wmo_config.enabled_models)}")
    print("=" * 78)
    print()

    header = f"{'Time':<18}" + "".join(f"{SHORT_NAMES[a]:>8}" for a in WmoAlgorithm) + "  codes"
    print(header)
    print("-" * len(header))

    disagreements = 0
    winners = Counter()
    for h, timestamp in enumerate(df["time"]):
        codes = clean_codes(s.value for s in ConsensusEngine.collect_samples(df, h, wmo_config))
        if not codes:
            continue

        results = {a: aggregate_wmo(codes, wmo_config.wmo, algorithm=a).code for a in WmoAlgorithm}
        distinct = set(results.values())
        if len(distinct) > 1:
            disagreements += 1
        elif only_diff:
            continue

        winners.update(distinct)
        flag = " <--" if len(distinct) > 1 else ""
        row = f"{str(timestamp):<18}" + "".join(f"{results[a]:>8}" for a in WmoAlgorithm)
        print(f"{row}  {sorted(codes)}{flag}")

    print()
    print(f"Hours where strategies disagree: {disagreements}")
    print()
    print("CODES SELECTED BY AT LEAST ONE STRATEGY:")
    print("-" * 50)
    for code, n in winners.most_common():
        print(f"  {code:>3} {weather_code_to_condition(code):<30} {n} hour(s)")


def main():
    parser = argparse.ArgumentParser(description='Compare weather-code consensus strategies')
    parser.add_argument('payload', type=Path, help='Hourly multi-model forecast JSON')
    parser.add_argument('--config-dir', type=Path, default=Path("config"))
    parser.add_argument('--only-diff', action='store_true', help='Only print hours where strategies disagree')
    args = parser.parse_args()

    compare(args.payload, args.config_dir, args.only_diff)


if __name__ == "__main__":
    main()
