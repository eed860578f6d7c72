"""
NWP Consensus: Hourly Multi-Model Aggregation

Reads a multi-model hourly forecast payload (Open-Meteo layout), runs the
consensus engine for every parameter configured under the config
directory, and writes the aggregated hourly series as JSON.

Parameters: weather code, precipitation (mm + PoP), wind, temperature,
apparent temperature, humidity (one JSON config file each).

Usage:
    python main.py forecast.json
    python main.py forecast.json --config-dir config --output outputs/consensus.json --slots
"""

import argparse
import json
import logging
import os
import sys
from datetime import datetime
from pathlib import Path

from dotenv import load_dotenv

from nwp_consensus.config import ConfigError, get_config_dir, load_config_dir
from nwp_consensus.ensemble import ConsensusEngine

# Load environment variables
load_dotenv()

# Ensure logs directory exists
os.makedirs("logs", exist_ok=True)

# Configure logging
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO"),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.FileHandler("logs/nwp_consensus.log", mode='a', encoding='utf-8'),
        logging.StreamHandler(sys.stderr)
    ]
)
logger = logging.getLogger(__name__)


def parse_args(argv=None):
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description='NWP Consensus - hourly multi-model weather aggregation'
    )
    parser.add_argument('payload', type=Path,
                        help='Hourly multi-model forecast JSON (Open-Meteo layout)')
    parser.add_argument('--config-dir', type=Path, default=None,
                        help='Parameter config directory (default: $NWP_CONSENSUS_CONFIG_DIR or ./config)')
    parser.add_argument('--output', '-o', type=Path, default=None,
                        help='Write the JSON summary here instead of stdout')
    parser.add_argument('--slots', action='store_true',
                        help='Also aggregate weather code / precipitation into 6-hour tranches')
    parser.add_argument('--parameter', action='append', default=None,
                        help='Only process this parameter (repeatable)')
    return parser.parse_args(argv)


def run(args) -> dict:
    """Load configs + payload, run the engine, return the JSON-ready summary."""
    config_dir = args.config_dir or get_config_dir()
    configs = load_config_dir(config_dir)

    if args.parameter:
        unknown = set(args.parameter) - set(configs)
        if unknown:
            raise ConfigError(f"Unknown parameters: {sorted(unknown)}. Configured: {sorted(configs)}")
        configs = {name: configs[name] for name in args.parameter}

    logger.info(f"[main] Reading payload {args.payload}")
    with open(args.payload, 'r', encoding='utf-8') as f:
        payload = json.load(f)

    engine = ConsensusEngine(configs)
    results = engine.process_all(payload)

    output = {
        "generated_at": datetime.now().isoformat(timespec='seconds'),
        "config_dir": str(config_dir),
        "parameters": {name: result.to_dict() for name, result in results.items()},
    }

    if args.slots:
        slots = engine.build_time_slots(results)
        output["time_slots"] = {
            date: [slot.to_dict() for slot in day]
            for date, day in slots.items()
        }

    return output


def main(argv=None) -> int:
    args = parse_args(argv)
    start_time = datetime.now()

    try:
        output = run(args)
        text = json.dumps(output, indent=2, ensure_ascii=False, default=str)

        if args.output:
            args.output.parent.mkdir(parents=True, exist_ok=True)
            args.output.write_text(text, encoding='utf-8')
            logger.info(f"[main] Summary saved to: {args.output}")
        else:
            print(text)

        duration = (datetime.now() - start_time).total_seconds()
        logger.info(f"[main] Done: {len(output['parameters'])} parameters in {duration:.2f} seconds")
        return 0

    except ConfigError as e:
        logger.error(f"[main] Configuration error: {e}")
        return 2

    except Exception as e:
        logger.error(f"FAILED: {e}", exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
