#!/usr/bin/env python3
"""Run a range simulation from YAML configuration.

Loads a base config (plus optional scenario override), runs the driver and
prints per-stage totals at the start and end of the run.

Usage:
    python scripts/run_simulation.py configs/default.yaml
    python scripts/run_simulation.py configs/default.yaml --scenario pairwise.yaml
    python scripts/run_simulation.py configs/default.yaml --seed 7 --nsteps 50 --perf
"""

import argparse
import sys
from pathlib import Path

# ── Project imports ──────────────────────────────────────────────────
PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(PROJECT_ROOT))

from rangesim.config import load_config
from rangesim.model import run_simulation
from rangesim.perf import PerfMonitor


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument('config', type=Path, help='Base configuration YAML')
    parser.add_argument('--scenario', type=Path, default=None,
                        help='Scenario override YAML')
    parser.add_argument('--seed', type=int, default=None,
                        help='Override simulation.seed')
    parser.add_argument('--nsteps', type=int, default=None,
                        help='Override simulation.nsteps')
    parser.add_argument('--deterministic', action='store_true',
                        help='Expected-value run (simulation.stochastic = false)')
    parser.add_argument('--perf', action='store_true',
                        help='Print per-operator timing')
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)

    overrides = {'simulation': {}}
    if args.seed is not None:
        overrides['simulation']['seed'] = args.seed
    if args.nsteps is not None:
        overrides['simulation']['nsteps'] = args.nsteps
    if args.deterministic:
        overrides['simulation']['stochastic'] = False

    config = load_config(args.config, scenario_path=args.scenario,
                         overrides=overrides)
    perf = PerfMonitor(enabled=args.perf)

    def progress(step, nsteps):
        if (step + 1) % max(1, nsteps // 10) == 0:
            print(f"  step {step + 1}/{nsteps}")

    result = run_simulation(config, perf=perf, progress_callback=progress)

    print(f"mode={result.mode} stochastic={result.stochastic} "
          f"seed={result.seed} nsteps={result.nsteps}")
    print(f"stage totals (start): {result.stage_totals[0].tolist()}")
    print(f"stage totals (end):   {result.stage_totals[-1].tolist()}")
    print(f"occupied cells: {result.occupied_cells}  extinct: {result.extinct}")
    if args.perf:
        print(perf.report())
    return 0


if __name__ == '__main__':
    sys.exit(main())
