"""Command line entry point for BrainFusion runs."""

from __future__ import annotations

import argparse
import json
from pathlib import Path
from typing import Iterable

from brainfusion.config import resolve_config
from brainfusion.core.errors import BrainFusionError
from brainfusion.reporting.artifacts import config_hash
from brainfusion.training import pipelines


def _format_result(result, run_id: str | None = None) -> str:
    payload = {
        "steps": result.steps,
        "metrics": result.metrics_path,
        "manifest": result.manifest_path,
    }
    if getattr(result, "summary_path", ""):
        payload["summary"] = result.summary_path
    if getattr(result, "checkpoint_path", ""):
        payload["checkpoint"] = result.checkpoint_path
    if run_id is not None:
        payload["run_id"] = run_id
    return json.dumps(payload, sort_keys=True)


def parse_args(argv: Iterable[str] | None = None) -> argparse.Namespace:
    preset_names = sorted(pipelines.presets().keys())
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--preset",
        choices=preset_names,
        default="xor-dense",
        help="Preset configuration to execute",
    )
    parser.add_argument(
        "--config", type=Path, help="Optional JSON/YAML config override"
    )
    parser.add_argument(
        "--set",
        dest="assignments",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Override a single value, e.g. --set train.lr=0.05 (repeatable)",
    )
    parser.add_argument(
        "--seed",
        type=int,
        help="Seed used for parameter initialisation and data shuffling",
    )
    parser.add_argument("--run-dir", type=Path, help="Directory receiving run artifacts")
    parser.add_argument(
        "--enable-plots", action="store_true", help="Enable plotting adapters"
    )
    parser.add_argument(
        "--list-presets", action="store_true", help="List available presets and exit"
    )
    parser.add_argument(
        "--dump-config", type=Path, help="Dump the resolved config to a JSON file"
    )
    return parser.parse_args(argv)


def main(argv: Iterable[str] | None = None) -> None:
    args = parse_args(argv)

    if args.list_presets:
        for name in sorted(pipelines.presets().keys()):
            print(name)
        raise SystemExit(0)

    try:
        config = resolve_config(
            pipelines.load_preset(args.preset),
            config_file=args.config,
            assignments=args.assignments,
        )
    except BrainFusionError as exc:
        raise SystemExit(f"Invalid configuration: {exc}") from None
    config = json.loads(json.dumps(config))

    train_cfg = config.setdefault("train", {})
    if args.enable_plots:
        train_cfg["enable_plots"] = True
    if args.seed is not None:
        train_cfg["seed"] = int(args.seed)
    if args.run_dir is not None:
        train_cfg["run_dir"] = str(args.run_dir)

    run_id: str | None = None
    if not train_cfg.get("run_dir") and "sweep" not in config:
        run_id = config_hash(config)
        train_cfg["run_dir"] = str(Path(".artifacts") / run_id)

    if args.dump_config:
        args.dump_config.parent.mkdir(parents=True, exist_ok=True)
        args.dump_config.write_text(json.dumps(config, indent=2))

    try:
        result = pipelines.run_pipeline(config)
    except BrainFusionError as exc:
        raise SystemExit(f"{type(exc).__name__}: {exc}") from None

    if isinstance(result, list):
        for item in result:
            print(_format_result(item, run_id=run_id))
    else:
        print(_format_result(result, run_id=run_id))


if __name__ == "__main__":
    main()
