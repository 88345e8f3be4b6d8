from __future__ import annotations

import argparse
import csv
import json
import sys
import time
from pathlib import Path
from statistics import mean, pstdev

MODES = ["dense", "hebbian", "spiking"]


def _fmt_mu_sigma(vals):
    mu = mean(vals)
    sd = pstdev(vals) if len(vals) > 1 else 0.0
    return f"{mu:.4f} ± {sd:.4f}"


def _bench_dense(seed: int, steps: int, lr: float, hebbian: bool = False) -> dict:
    import numpy as np

    from brainfusion.core.dense import BrainFusionNet
    from brainfusion.data.logic import truth_table

    inputs, targets = truth_table("xor")
    net = BrainFusionNet([2, 3, 1], seed=seed)
    losses = []
    start = time.perf_counter()
    for step in range(steps):
        idx = step % len(inputs)
        if hebbian:
            net.train_hebbian(inputs[idx], lr)
        else:
            losses.append(net.backpropagate(inputs[idx], targets[idx], lr))
    elapsed = time.perf_counter() - start
    preds = net.predict(inputs)
    final_loss = float(np.mean((preds - targets) ** 2))
    final_acc = float(np.mean((preds >= 0.5) == (targets >= 0.5)))
    return {
        "steps_per_sec": steps / elapsed if elapsed > 0 else float("inf"),
        "final_loss": final_loss,
        "final_acc": final_acc,
        "converged": bool(final_loss < 0.05),
    }


def _bench_spiking(seed: int, steps: int, neurons: int) -> dict:
    import numpy as np

    from brainfusion.core.spiking import SpikingNet
    from brainfusion.training.metrics import spike_metrics

    net = SpikingNet(neurons, seed=seed)
    rng = np.random.default_rng(seed)
    stimulus = (rng.random((steps, neurons)) < 0.2).astype(np.float64) * 0.6
    raster = np.zeros((steps, neurons), dtype=bool)
    start = time.perf_counter()
    for t in range(steps):
        raster[t] = net.step(stimulus[t], 1.0)
    elapsed = time.perf_counter() - start
    stats = spike_metrics(raster, 1.0)
    return {
        "steps_per_sec": steps / elapsed if elapsed > 0 else float("inf"),
        "final_loss": 0.0,
        "final_acc": 0.0,
        "firing_rate": stats["firing_rate"],
        "converged": False,
    }


def main():
    root = Path(__file__).resolve().parents[1]
    if str(root) not in sys.path:
        sys.path.insert(0, str(root))

    ap = argparse.ArgumentParser()
    ap.add_argument("--seeds", nargs="+", type=int, default=[0, 1, 2])
    ap.add_argument("--steps", type=int, default=2000)
    ap.add_argument("--lr", type=float, default=0.5)
    ap.add_argument("--neurons", type=int, default=64)
    ap.add_argument("--out", type=str, default=".artifacts/bench")
    args = ap.parse_args()

    out = Path(args.out)
    out.mkdir(parents=True, exist_ok=True)
    runs = []
    for mode in MODES:
        for s in args.seeds:
            if mode == "spiking":
                r = _bench_spiking(s, args.steps, args.neurons)
            else:
                r = _bench_dense(s, args.steps, args.lr, hebbian=mode == "hebbian")
            runs.append({"mode": mode, "seed": s, **r})
    (out / "results.jsonl").write_text(
        "\n".join(json.dumps(x) for x in runs), encoding="utf-8"
    )

    agg = {}
    for mode in MODES:
        rows = [r for r in runs if r["mode"] == mode]
        rates = [r["steps_per_sec"] for r in rows]
        losses = [r["final_loss"] for r in rows]
        agg[mode] = {
            "n": len(rows),
            "steps_per_sec_mu": mean(rates),
            "steps_per_sec_sd": pstdev(rates) if len(rates) > 1 else 0.0,
            "final_loss_mu": mean(losses),
            "final_loss_sd": pstdev(losses) if len(losses) > 1 else 0.0,
            "converged": sum(1 for r in rows if r["converged"]),
        }

    csv_path = out / "bench_micro.csv"
    with csv_path.open("w", newline="", encoding="utf-8") as f:
        w = csv.writer(f)
        w.writerow(
            [
                "mode",
                "seeds",
                "steps",
                "steps_per_sec_mu",
                "steps_per_sec_sd",
                "final_loss_mu",
                "final_loss_sd",
                "converged",
            ]
        )
        for mode in MODES:
            a = agg[mode]
            w.writerow(
                [
                    mode,
                    a["n"],
                    args.steps,
                    f"{a['steps_per_sec_mu']:.1f}",
                    f"{a['steps_per_sec_sd']:.1f}",
                    f"{a['final_loss_mu']:.4f}",
                    f"{a['final_loss_sd']:.4f}",
                    a["converged"],
                ]
            )

    md_path = out / "bench_micro.md"
    lines = []
    lines.append("### Micro-Benchmark: Backprop vs Hebbian vs Spiking step throughput")
    lines.append("")
    seeds_line = (
        f"- Seeds: `{args.seeds}`; Steps: `{args.steps}`; "
        f"LR: `{args.lr}`; Neurons: `{args.neurons}`"
    )
    lines.append(seeds_line)
    lines.append("")
    lines.append("| Mode | Steps/s (μ±σ) | XOR Loss (μ±σ) | Converged | Seeds | Steps |")
    lines.append("|---|---:|---:|---:|---:|---:|")
    for mode in MODES:
        rates = [r["steps_per_sec"] for r in runs if r["mode"] == mode]
        fl = [r["final_loss"] for r in runs if r["mode"] == mode]
        converged = agg[mode]["converged"] if mode == "dense" else "-"
        metric_line = (
            f"| {mode.upper()} | {_fmt_mu_sigma(rates)} | {_fmt_mu_sigma(fl)} | "
            f"{converged} | {agg[mode]['n']} | {args.steps} |"
        )
        lines.append(metric_line)
    md_path.write_text("\n".join(lines), encoding="utf-8")
    print("Wrote:", csv_path, md_path)


if __name__ == "__main__":
    main()
