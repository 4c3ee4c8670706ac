"""Command-line entry point: train, certify, make-data."""

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
import time
from typing import Any, Dict, Sequence

import numpy as np

from .barrier import BarrierFunction, FixedTBarrierFunction, LipschitzPosition
from .certificate import certified_lipschitz, trivial_lipschitz
from .data import load_csv_dataset, make_blobs_dataset, one_hot, save_csv_dataset
from .network import ACTIVATIONS, LOSSES, BatchLossOracle
from .optimizer import CentralPathAdam, CentralPathSettings, LoggingObserver, ProgressObserver
from .problem import BarrierTrainingProblem, initial_position
from .topology import Topology

logger = logging.getLogger(__name__)


def _write_json(path: str | Path, record: Dict[str, Any]) -> None:
    Path(path).write_text(json.dumps(record, indent=2))


def _read_json(path: str | Path) -> Dict[str, Any]:
    return json.loads(Path(path).read_text())


def model_record(
    topology: Topology,
    lipschitz: float,
    activation: str,
    position: LipschitzPosition,
    tparams: Sequence[np.ndarray],
) -> Dict[str, Any]:
    record: Dict[str, Any] = {
        "topology": list(topology.widths),
        "lipschitz": float(lipschitz),
        "activation": activation,
    }
    record.update(position.to_record())
    record["tparams"] = [np.asarray(t).tolist() for t in tparams]
    return record


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="lipbarrier", description="Lipschitz-certified training with a log barrier.")
    sub = parser.add_subparsers(dest="command", required=True)

    p_train = sub.add_parser("train", help="Train a network under a certified Lipschitz bound.")
    p_train.add_argument("--file", default=None, help="CSV dataset (features then class label). Default: synthetic blobs.")
    p_train.add_argument("--topology", type=Topology.parse, default=Topology((2, 10, 10, 3)))
    p_train.add_argument("--method", choices=["barrier", "barrier-fixed-t"], default="barrier")
    p_train.add_argument("--feasibility", action="store_true", help="Cap every step by the feasibility line search.")
    p_train.add_argument("--lipschitz", type=float, default=50.0)
    p_train.add_argument("--alpha", type=float, default=0.02)
    p_train.add_argument("--alphadec", type=float, default=0.5)
    p_train.add_argument("--diff", type=float, default=1e-8)
    p_train.add_argument("--threshold", type=float, default=1e-8)
    p_train.add_argument("--window", type=int, default=300)
    p_train.add_argument("--steps", type=int, default=5, help="Central-path stages.")
    p_train.add_argument("--gamma", type=float, default=0.1, help="Initial barrier weight.")
    p_train.add_argument("--gammadec", type=float, default=0.5)
    p_train.add_argument("--beta", type=float, default=5.0, help="Tolerance tightening factor between stages.")
    p_train.add_argument("--beta1", type=float, default=0.9)
    p_train.add_argument("--beta2", type=float, default=0.999)
    p_train.add_argument("--maxiter", type=int, default=100000)
    p_train.add_argument("--tparam", type=float, default=100.0, help="Initial (or fixed) T-parameter value.")
    p_train.add_argument("--initweights", type=float, default=0.1, help="Standard deviation of the initial weights.")
    p_train.add_argument("--batch-size", type=int, default=None, help="Mini-batch size (default: full dataset).")
    p_train.add_argument("--samples", type=int, default=300, help="Synthetic sample count when --file is omitted.")
    p_train.add_argument("--loss", choices=list(LOSSES), default="cross_entropy")
    p_train.add_argument("--activation", choices=list(ACTIVATIONS), default="tanh")
    p_train.add_argument("--seed", type=int, default=0)
    p_train.add_argument("--output", default="model.json")
    p_train.add_argument("--stats", default="stats.json")
    p_train.add_argument("--verbose", action="store_true")
    p_train.set_defaults(func=_cmd_train)

    p_cert = sub.add_parser("certify", help="Print certified and trivial Lipschitz bounds of a saved model.")
    p_cert.add_argument("--model", required=True)
    p_cert.set_defaults(func=_cmd_certify)

    p_data = sub.add_parser("make-data", help="Write a synthetic Gaussian-blob CSV dataset.")
    p_data.add_argument("--output", required=True)
    p_data.add_argument("--samples", type=int, default=300)
    p_data.add_argument("--classes", type=int, default=3)
    p_data.add_argument("--seed", type=int, default=0)
    p_data.set_defaults(func=_cmd_make_data)
    return parser


def _load_training_data(args: argparse.Namespace, topology: Topology) -> tuple[np.ndarray, np.ndarray]:
    if args.file is not None:
        return load_csv_dataset(args.file, topology.input_size, topology.output_size)
    if topology.input_size != 2:
        raise ValueError("synthetic blobs are 2-D; pass --file for other input sizes.")
    inputs, labels = make_blobs_dataset(args.samples, topology.output_size, seed=args.seed)
    return inputs, one_hot(labels, topology.output_size)


def _cmd_train(args: argparse.Namespace) -> int:
    if args.verbose:
        logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    topology: Topology = args.topology
    inputs, targets = _load_training_data(args, topology)
    oracle = BatchLossOracle(
        topology,
        inputs,
        targets,
        batch_size=args.batch_size,
        loss=args.loss,
        activation=args.activation,
    )

    with_tparams = args.method == "barrier"
    rng = np.random.default_rng(args.seed)
    start = initial_position(
        topology,
        rng,
        weight_scale=args.initweights,
        tparam_value=args.tparam,
        with_tparams=with_tparams,
        lipschitz=args.lipschitz,
    )
    if with_tparams:
        barrier = BarrierFunction(topology, args.lipschitz)
    else:
        fixed = [args.tparam * np.ones(n) for n in topology.tparam_sizes]
        barrier = FixedTBarrierFunction(topology, fixed, args.lipschitz)
    problem = BarrierTrainingProblem(oracle, barrier)

    settings = CentralPathSettings(
        max_iter=args.maxiter,
        cpsteps=args.steps,
        diff=args.diff,
        threshold=args.threshold,
        window=args.window,
        gamma=args.gamma,
        alpha=args.alpha,
        beta1=args.beta1,
        beta2=args.beta2,
        beta3=args.beta,
        alphadec=args.alphadec,
        gammadec=args.gammadec,
        feasibility=args.feasibility,
    )
    logger.info("training %s on %d samples, lipschitz=%.4g, method=%s", topology, oracle.num_samples, args.lipschitz, args.method)

    tic = time.perf_counter()
    log_observer = LoggingObserver(level=logging.DEBUG)
    with ProgressObserver(verbose=args.verbose) as progress:

        def observer(record) -> None:
            log_observer(record)
            progress(record)

        result = CentralPathAdam(settings).run(problem, start, observer=observer)
    duration = time.perf_counter() - tic

    position = result.position
    tparams = barrier.tparams_for(position)
    certified = certified_lipschitz(topology, position.weights, tparams)
    summary = oracle.summary(position.weights, position.biases)
    logger.info(
        "done in %.2fs: loss=%.4e accuracy=%.3f certified=%.4g trivial=%.4g",
        duration,
        summary["loss"],
        summary["accuracy"],
        certified,
        trivial_lipschitz(position.weights),
    )

    _write_json(args.output, model_record(topology, args.lipschitz, args.activation, position, tparams))
    stats = result.to_record()
    stats.update(
        {
            "duration": duration,
            "method": args.method,
            "loss": summary["loss"],
            "accuracy": summary["accuracy"],
            "certified_lipschitz": certified,
            "trivial_lipschitz": trivial_lipschitz(position.weights),
        }
    )
    _write_json(args.stats, stats)
    return 0


def _cmd_certify(args: argparse.Namespace) -> int:
    record = _read_json(args.model)
    topology = Topology(tuple(record["topology"]))
    position = LipschitzPosition.from_record(record)
    topology.check_weights(position.weights)
    report = {
        "topology": str(topology),
        "target": record.get("lipschitz"),
        "certified": certified_lipschitz(topology, position.weights, position.tparams),
        "trivial": trivial_lipschitz(position.weights),
    }
    print(json.dumps(report, indent=2))
    return 0


def _cmd_make_data(args: argparse.Namespace) -> int:
    inputs, labels = make_blobs_dataset(args.samples, args.classes, seed=args.seed)
    save_csv_dataset(args.output, inputs, labels)
    print(f"wrote {inputs.shape[0]} samples to {args.output}")
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)
    return int(args.func(args))


if __name__ == "__main__":
    raise SystemExit(main())
