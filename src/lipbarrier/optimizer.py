"""Central-path Adam: Adam inner loops over a decreasing barrier weight."""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import Callable, Dict, List, Optional, Tuple
import warnings

import numpy as np
from tqdm.auto import tqdm

from .barrier import LipschitzPosition
from .errors import InfeasibleDirection, NonConvergence, NotPositiveDefinite
from .problem import BarrierTrainingProblem, Evaluation

logger = logging.getLogger(__name__)

Array = np.ndarray


@dataclass
class CentralPathSettings:
    """Hyperparameters of the central-path Adam loop."""

    max_iter: int = 500000
    cpsteps: int = 5
    diff: float = 1e-10  # stopping threshold on |f_{i} - f_{i-1}|
    threshold: float = 1e-8  # stopping threshold on the windowed average decrease
    window: int = 300
    gamma: float = 1.0
    alpha: float = 0.02
    beta1: float = 0.9
    beta2: float = 0.999
    beta3: float = 5.0  # tolerance tightening factor between stages
    alphadec: float = 0.5
    gammadec: float = 0.5
    eps: float = 1e-8
    feasibility: bool = False
    log_every: int = 100
    record_trace: bool = True

    def validate(self) -> None:
        if self.max_iter < 0:
            raise ValueError("max_iter must be non-negative.")
        if self.cpsteps <= 0:
            raise ValueError("cpsteps must be positive.")
        if self.window <= 0:
            raise ValueError("window must be positive.")
        if self.diff < 0.0 or self.threshold < 0.0:
            raise ValueError("diff and threshold must be non-negative.")
        if self.gamma <= 0.0 or self.alpha <= 0.0:
            raise ValueError("gamma and alpha must be positive.")
        if not (0.0 <= self.beta1 < 1.0) or not (0.0 <= self.beta2 < 1.0):
            raise ValueError("beta1 and beta2 must be in [0, 1).")
        if self.beta3 <= 0.0:
            raise ValueError("beta3 must be positive.")
        if not (0.0 < self.alphadec <= 1.0) or not (0.0 < self.gammadec <= 1.0):
            raise ValueError("alphadec and gammadec must be in (0, 1].")
        if self.eps <= 0.0:
            raise ValueError("eps must be positive.")
        if self.log_every <= 0:
            raise ValueError("log_every must be positive.")

    def stage_tolerances(self, stage: int) -> Tuple[float, float]:
        """``(diff, threshold)`` for ``stage``; loose early, tight late."""
        factor = self.beta3 ** (self.cpsteps - stage)
        return self.diff * factor, self.threshold * factor


@dataclass(frozen=True)
class IterationRecord:
    stage: int
    iteration: int
    objective: float
    loss: float
    barrier: float
    gamma: float
    alpha: float
    stage_end: bool = False


@dataclass
class StageReport:
    stage: int
    gamma: float
    alpha: float
    iterations: int
    objective: float
    converged: bool
    failed: bool
    infeasible_steps: int
    position: LipschitzPosition

    def summary(self) -> Dict[str, float]:
        return {
            "stage": self.stage,
            "gamma": self.gamma,
            "alpha": self.alpha,
            "iterations": self.iterations,
            "objective": self.objective,
            "converged": self.converged,
            "failed": self.failed,
            "infeasible_steps": self.infeasible_steps,
        }


@dataclass
class CentralPathResult:
    position: LipschitzPosition
    objective: float
    trace: List[Dict[str, float]]
    stages: List[StageReport] = field(default_factory=list)
    failed: bool = False

    def to_record(self) -> Dict[str, object]:
        return {
            "objective": self.objective,
            "failed": self.failed,
            "trace": self.trace,
            "stages": [stage.summary() for stage in self.stages],
        }


Observer = Callable[[IterationRecord], None]


class LoggingObserver:
    """Report iterations through :mod:`logging`."""

    def __init__(self, level: int = logging.INFO, log: Optional[logging.Logger] = None) -> None:
        self.level = level
        self.log = log or logger

    def __call__(self, record: IterationRecord) -> None:
        tag = "end" if record.stage_end else "iter"
        self.log.log(
            self.level,
            "stage %d %s %d: objective=%.6e loss=%.6e barrier=%.6e gamma=%.3e",
            record.stage,
            tag,
            record.iteration,
            record.objective,
            record.loss,
            record.barrier,
            record.gamma,
        )


class ProgressObserver:
    """tqdm progress bar over inner iterations."""

    def __init__(self, verbose: bool = True, desc: str = "central path") -> None:
        self.bar = tqdm(total=None, desc=desc, disable=not verbose)
        self._last = (-1, 0)

    def __call__(self, record: IterationRecord) -> None:
        stage, seen = self._last
        done = record.iteration - seen if record.stage == stage else record.iteration
        if done > 0:
            self.bar.update(done)
        self._last = (record.stage, record.iteration)
        self.bar.set_postfix(stage=record.stage, objective=f"{record.objective:.4e}")

    def close(self) -> None:
        self.bar.close()

    def __enter__(self) -> "ProgressObserver":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


class Optimizer:
    """Interface shared by optimizers over a :class:`BarrierTrainingProblem`."""

    def run(
        self,
        problem: BarrierTrainingProblem,
        initial_position: LipschitzPosition,
        observer: Optional[Observer] = None,
    ) -> CentralPathResult:
        raise NotImplementedError


class CentralPathAdam(Optimizer):
    """Adam inner loops over ``cpsteps`` stages of decreasing barrier weight.

    Stage ``k`` stops once the objective stalls (``|f_i - f_{i-1}| <= diff_k``),
    once the windowed average decrease rises above ``-threshold_k``, or after
    ``max_iter`` iterations. Between stages ``gamma`` and ``alpha`` decay.
    With ``feasibility`` on, every step is capped by the line search before
    it is taken; otherwise an infeasible step aborts the stage.
    """

    def __init__(self, settings: Optional[CentralPathSettings] = None) -> None:
        self.settings = settings or CentralPathSettings()
        self.settings.validate()

    def run(
        self,
        problem: BarrierTrainingProblem,
        initial_position: LipschitzPosition,
        observer: Optional[Observer] = None,
    ) -> CentralPathResult:
        s = self.settings
        position = initial_position.copy()
        gamma, alpha = float(s.gamma), float(s.alpha)
        trace: List[Dict[str, float]] = []
        stages: List[StageReport] = []
        objective = float("inf")

        for stage in range(s.cpsteps):
            diff, threshold = s.stage_tolerances(stage)
            try:
                ev = problem.evaluate(position, gamma)
            except NotPositiveDefinite as exc:
                logger.error("stage %d starts at an infeasible point: %s", stage, exc)
                stages.append(
                    StageReport(stage, gamma, alpha, 0, float("inf"), False, True, 0, position.copy())
                )
                return CentralPathResult(position, float("inf"), trace, stages, failed=True)
            self._record(trace, stage, 0, ev)

            x = position.flatten()
            momentum = np.zeros_like(x)
            velocity = np.zeros_like(x)
            t = 0
            avg = -10.0
            previous = float("inf")
            it = 0
            infeasible = 0
            stage_failed = False

            while abs(previous - ev.objective) > diff and avg < -threshold and it < s.max_iter:
                it += 1
                t += 1
                g = ev.gradient.flatten()
                momentum = s.beta1 * momentum + (1.0 - s.beta1) * g
                velocity = s.beta2 * velocity + (1.0 - s.beta2) * g * g
                m_hat = momentum / (1.0 - s.beta1**t)
                v_hat = velocity / (1.0 - s.beta2**t)
                direction = m_hat / (s.eps + np.sqrt(v_hat))

                dalpha = 1.0
                if s.feasibility:
                    safe = problem.max_step(position, ev, position.unflatten(direction))
                    if safe < alpha * dalpha:
                        momentum = np.zeros_like(x)
                        velocity = np.zeros_like(x)
                        t = 0
                        dalpha = safe / alpha / 4.0
                        if safe <= 0.0:
                            infeasible += 1

                candidate = position.unflatten(x - alpha * dalpha * direction)
                try:
                    new_ev = problem.evaluate(candidate, gamma)
                except NotPositiveDefinite as exc:
                    logger.warning("stage %d iteration %d left the feasible set (%s); stage aborted.", stage, it, exc)
                    stage_failed = True
                    break

                position = candidate
                x = position.flatten()
                previous = ev.objective
                ev = new_ev
                avg = ((s.window - 1) * avg + ev.objective - previous) / s.window
                self._record(trace, stage, it, ev)
                if observer is not None and it % s.log_every == 0:
                    observer(IterationRecord(stage, it, ev.objective, ev.loss, ev.barrier, gamma, alpha))

            exhausted = (
                not stage_failed
                and it >= s.max_iter
                and abs(previous - ev.objective) > diff
                and avg < -threshold
            )
            if exhausted:
                warnings.warn(
                    f"central-path stage {stage} stopped after {it} iterations without meeting its tolerances.",
                    NonConvergence,
                    stacklevel=2,
                )
            if infeasible:
                warnings.warn(
                    f"central-path stage {stage}: line search found no safe step {infeasible} times.",
                    InfeasibleDirection,
                    stacklevel=2,
                )
            objective = ev.objective
            stages.append(
                StageReport(
                    stage=stage,
                    gamma=gamma,
                    alpha=alpha,
                    iterations=it,
                    objective=objective,
                    converged=not (exhausted or stage_failed),
                    failed=stage_failed,
                    infeasible_steps=infeasible,
                    position=position.copy(),
                )
            )
            logger.info(
                "stage %d done after %d iterations: objective=%.6e loss=%.6e gamma=%.3e",
                stage,
                it,
                ev.objective,
                ev.loss,
                gamma,
            )
            if observer is not None:
                observer(IterationRecord(stage, it, ev.objective, ev.loss, ev.barrier, gamma, alpha, stage_end=True))

            gamma *= s.gammadec
            alpha *= s.alphadec

        return CentralPathResult(position, objective, trace, stages)

    def _record(self, trace: List[Dict[str, float]], stage: int, iteration: int, ev: Evaluation) -> None:
        if not self.settings.record_trace:
            return
        trace.append(
            {
                "stage": stage,
                "iteration": iteration,
                "objective": ev.objective,
                "loss": ev.loss,
                "barrier": ev.barrier,
            }
        )
