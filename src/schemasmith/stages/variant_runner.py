# Copyright (c) Syntropy Systems
"""Run the target workload under every input variant concurrently."""
from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import TYPE_CHECKING

from schemasmith.errors import ServiceClientError
from schemasmith.models import VARIANT_NAMES, RunReconciliation, TestInputSet, VariantRunResult

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from schemasmith.clients.protocols import WorkloadPlatform
    from schemasmith.models import JSONValue, WorkloadRun

logger = logging.getLogger(__name__)

# Runs that must succeed for the variant runs to count as a success
MIN_SUCCESSFUL_RUNS = 1

DEFAULT_RUN_TIMEOUT = 300
DEFAULT_RUN_MEMORY = 2048


def _variant_order(result: VariantRunResult) -> int:
    if result.variant in VARIANT_NAMES:
        return VARIANT_NAMES.index(result.variant)
    return len(VARIANT_NAMES)


class VariantRunner:
    """Fan out one run per variant, then join on all of them."""

    def __init__(
        self,
        platform: WorkloadPlatform,
        timeout: int = DEFAULT_RUN_TIMEOUT,
        memory: int = DEFAULT_RUN_MEMORY,
        grace: float = 30.0,
    ) -> None:
        """Initialize the runner.

        Args:
            platform: Workload platform the runs are started on
            timeout: Per-run timeout in seconds, passed to the platform
            memory: Per-run memory in megabytes
            grace: Extra seconds to wait for a run past its timeout before
                recording it as timed out

        """
        self.platform = platform
        self.timeout = timeout
        self.memory = memory
        self.grace = grace

    def _run_one(
        self,
        target: str,
        variant: str,
        run_input: JSONValue,
        started: dict[str, str],
    ) -> VariantRunResult:
        if not isinstance(run_input, dict):
            error = f"Input is not a JSON object ({type(run_input).__name__}), run not started"
            logger.warning("Variant %s: %s", variant, error)
            return VariantRunResult(variant=variant, success=False, error=error)

        def record(run: WorkloadRun) -> None:
            started[variant] = run.run_id

        try:
            run = self.platform.run_workload(
                target,
                run_input,
                timeout=self.timeout,
                memory=self.memory,
                on_start=record,
            )
        except Exception as e:  # noqa: BLE001 - any failure is that variant's result
            logger.warning("Variant %s failed to run: %s", variant, e)
            return VariantRunResult(
                variant=variant,
                success=False,
                run_id=started.get(variant),
                error=str(e),
            )

        error = None if run.succeeded else f"Run {run.run_id} finished with status {run.status}"
        logger.info("Variant %s: run %s %s", variant, run.run_id, run.status)
        return VariantRunResult(
            variant=variant,
            success=run.succeeded,
            output_handle=run.output_handle,
            run_id=run.run_id,
            error=error,
        )

    def run_all(
        self,
        target: str,
        variants: TestInputSet | Mapping[str, JSONValue],
    ) -> list[VariantRunResult]:
        """Run ``target`` once per variant and wait for every run to settle.

        A run still going after ``timeout + grace`` seconds is recorded as a
        failure, keeping its run id when the run had started so its output
        can be collected later. Result order is not guaranteed; key on ``variant``.
        """
        inputs = variants.variants() if isinstance(variants, TestInputSet) else dict(variants)
        if not inputs:
            return []

        results: list[VariantRunResult] = []
        # variant name -> run id, filled as soon as each run is started
        started: dict[str, str] = {}
        executor = ThreadPoolExecutor(max_workers=len(inputs), thread_name_prefix="variant")
        try:
            futures: dict[Future[VariantRunResult], str] = {
                executor.submit(self._run_one, target, name, value, started): name
                for name, value in inputs.items()
            }
            done, not_done = wait(futures, timeout=self.timeout + self.grace)
            results.extend(future.result() for future in done)
            for future in not_done:
                _ = future.cancel()
                variant = futures[future]
                logger.warning("Variant %s did not finish within %ss", variant, self.timeout)
                results.append(
                    VariantRunResult(
                        variant=variant,
                        success=False,
                        run_id=started.get(variant),
                        error=f"Run timed out after {self.timeout}s",
                    )
                )
        finally:
            executor.shutdown(wait=False, cancel_futures=True)
        return results

    def reconcile(self, results: Sequence[VariantRunResult]) -> RunReconciliation:
        """Summarize a set of runs; success means at least one run succeeded."""
        ordered = sorted(results, key=_variant_order)
        successful = [r for r in ordered if r.success]
        failed = [r for r in ordered if not r.success]

        summary = f"{len(successful)}/{len(ordered)} runs succeeded"
        if failed:
            details = "; ".join(f"{r.variant}: {r.error or 'unknown error'}" for r in failed)
            summary = f"{summary}. Failed: {details}"

        return RunReconciliation(
            total_runs=len(ordered),
            successful_runs=len(successful),
            overall_success=len(successful) >= MIN_SUCCESSFUL_RUNS,
            summary=summary,
        )

    def collect_output_handles(self, results: Sequence[VariantRunResult]) -> list[str]:
        """Output handles of every run that has one, failed runs included.

        A run observed without a handle is fetched again, since the handle
        can appear only once the run record is final.
        """
        handles: list[str] = []
        for result in sorted(results, key=_variant_order):
            handle = result.output_handle
            if handle is None and result.run_id is not None:
                try:
                    handle = self.platform.get_run(result.run_id).output_handle
                except ServiceClientError as e:
                    logger.warning("Could not re-query run %s: %s", result.run_id, e)
            if handle is not None and handle not in handles:
                handles.append(handle)
        logger.info("Collected %d output handles", len(handles))
        return handles
