"""SIM implementation - scripted research agent process for demos and tests."""

import asyncio
import json
import os
import random
import sys
from typing import Protocol, TextIO

FINDINGS = [
    ("Throughput plateaus past batch size 64.", "line", [120, 240, 410, 455, 460]),
    ("Loss curve flattens after warmup.", "line", [2.9, 1.7, 1.1, 0.92, 0.9, 0.89]),
    ("Kernel time dominated by all-reduce.", "bar", [1200, 3400, 800]),
]

THOUGHTS = [
    "Reading the benchmark configuration",
    "Comparing against the previous sweep",
    "Drafting a hypothesis about the bottleneck",
    "Checking whether the result holds at larger scale",
]


class ISim(Protocol):
    """Emit a research session as lines on a text stream."""

    async def run(self) -> int:
        """Play the scenario; return the process exit code."""
        ...


class Sim:
    """SIM with a hardcoded research scenario."""

    def __init__(
        self,
        out: TextIO = sys.stdout,
        steps: int = 3,
        delay: float = 0.5,
        exit_code: int = 0,
        gpu: str = "H100",
        seed: int | None = None,
    ):
        self._out = out
        self._steps = steps
        self._delay = delay
        self._exit_code = exit_code
        self._gpu = gpu
        self._random = random.Random(seed)

    @classmethod
    def from_env(cls) -> "Sim":
        seed = os.getenv("SIM_SEED")
        return cls(
            steps=int(os.getenv("SIM_STEPS", "3")),
            delay=float(os.getenv("SIM_DELAY", "0.5")),
            exit_code=int(os.getenv("SIM_EXIT_CODE", "0")),
            gpu=os.getenv("SIM_GPU", "H100"),
            seed=int(seed) if seed else None,
        )

    def _emit(self, line: str) -> None:
        self._out.write(line + "\n")
        self._out.flush()

    async def run(self) -> int:
        """Play the scenario; return the process exit code."""
        self._emit(f"[gpu] {self._gpu}")
        self._emit("booting research agent")  # plain output, not an event

        for step in range(self._steps):
            slot = f"step-{step}"
            thought = THOUGHTS[step % len(THOUGHTS)]
            # Stream the thought in growing chunks under one slot
            words = thought.split()
            for n in range(1, len(words) + 1):
                self._emit(f"[thought:{slot}] {' '.join(words[:n])}")
                await asyncio.sleep(self._delay / len(words))

            summary, kind, values = FINDINGS[step % len(FINDINGS)]
            jitter = [round(v * self._random.uniform(0.95, 1.05), 3) for v in values]
            self._emit(
                json.dumps(
                    {
                        "type": "insight",
                        "id": f"finding-{step}",
                        "summary": summary,
                        "chart": {
                            "title": f"Step {step + 1}",
                            "type": kind,
                            "series": [{"name": "metric", "values": jitter}],
                        },
                    }
                )
            )
            await asyncio.sleep(self._delay)

        if self._exit_code:
            print("simulated failure", file=sys.stderr, flush=True)
        return self._exit_code
