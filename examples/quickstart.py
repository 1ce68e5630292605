"""Quickstart — run the conformance checks and benchmarks against a local directory.

Demonstrates:
- Building the ready-made local suite from a synthetic environment
- Running the checks and reading the result
- Timing the benchmarks
"""

from __future__ import annotations

import logging
import tempfile

from backend_suite import MappingEnvironment, SkipPolicy, bindings

if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    with tempfile.TemporaryDirectory() as tmp:
        env = MappingEnvironment({bindings.LOCAL_REPOSITORY: f"local:{tmp}"})
        suite = bindings.local_suite(env, SkipPolicy())

        # Every check, in a fresh namespace that is removed afterwards
        result = suite.run_tests()
        print(result.describe())
        print(f"Namespace: {result.namespace}")
        print(f"Phases: {' -> '.join(p.value for p in result.transitions)}")

        # Smaller payloads keep this quick
        timings = bindings.local_suite(env, SkipPolicy(), minimal_data=True).run_benchmarks(iterations=3)
        for bench in timings.benchmarks:
            print(f"  {bench}")

    print("Done! Temp directory cleaned up automatically.")
