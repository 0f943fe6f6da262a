"""Entry point: python -m act_runtime

Reports which container runtime a run would use right now.
"""

from __future__ import annotations

import argparse
import asyncio
import sys

from act_runtime.container.factory import ContainerFactory
from act_runtime.detection.detector import RuntimeDetector
from act_runtime.detection.types import ContainerRuntime
from act_runtime.infrastructure.config import RuntimeConfig, parse_runtime


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="act_runtime", description="Container runtime detection")
    parser.add_argument(
        "--container-runtime",
        choices=["auto", "docker", "podman"],
        default="auto",
        help="Container runtime to use (default: auto-detect)",
    )
    parser.add_argument("--container-socket", type=str, default=None, help="Custom container runtime socket path")
    return parser.parse_args(argv)


async def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)

    config = RuntimeConfig.from_environment()
    if args.container_runtime != "auto":
        config.set_preferred_runtime(parse_runtime(args.container_runtime))
    if args.container_socket:
        config.set_custom_socket(args.container_socket)

    factory = ContainerFactory(RuntimeDetector(config))
    runtime, available = await asyncio.gather(factory.get_selected_runtime(), factory.get_available_runtimes())

    if runtime is ContainerRuntime.UNKNOWN:
        print(await factory.get_runtime_detection_error(), file=sys.stderr)
        return 1

    print(f"Selected runtime: {runtime}")
    print(f"Available runtimes: {', '.join(str(r) for r in available) or 'none'}")
    return 0


def run() -> None:
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run()
