"""Terminal client that reuses the in-process verification service."""
from __future__ import annotations

import argparse
import asyncio
from pathlib import Path
from typing import Iterable, List

from giverify.errors import ScrapeFailure
from giverify.models import VerificationResult
from giverify.service import VerificationService

GREEN = "\033[92m"
YELLOW = "\033[93m"
RED = "\033[91m"
RESET = "\033[0m"


async def verify_many(service: VerificationService, product_ids: List[str]) -> List[VerificationResult | ScrapeFailure]:
    # Submitted together; the service still runs them one at a time.
    return await asyncio.gather(
        *(service.verify(product_id) for product_id in product_ids),
        return_exceptions=True,
    )


def pretty_print_result(product_id: str, outcome: VerificationResult | BaseException) -> None:
    if isinstance(outcome, BaseException):
        print(f"{product_id}: {RED}could not verify{RESET} ({outcome})")
        return
    if outcome.invalid:
        print(f"{product_id}: {RED}NOT GENUINE{RESET}")
        return
    verdict = f"{GREEN}genuine{RESET}" if outcome.attributes else f"{YELLOW}registered, no details{RESET}"
    print(f"{product_id}: {verdict} [{outcome.source}]")
    if outcome.authorizedDistributor:
        print(f"  Authorized user: {outcome.authorizedDistributor}")
    if outcome.artisan:
        print(f"  Artisan: {outcome.artisan}")
    for label, value in outcome.attributes.items():
        print(f"  {label}: {value}")
    if outcome.imageUrl:
        print(f"  Image: {outcome.imageUrl}")


def run(product_ids: List[str]) -> int:
    async def _run() -> List[VerificationResult | ScrapeFailure]:
        service = VerificationService()
        try:
            return await verify_many(service, product_ids)
        finally:
            await service.aclose()

    outcomes = asyncio.run(_run())
    for product_id, outcome in zip(product_ids, outcomes):
        pretty_print_result(product_id, outcome)
    return 0 if all(isinstance(item, VerificationResult) for item in outcomes) else 1


def interactive_shell() -> None:
    print("Interactive product verification. Type 'exit' to quit.")

    async def _loop() -> None:
        service = VerificationService()
        try:
            while True:
                try:
                    product_id = (await asyncio.to_thread(input, "> ")).strip()
                except (EOFError, KeyboardInterrupt):
                    print()
                    return
                if not product_id:
                    continue
                if product_id.lower() in {"exit", "quit"}:
                    return
                try:
                    pretty_print_result(product_id, await service.verify(product_id))
                except ScrapeFailure as exc:
                    pretty_print_result(product_id, exc)
        finally:
            await service.aclose()

    asyncio.run(_loop())


def read_batch(file_path: Path) -> List[str]:
    with file_path.open("r", encoding="utf-8") as fh:
        return [line.strip() for line in fh if line.strip()]


def main(argv: Iterable[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Verify GI product identifiers against the registry portal")
    parser.add_argument("product_id", nargs="?", help="Identifier to verify. If omitted, starts REPL mode.")
    parser.add_argument("--batch", type=Path, help="File with identifiers to verify, one per line")
    args = parser.parse_args(list(argv) if argv is not None else None)

    if args.batch:
        return run(read_batch(args.batch))
    if args.product_id:
        return run([args.product_id])
    interactive_shell()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
