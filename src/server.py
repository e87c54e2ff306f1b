"""Protean Engine runner for the billing domain.

Starts Engine workers that process billing events asynchronously (payment
confirmations in production, where event processing is async).

Usage:
    python src/server.py
"""

import argparse
import asyncio

from protean.server.engine import Engine


def _get_domain(name):
    """Import and initialize a domain by name."""
    if name == "billing":
        from billing.domain import billing

        billing.init()
        return billing
    raise ValueError(f"Unknown domain: {name}")


async def run(domain_names):
    engines = [Engine(_get_domain(name)) for name in domain_names]
    await asyncio.gather(*(engine.run() for engine in engines))


def main():
    parser = argparse.ArgumentParser(description="Billing Engine runner")
    parser.add_argument(
        "--domain",
        choices=["billing"],
        default="billing",
        help="Domain engine to run",
    )
    args = parser.parse_args()

    asyncio.run(run([args.domain]))


if __name__ == "__main__":
    main()
