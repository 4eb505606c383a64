"""Protean Engine runner for the ordering domain.

With PROTEAN_ENV=production events are processed asynchronously: the Engine
publishes outbox events and invokes event handlers (cashback crediting,
refunds of cancelled paid orders) from the broker.

Usage:
    PROTEAN_ENV=production python src/server.py
"""

import asyncio

from protean.server.engine import Engine


async def run():
    from ordering.domain import ordering
    from ordering.utils.logging import configure_logging

    configure_logging()
    ordering.init()
    await Engine(ordering).run()


def main():
    asyncio.run(run())


if __name__ == "__main__":
    main()
