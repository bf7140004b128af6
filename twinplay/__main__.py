# BeoSound 5c
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later
#
# Attribution required — see LICENSE, Section 7(b).

"""Run the TwinPlay service:  python -m twinplay"""

import asyncio
import logging

from .backends import create_backends
from .engine import Engine
from .lib.config import config_path
from .server import TwinPlayService

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger('twinplay')


async def main():
    catalog, local = create_backends()
    service = TwinPlayService(Engine(catalog, local))
    logger.info("Starting TwinPlay (config %s, storefront %s, index %s)",
                config_path() or "defaults", catalog.storefront, local.index_path)
    await service.run()


def run():
    asyncio.run(main())


if __name__ == "__main__":
    run()
