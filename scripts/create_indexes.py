#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Create the MongoDB indexes used by the delivery collections and declare the
push exchange and worker queue on the AMQP broker.
"""

import logging
import sys

from pymongo.errors import PyMongoError

from entregas.services.amqp import create_amqp_service
from entregas.services.mongodb import get_mongodb_service, close_mongodb_connection

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

logger = logging.getLogger(__name__)


def main():
    """Create MongoDB indexes and the push exchange."""
    try:
        logger.info("Starting MongoDB index creation...")

        mongodb_service = get_mongodb_service()

        health = mongodb_service.health_check()
        if health['status'] != 'healthy':
            logger.error(f"MongoDB is not healthy: {health}")
            sys.exit(1)

        logger.info(f"Connected to MongoDB {health['version']} - Database: {health['database']}")

        mongodb_service.create_indexes()

        logger.info("MongoDB indexes created successfully!")

    except PyMongoError as e:
        logger.error(f"Failed to create indexes: {e}")
        sys.exit(1)
    finally:
        close_mongodb_connection()

    logger.info("Declaring AMQP push exchange...")
    if not create_amqp_service().setup_push_exchange():
        logger.error("Failed to declare the AMQP push exchange")
        sys.exit(1)

    logger.info("AMQP push exchange ready")


if __name__ == "__main__":
    main()
