"""
Database table creation script for Identity Reconciliation API
Creates the contacts table with its constraints and indexes, then checks
the table is readable. Run this after setting up your database.
"""

import asyncio
import logging
import sys
from typing import Optional

from database import DatabaseManager, db_manager

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


async def create_tables(manager: Optional[DatabaseManager] = None) -> bool:
    """
    Create all database tables defined in the models
    Returns False instead of raising so the script can report the failure
    """
    manager = manager or db_manager
    try:
        logger.info("Starting database table creation...")

        if not await manager.test_connection():
            logger.error("Database connection failed - cannot create tables")
            return False

        await manager.create_tables()

        count = await manager.count_contacts()
        logger.info(f"Contacts table accessible - current count: {count}")
        return True

    except Exception as e:
        logger.error(f"Failed to create database tables: {e}")
        return False


async def main() -> bool:
    """Main function to run the table creation"""
    logger.info("Identity Reconciliation API - Database Setup")

    try:
        success = await create_tables()
    finally:
        await db_manager.dispose()

    if success:
        logger.info("Database setup completed successfully!")
        logger.info("You can now start the API server with: python main.py")
    else:
        logger.error("Database setup failed!")
        logger.error("Please check your database configuration and try again")

    return success


if __name__ == "__main__":
    sys.exit(0 if asyncio.run(main()) else 1)
