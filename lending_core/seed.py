#!/usr/bin/env python3
"""Seed script for the lending core

Creates the demo marketplace:
- one user per role (borrower, lender, admin, analyst)
- a personal loan offer and a business loan offer
- one pending application and one approved loan with its schedule

Run with: python -m lending_core.seed
"""

from typing import Any, Dict

from .config import get_config
from .logging_config import setup_logging
from .models import UserRole


def seed_demo_data(system) -> Dict[str, Any]:
    """Populate an empty lending system and return the created records"""
    users = system.users
    engine = system.engine

    borrower = users.register_user("borrower@test.com", "John Borrower", UserRole.BORROWER)
    lender = users.register_user("lender@test.com", "Jane Lender", UserRole.LENDER,
                                 company="Quick Loans Inc.")
    admin = users.register_user("admin@test.com", "System Admin", UserRole.ADMIN)
    analyst = users.register_user("analyst@test.com", "Financial Analyst", UserRole.ANALYST)

    personal = engine.create_loan_offer(
        lender_id=lender.id,
        title="Personal Loan",
        description="Quick personal loans for immediate needs",
        min_amount=1000,
        max_amount=10000,
        interest_rate="12.5",
        term=24
    )
    business = engine.create_loan_offer(
        lender_id=lender.id,
        title="Business Loan",
        description="For small business expansion",
        min_amount=5000,
        max_amount=50000,
        interest_rate="8.5",
        term=60
    )

    approved = engine.submit_application(
        borrower_id=borrower.id,
        offer_id=personal.id,
        amount=5000,
        purpose="Home renovation",
        credit_score=720,
        income=50000
    )
    loan = engine.approve_application(approved.id, lender.id)

    pending = engine.submit_application(
        borrower_id=borrower.id,
        offer_id=business.id,
        amount=15000,
        purpose="Equipment purchase",
        credit_score=720,
        income=50000
    )

    return {
        "users": [borrower, lender, admin, analyst],
        "offers": [personal, business],
        "applications": [approved, pending],
        "loans": [loan],
    }


def main():
    """Main seeding function"""
    from .system import LendingSystem

    config = get_config()
    logger = setup_logging(config.log_level, log_format=config.log_format, log_file=config.log_file)

    system = LendingSystem(config)
    try:
        if system.store.snapshot().users:
            logger.warning("Store already contains users, skipping seed")
            return
        created = seed_demo_data(system)
        logger.info("Demo data generation completed: %d users, %d offers, %d applications, %d loans",
                    len(created["users"]), len(created["offers"]),
                    len(created["applications"]), len(created["loans"]))
    finally:
        system.close()


if __name__ == "__main__":
    main()
