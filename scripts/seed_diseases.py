"""Seed the disease catalogue used by the diagnosis endpoint.

Usage:
  python scripts/seed_diseases.py
  python scripts/seed_diseases.py --list
"""

from __future__ import annotations

import argparse
import logging
import os

from dotenv import load_dotenv
from sqlalchemy import select

from agrilink.config import Settings
from agrilink.db import SessionLocal, init_db
from agrilink.models import Disease
from agrilink.services.diagnosis import seed_diseases

logger = logging.getLogger("seed_diseases")
logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO"))


def main() -> None:
    load_dotenv()
    parser = argparse.ArgumentParser()
    parser.add_argument("--list", action="store_true", help="print the catalogue")
    args = parser.parse_args()

    init_db(Settings())

    with SessionLocal() as session:
        added = seed_diseases(session)
        logger.info("added %d diseases", added)
        if args.list:
            for disease in session.scalars(select(Disease).order_by(Disease.id)):
                print(f"{disease.id}\t{disease.name}\t{', '.join(disease.affected_crops)}")


if __name__ == "__main__":
    main()
