#!/usr/bin/env python3
# Database initialization
# Creates the document table and its JSON indexes, then seeds dining halls and
# the default platform fee

import sys
import logging
from pathlib import Path

project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from db.manager import DocumentStore
from db.supporting_operations import SupportingOperations
from utils.config import Config

SAMPLE_DINING_HALLS = [
    ("north-commons", "North Commons", {"breakfast": 12.00, "lunch": 15.50, "dinner": 17.50}),
    ("west-hall", "West Hall", {"breakfast": 11.00, "lunch": 14.00, "dinner": 16.00}),
    ("east-village", "East Village Dining", {"lunch": 13.50, "dinner": 15.00}),
]

INDEXES = [
    ("idx_documents_status",
     "CREATE INDEX IF NOT EXISTS idx_documents_status "
     "ON documents(collection, json_extract(data, '$.status'))"),
    ("idx_documents_hall_window",
     "CREATE INDEX IF NOT EXISTS idx_documents_hall_window "
     "ON documents(collection, json_extract(data, '$.hall_id'), json_extract(data, '$.window_type'))"),
    ("idx_documents_buyer",
     "CREATE INDEX IF NOT EXISTS idx_documents_buyer "
     "ON documents(collection, json_extract(data, '$.buyer_id'))"),
    ("idx_documents_dasher",
     "CREATE INDEX IF NOT EXISTS idx_documents_dasher "
     "ON documents(collection, json_extract(data, '$.dasher_id'))"),
    ("idx_documents_pair_group",
     "CREATE INDEX IF NOT EXISTS idx_documents_pair_group "
     "ON documents(collection, json_extract(data, '$.pair_group_id'))"),
]


def create_indexes(store: DocumentStore):
    for name, index_sql in INDEXES:
        store.conn.execute(index_sql)
        logging.info(f"Index ready: {name}")


def insert_initial_data(store: DocumentStore, default_platform_fee: float):
    supporting_ops = SupportingOperations(store)

    for hall_id, name, prices in SAMPLE_DINING_HALLS:
        if store.get_document("dining_halls", hall_id):
            logging.info(f"Dining hall already exists: {hall_id}")
            continue
        supporting_ops.upsert_dining_hall(hall_id, name, prices)

    fees = store.get_document("config", "platform_fee")
    if not fees or fees.get("default") is None:
        supporting_ops.set_platform_fee(None, default_platform_fee)

    supporting_ops.recalculate_pricing()


def main():
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(levelname)s - %(message)s'
    )

    config = Config()
    db_config = config.get_database_config()

    logging.info(f"Initializing document store: {db_config['path']}")
    logging.info(f"Environment: {config.env}")

    try:
        with DocumentStore.from_config(db_config) as store:
            create_indexes(store)
            insert_initial_data(
                store, float(config.get('pricing.default_platform_fee_dollars', '0.50'))
            )
            store.check_integrity()

            for collection in ("dining_halls", "orders", "runs", "delivery_requests", "payments"):
                count = len(store.query_documents(collection))
                logging.info(f"  - {collection}: {count} documents")

        logging.info("Document store initialized")

    except (ConnectionError, RuntimeError) as e:
        logging.error(f"Initialization failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
