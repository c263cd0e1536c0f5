import sys
from pathlib import Path

# Ensure project root is on sys.path when running this script directly
PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from dotenv import load_dotenv
from pymongo import ASCENDING
from pymongo.errors import OperationFailure, CollectionInvalid

from src.db.mongo import get_db, get_deck_bucket_name, get_jobs_collection_name, reset_client


def ensure_jobs(db):
    name = get_jobs_collection_name()
    validator = {
        "$jsonSchema": {
            "bsonType": "object",
            "required": ["_id", "status", "progress", "input_json", "created_at", "updated_at"],
            "properties": {
                "_id": {"bsonType": "string"},
                "status": {"enum": ["pending", "running", "done", "failed"]},
                "progress": {"bsonType": "int", "minimum": 0, "maximum": 100},
                "prompt": {"bsonType": ["string", "null"]},
                "input_json": {"bsonType": ["object", "array"]},
                "slide_spec": {"bsonType": ["object", "null"]},
                "file_path": {"bsonType": ["string", "null"]},
                "error": {"bsonType": ["string", "null"]},
                "created_at": {"bsonType": "string"},
                "updated_at": {"bsonType": "string"},
            },
        }
    }
    try:
        db.create_collection(name, validator=validator)
    except (OperationFailure, CollectionInvalid):
        # Already exists -> collMod (best-effort)
        try:
            db.command({"collMod": name, "validator": validator})
        except OperationFailure:
            pass

    # Workers claim the oldest pending job first
    db[name].create_index([("status", ASCENDING), ("created_at", ASCENDING)], name="idx_status_created")
    db[name].create_index([("updated_at", ASCENDING)], name="idx_updated_at")


def ensure_deck_files(db):
    # GridFS bucket; lookups go by filename
    db[f"{get_deck_bucket_name()}.files"].create_index([("filename", ASCENDING)], name="idx_deck_filename")


def main():
    load_dotenv()
    db = get_db()
    ensure_jobs(db)
    ensure_deck_files(db)
    print(
        f"Initialized MongoDB collections in {db.name}: "
        f"{get_jobs_collection_name()}, {get_deck_bucket_name()}.files (validators + indexes)"
    )
    reset_client()


if __name__ == "__main__":
    main()
