import logging

from taskboard_api.db import SessionLocal
from taskboard_api.provisioning import ensure_sample_data


def main() -> None:
    logging.basicConfig(level=logging.INFO)
    db = SessionLocal()
    try:
        created = ensure_sample_data(db)
    finally:
        db.close()
    print("sample data created" if created else "sample data already present")


if __name__ == "__main__":
    main()
