"""
Create and verify the MongoDB indexes of every document model.

Beanie creates declared indexes on startup; this script does the same
without starting the API and prints what each collection ends up with.

Usage:
    python scripts/create_indexes.py
"""

import asyncio
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from workspace_chat.config import settings  # noqa: E402
from workspace_chat.db.mongodb import DOCUMENT_MODELS, init_db, close_db  # noqa: E402


async def create_indexes() -> bool:
    print("\n" + "=" * 80)
    print("MONGODB INDEXES")
    print("=" * 80 + "\n")
    print(f"Database: {settings.DATABASE_NAME}\n")

    try:
        client = await init_db()
        db = client[settings.DATABASE_NAME]

        for model in DOCUMENT_MODELS:
            collection = model.get_settings().name
            indexes = await db[collection].list_indexes().to_list(length=None)
            print(f"{collection}:")
            for idx in indexes:
                keys = ", ".join(f"{k}: {v}" for k, v in idx.get("key", {}).items())
                print(f"   - {idx.get('name', '')}: ({keys})")
            print()

        await close_db()
        return True

    except Exception as e:
        print(f"\nFAILED: {type(e).__name__}: {str(e)}\n")
        return False


if __name__ == "__main__":
    success = asyncio.run(create_indexes())
    sys.exit(0 if success else 1)
