import asyncio
import sys
from pathlib import Path


async def recreate_db():
    backend_root = Path(__file__).resolve().parents[1]
    # Ensure backend root on import path
    sys.path.insert(0, str(backend_root))

    from app.config import settings  # type: ignore
    from app.database import Base, create_tables, engine  # type: ignore

    if settings.DATABASE_URL.startswith("sqlite"):
        # Remove existing SQLite file
        db_file = settings.DATABASE_URL.split(":///", 1)[-1]
        db_path = Path(db_file) if Path(db_file).is_absolute() else backend_root / db_file
        if db_path.exists():
            db_path.unlink()
    else:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)

    await create_tables()
    await engine.dispose()


if __name__ == '__main__':
    asyncio.run(recreate_db())
    print('Database recreated.')
