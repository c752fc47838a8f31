import asyncio

from app.core.config import get_settings
from app.core.db import close_engine, create_schema, get_session_factory, init_engine
from app.core.logging import setup_logging
from app.infra.db.seed import seed_demo_data


async def main() -> None:
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_format)
    engine = init_engine()
    try:
        await create_schema(engine)
        session_factory = get_session_factory()
        async with session_factory() as session:
            await seed_demo_data(session)
    finally:
        print("Successfully loaded data !")
        await close_engine(engine)


if __name__ == "__main__":
    asyncio.run(main())
