import asyncio
import sys
import os

# Aggiungi backend/ alla PYTHONPATH per importare app.*
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "backend"))

from app.core.database import create_tables, engine


async def reset():
    print("Connessione al database, ricreazione tabelle ordini e utenti...")
    await create_tables(engine, drop_first=True)
    await engine.dispose()
    print("Database resettato con successo!")


if __name__ == "__main__":
    asyncio.run(reset())
