import asyncio
import os
import sys

# Aggiungi backend/ alla PYTHONPATH per importare app.*
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "backend"))

from app.core.database import AsyncSessionLocal, engine
from app.services.provisioning_service import PRESETS, ProvisioningService


async def seed(presets: list[str]) -> None:
    service = ProvisioningService()
    async with AsyncSessionLocal() as db:
        for preset in presets:
            outcome = await service.provision(db, preset)
            await db.commit()
            print(f"[{preset}] creati: {len(outcome.created)}, già presenti: {len(outcome.skipped)}")
            for user in outcome.created:
                print(f"  + {user.email} ({user.role})")
            for email in outcome.skipped:
                print(f"  = {email}")
    await engine.dispose()


if __name__ == "__main__":
    requested = sys.argv[1:] or sorted(PRESETS)
    unknown = [p for p in requested if p not in PRESETS]
    if unknown:
        print(f"Preset sconosciuti: {', '.join(unknown)}. Disponibili: {', '.join(sorted(PRESETS))}")
        sys.exit(1)
    asyncio.run(seed(requested))
