"""
Seeds the service catalogue
Run: python seed_services.py
"""
import asyncio

from barbe.config import get_settings
from barbe.database import CredentialTier, RemoteStoreError, SupabaseClient

INITIAL_SERVICES = [
    {"title": "Corte", "description": "Corte de pelo con estilo", "price": 25},
    {"title": "Barba", "description": "Afeitado y arreglo de barba", "price": 15},
    {"title": "Corte + Barba", "description": "Paquete completo de corte y barba", "price": 35},
    {"title": "Tinte", "description": "Tinte de pelo profesional", "price": 40},
]


async def seed_services(store: SupabaseClient, table: str) -> int:
    """Insert the default services when the catalogue is empty; returns rows inserted"""
    existing = await store.select(table, "select=id&limit=1", tier=CredentialTier.ADMIN)
    if not existing.ok:
        raise RemoteStoreError(existing, "services query")
    if existing.rows():
        return 0

    inserted = await store.insert(table, INITIAL_SERVICES, tier=CredentialTier.ADMIN)
    if not inserted.ok:
        raise RemoteStoreError(inserted, "services insert")
    return len(INITIAL_SERVICES)


async def main():
    settings = get_settings()
    store = SupabaseClient(settings)
    try:
        count = await seed_services(store, settings.SERVICES_TABLE)
    finally:
        await store.close()

    if count:
        print(f"Added {count} services")
    else:
        print("Services already present, nothing to do")


if __name__ == "__main__":
    asyncio.run(main())
