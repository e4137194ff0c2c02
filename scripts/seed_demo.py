# scripts/seed_demo.py
# Seed a demo tenant (catalog + a few days of shopper events) into DB_URL.
import random
from datetime import timedelta
from typing import List

from sqlmodel import Session

from app.db.models import CatalogItem, Event, Tenant, utcnow
from app.db.repo import engine, init_db

CATEGORIES = ["shoes", "jackets", "bags", "hats", "socks"]
COLORS = ["black", "white", "red", "navy"]
EVENT_MIX = [
    ("product_viewed", 60),
    ("product_clicked", 20),
    ("add_to_cart", 10),
    ("remove_from_cart", 3),
    ("purchase", 7),
]

def build_catalog(tenant_id: str, n: int) -> List[CatalogItem]:
    items = []
    for i in range(n):
        cat = CATEGORIES[i % len(CATEGORIES)]
        items.append(
            CatalogItem(
                tenant_id=tenant_id,
                product_id=f"sku-{i:04d}",
                name=f"{random.choice(COLORS).title()} {cat[:-1]} #{i}",
                category=cat,
                price=round(random.uniform(10, 200), 2),
                image_url=f"https://cdn.example.com/sku-{i:04d}.jpg",
                attributes={"color": random.choice(COLORS), "size": random.choice(["S", "M", "L"])},
                available=random.random() > 0.05,
            )
        )
    return items

def build_events(tenant_id: str, skus: List[str], users: int, per_user: int) -> List[Event]:
    now = utcnow()
    kinds = [k for k, _ in EVENT_MIX]
    weights = [w for _, w in EVENT_MIX]
    events = []
    for u in range(users):
        # each shopper sticks to a handful of products
        favourites = random.sample(skus, k=min(8, len(skus)))
        for _ in range(per_user):
            events.append(
                Event(
                    tenant_id=tenant_id,
                    event_type=random.choices(kinds, weights=weights)[0],
                    user_id=f"user-{u:03d}",
                    product_id=random.choice(favourites),
                    timestamp=now - timedelta(minutes=random.randint(0, 3 * 24 * 60)),
                )
            )
    return events

def main(tenant_name: str = "Demo Store", products: int = 60, users: int = 40, per_user: int = 15):
    random.seed(7)
    init_db()
    with Session(engine) as session:
        tenant = Tenant(name=tenant_name, config={"defaultStrategy": "collaborative"})
        session.add(tenant)
        session.flush()
        catalog = build_catalog(tenant.id, products)
        session.add_all(catalog)
        session.add_all(build_events(tenant.id, [c.product_id for c in catalog], users, per_user))
        session.commit()
        print(f"Seeded tenant {tenant.id} with {products} products and {users * per_user} events")

if __name__ == "__main__":
    main()
