import sys
from datetime import timedelta
from pathlib import Path

# Add project root to path
PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(PROJECT_ROOT))

from app.auth.tokens import issue_access_token
from app.core.config import get_config
from app.core.exceptions import HomeBoardException
from app.database.db import get_db_session
from app.models import Family, User
from app.models.base import utcnow
from app.services.assignment_store import AssignmentStore
from app.services.stage_registry import StageRegistry

DEMO_ORDERS = [
    (1001, "Round Oak", "Script", "Natural", 0),
    (1002, "Square Walnut", "Block", "Dark", 2),
    (1003, "Round Oak", "Block", "Whitewash", 1),
    (1004, "Long Maple", "Script", "Natural", 0),
]


def seed_demo_board():
    with get_db_session() as db:
        family = db.query(Family).filter(Family.name == "Demo Family").first()
        if family:
            print("Demo family already exists.")
            return

        print("Seeding demo family board...")
        family = Family(name="Demo Family")
        db.add(family)
        db.flush()
        owner = User(family_id=family.id, first_name="Sam", last_name="Demo", role="admin")
        helper = User(family_id=family.id, first_name="Alex", last_name="Demo", role="member")
        db.add_all([owner, helper])
        db.commit()

        StageRegistry(db=db).ensure_default_stages(family.id)
        store = AssignmentStore(db=db)
        try:
            for order_id, style, font, color, priority in DEMO_ORDERS:
                store.upsert_source_order(
                    family.id,
                    order_id,
                    order_number=f"#{order_id}",
                    customer_name=f"Customer {order_id}",
                    total="45.00",
                    currency="USD",
                    created_at=utcnow() - timedelta(days=order_id - 1000),
                    customization={"board_style": style, "font": font, "board_color": color},
                )
                store.register_order(family.id, order_id, changed_by=owner.id)
                store.update_assignment(family.id, order_id, {"priority": priority}, changed_by=owner.id)
        except HomeBoardException as e:
            print(f"Error seeding data: {e}")
            return

        token = issue_access_token(owner.id, family.id, owner.role, secret=get_config().JWT_SECRET)
        print(f"Seeded family {family.id} with {len(DEMO_ORDERS)} orders.")
        print(f"Admin bearer token (15 min): {token}")


if __name__ == "__main__":
    seed_demo_board()
