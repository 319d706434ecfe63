from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import select

from pos_ledger.db import SessionLocal, engine
from pos_ledger.models import Base, InventoryMovement, MovementKind, Principal, PrincipalRole, Product
from pos_ledger.security.passwords import hash_password

SAMPLE_PRODUCTS = [
    ('TSHIRT-CREW-BLK', 'TSHIRT-CREW', Decimal('799.00'), {'S': 6, 'M': 10, 'L': 8, 'XL': 4}),
    ('KURTA-COTTON-WHT', 'KURTA-COTTON', Decimal('1499.00'), {'M': 5, 'L': 5, 'XXL': 2}),
    ('DENIM-SLIM-IND', 'DENIM-SLIM', Decimal('1999.00'), {'30': 4, '32': 6, '34': 6, '36': 3}),
]


def seed() -> None:
    Base.metadata.create_all(engine)
    with SessionLocal() as db:
        for username, password, role in [
            ('admin', 'adminpass', PrincipalRole.ADMIN),
            ('owner', 'ownerpass', PrincipalRole.OWNER),
            ('counter1', 'counterpass', PrincipalRole.EMPLOYEE),
        ]:
            existing = db.execute(select(Principal).where(Principal.username == username)).scalar_one_or_none()
            if not existing:
                db.add(Principal(username=username, password_hash=hash_password(password), role=role, active=True))

        opened_at = datetime.now(timezone.utc)
        for code, style_code, mrp, sizes in SAMPLE_PRODUCTS:
            product = db.execute(select(Product).where(Product.code == code)).scalar_one_or_none()
            if product:
                continue
            db.add(Product(code=code, style_code=style_code, mrp=mrp, active=True))
            for size, qty in sizes.items():
                db.add(
                    InventoryMovement(
                        product=code,
                        size=size,
                        quantity=qty,
                        kind=MovementKind.ADDED,
                        unit_price=mrp,
                        occurred_at=opened_at,
                        note='Opening stock',
                    )
                )

        db.commit()


if __name__ == '__main__':
    seed()
