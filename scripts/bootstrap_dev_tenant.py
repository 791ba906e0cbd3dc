# scripts/bootstrap_dev_tenant.py
from brushquote import models  # noqa: F401
from brushquote.auth.jwt import create_access_token
from brushquote.db import Base, SessionLocal, engine
from brushquote.repositories.quotes import (
    get_or_create_contractor_settings,
    list_pricing_schemes,
    seed_default_schemes,
)

TENANT_ID = "dev-tenant"
USER_ID = "dev-user"
EMAIL = "dev@brushquote.local"


def main():
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        settings_row = get_or_create_contractor_settings(db, TENANT_ID)
        settings_row.company_name = settings_row.company_name or "Dev Painting Co"
        settings_row.notification_email = settings_row.notification_email or EMAIL

        if not list_pricing_schemes(db, TENANT_ID):
            seed_default_schemes(db, TENANT_ID)
        db.commit()

        print("tenant_id:", TENANT_ID)
        for scheme in list_pricing_schemes(db, TENANT_ID):
            print(f"scheme {scheme.id}: {scheme.name} ({scheme.type})")
        print("\nstaff token:")
        print(create_access_token(user_id=USER_ID, tenant_id=TENANT_ID, email=EMAIL))
    finally:
        db.close()


if __name__ == "__main__":
    main()
