"""Create a demo customer, provider and service in the configured database."""

from dotenv import load_dotenv

from localserve.core.config import Settings
from localserve.infrastructure.persistence.sqlite import SQLitePersistence


def main() -> None:
    load_dotenv()
    settings = Settings()
    persistence = SQLitePersistence(settings.database_path)
    try:
        provider = persistence.get_provider_by_user_id(2) or persistence.create_provider(
            user_id=2, business_name="Green Thumb Gardening", email="provider@example.com"
        )
        customer = persistence.get_customer_by_user_id(1) or persistence.create_customer(
            user_id=1, full_name="Dana Customer", email="customer@example.com"
        )
        service = persistence.create_service(
            provider_id=provider.id, name="Weekly lawn care", base_price=49.0
        )
    finally:
        persistence.close()

    print(f"customer id={customer.id} (user 1)")
    print(f"provider id={provider.id} (user 2)")
    print(f"service id={service.id}")
    print("Issue tokens with: python scripts/issue_token.py <user_id> <role>")


if __name__ == "__main__":
    main()
