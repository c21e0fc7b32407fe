import argparse

from dotenv import load_dotenv

from localserve.core.config import Settings
from localserve.services.token_service import ROLES, TokenService


def main() -> None:
    load_dotenv()

    parser = argparse.ArgumentParser(description="Issue a bearer token for a LocalServe account.")
    parser.add_argument("user_id", type=int, help="Account identifier the token is issued for")
    parser.add_argument("role", choices=ROLES)
    parser.add_argument("--email", default=None)
    args = parser.parse_args()

    settings = Settings()
    token_service = TokenService(
        jwt_secret=settings.jwt_secret,
        jwt_algorithm=settings.jwt_algorithm,
        jwt_expiration_hours=settings.jwt_expiration_hours,
    )
    print(token_service.create_token(args.user_id, args.role, email=args.email))


if __name__ == "__main__":
    main()
