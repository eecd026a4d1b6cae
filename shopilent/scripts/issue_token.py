# scripts/issue_token.py
"""Mints a development bearer token signed with JWT_SECRET."""
import argparse
import uuid

from shopilent.core.security import Role, create_access_token


def main(argv=None):
    parser = argparse.ArgumentParser(description="Issue a Shopilent API bearer token for local development.")
    parser.add_argument("--user-id", type=uuid.UUID, default=None, help="Subject user id (random if omitted)")
    parser.add_argument("--role", choices=[r.value for r in Role], default=Role.CUSTOMER.value)
    parser.add_argument("--email", default=None)
    parser.add_argument("--minutes", type=int, default=None, help="Token lifetime (defaults to ACCESS_TOKEN_MINUTES)")
    args = parser.parse_args(argv)

    user_id = args.user_id or uuid.uuid4()
    token = create_access_token(user_id, Role(args.role), email=args.email, expires_minutes=args.minutes)
    print(token)
    return token


if __name__ == "__main__":
    main()
