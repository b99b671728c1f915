"""
Create a user from the command line. Run from project root:
  python -m app.scripts.create_user USERNAME PASSWORD
Example:
  python -m app.scripts.create_user alice 'Correct-Horse-9'
"""
import argparse
import sys

from app.core.database import SessionLocal
from app.core.errors import AppError
from app.services.accounts import register_user


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Create a user with a default home screen configuration.")
    parser.add_argument("username", help="Username (3-50 chars: letters, digits, - and _)")
    parser.add_argument("password", help="Password (8-128 chars with upper, lower and a digit)")
    args = parser.parse_args(argv)

    db = SessionLocal()
    try:
        user = register_user(db, args.username, args.password)
        user_id = user.id
    except AppError as e:
        detail = f": {e.details}" if e.details else ""
        print(f"{e.message}{detail}", file=sys.stderr)
        return 1
    finally:
        db.close()
    print(f"Created user '{args.username.strip()}' (id {user_id}).")
    return 0


if __name__ == "__main__":
    sys.exit(main())
