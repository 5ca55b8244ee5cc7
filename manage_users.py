#!/usr/bin/env python3
"""
User / API key management CLI
"""

import sys

from sqlalchemy import select

from linkpreview.db import SessionLocal, User, init_db, new_api_key


def create_user(email: str, name: str = "") -> User:
    with SessionLocal() as s:
        user = s.execute(select(User).where(User.email == email)).scalar_one_or_none()
        if user:
            return user
        user = User(email=email, name=name)
        s.add(user)
        s.commit()
        s.refresh(user)
        return user


def rotate_key(email: str) -> User | None:
    with SessionLocal() as s:
        user = s.execute(select(User).where(User.email == email)).scalar_one_or_none()
        if not user:
            return None
        user.api_key = new_api_key()
        s.commit()
        s.refresh(user)
        return user


def list_users() -> list[User]:
    with SessionLocal() as s:
        return list(s.execute(select(User).order_by(User.id)).scalars())


def usage():
    print("User Management CLI")
    print()
    print("Usage: python manage_users.py <command> [args]")
    print()
    print("Commands:")
    print("  create <email> [name]  - Create a user and print its API key")
    print("  rotate <email>         - Issue a new API key")
    print("  list                   - List users")
    print("  serve [host] [port]    - Run the API with uvicorn")


def main(argv=None):
    argv = sys.argv[1:] if argv is None else argv
    if not argv:
        usage()
        return 1

    command = argv[0]

    if command == "serve":
        import uvicorn
        host = argv[1] if len(argv) > 1 else "127.0.0.1"
        port = int(argv[2]) if len(argv) > 2 else 8000
        uvicorn.run("linkpreview.app:app", host=host, port=port, log_level="info")
        return 0

    init_db()

    if command == "create":
        if len(argv) < 2:
            print("❌ Error: create requires an email")
            return 1
        user = create_user(argv[1], argv[2] if len(argv) > 2 else "")
        print(f"✅ {user.email} (id {user.id})")
        print(f"   api key: {user.api_key}")

    elif command == "rotate":
        if len(argv) < 2:
            print("❌ Error: rotate requires an email")
            return 1
        user = rotate_key(argv[1])
        if not user:
            print(f"❌ No such user: {argv[1]}")
            return 1
        print(f"🔄 {user.email} api key: {user.api_key}")

    elif command == "list":
        for user in list_users():
            print(f"   {user.id}: {user.email} {user.name}")

    else:
        print(f"❌ Unknown command: {command}")
        print("Run without arguments to see available commands")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
