import argparse
import os
import time

import jwt

from taskboard_api.models import GLOBAL_ROLES


def main() -> None:
    parser = argparse.ArgumentParser(description="Issue a dev JWT for the taskboard API.")
    parser.add_argument("--subject", default="dev-user")
    parser.add_argument("--email", default=None)
    parser.add_argument("--role", choices=GLOBAL_ROLES, default="member")
    parser.add_argument("--ttl", type=int, default=3600, help="Token lifetime in seconds")
    args = parser.parse_args()
    secret = os.environ.get("TASKBOARD_JWT_SECRET", "").strip()
    if not secret:
        raise SystemExit("TASKBOARD_JWT_SECRET is required")
    issuer = os.environ.get("TASKBOARD_JWT_ISSUER", "taskboard")
    audience = os.environ.get("TASKBOARD_JWT_AUDIENCE", "taskboard-api")
    now = int(time.time())
    payload = {
        "iss": issuer,
        "aud": audience,
        "iat": now,
        "exp": now + args.ttl,
        "sub": args.subject,
        "email": args.email or f"{args.subject}@example.com",
        "preferred_username": args.subject,
        "roles": [args.role],
    }
    token = jwt.encode(payload, secret, algorithm="HS256")
    print(token)


if __name__ == "__main__":
    main()
