#!/usr/bin/env python3
"""Emit deterministic SQL assigning a portal role and roll number to a Supabase user."""

from __future__ import annotations

import argparse


def _quote_sql(value: str) -> str:
    escaped = value.replace("'", "''")
    return f"'{escaped}'"


def render_sql(*, role: str, user_id: str | None, email: str | None, username: str | None) -> str:
    metadata = f"jsonb_build_object('role', {_quote_sql(role)})"
    if username:
        metadata = f"jsonb_build_object('role', {_quote_sql(role)}, 'username', {_quote_sql(username)})"

    if user_id:
        target_where = f"id = {_quote_sql(user_id)}::uuid"
    else:
        assert email is not None
        target_where = f"email = {_quote_sql(email)}"

    return f"""-- Supabase portal role bootstrap SQL
-- Run this in the Supabase SQL editor (or equivalent privileged Postgres session).

update auth.users
set raw_app_meta_data = coalesce(raw_app_meta_data, '{{}}'::jsonb) || {metadata}
where {target_where};

insert into settings (registrations_allowed, cpi_change_allowed)
select true, false
where not exists (select 1 from settings);
"""


def main() -> None:
    parser = argparse.ArgumentParser(description="Emit SQL to bootstrap a portal role for a Supabase user.")
    parser.add_argument(
        "--role",
        choices=["student", "admin"],
        default="admin",
        help="Role to assign in auth.users.raw_app_meta_data.role",
    )
    identity_group = parser.add_mutually_exclusive_group(required=True)
    identity_group.add_argument("--user-id", help="Supabase auth.users id (UUID)")
    identity_group.add_argument("--email", help="Supabase auth.users email")
    parser.add_argument(
        "--username",
        help="Roll number stored as app_metadata.username; students are keyed on it",
    )
    args = parser.parse_args()

    print(
        render_sql(
            role=args.role,
            user_id=args.user_id,
            email=args.email,
            username=args.username,
        )
    )


if __name__ == "__main__":
    main()
