"""Read-only descriptors for community tables owned by the main application.

These tables are not attached to ``Base.metadata``; migrations must never
create or alter them.
"""

from __future__ import annotations

from sqlalchemy import column, table

conversations = table("conversations", column("id"), column("tenant_id"), column("type"), column("name"))

conversation_members = table("conversation_members", column("conversation_id"), column("user_id"), column("joined_at"), column("left_at"))

event_chat_exclusions = table("event_chat_exclusions", column("conversation_id"), column("user_id"))

users = table("users", column("id"), column("display_name"))

memberships = table("memberships", column("tenant_id"), column("user_id"), column("role"), column("status"), column("small_group_id"))

prayer_cards = table("prayer_cards", column("id"), column("tenant_id"), column("author_id"), column("recipient_scope"), column("small_group_id"), column("answered_at"))

pastoral_journals = table("pastoral_journals", column("id"), column("tenant_id"), column("small_group_id"), column("author_id"), column("status"))

small_groups = table("small_groups", column("id"), column("tenant_id"), column("zone_id"), column("name"))

zones = table("zones", column("id"), column("tenant_id"), column("zone_leader_id"))
