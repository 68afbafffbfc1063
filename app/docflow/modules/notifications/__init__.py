"""In-app notification mailboxes (per user, kept in process memory)."""
