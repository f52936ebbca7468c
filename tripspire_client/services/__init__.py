"""Service Layer — orchestration of optimistic mutations and queued imports."""
