"""
Reports Service package for the Reports Cache Layer.

This package serves a remote CMS collection (news items and annual reports)
through a time-bounded snapshot cache. It provides:

- app.main: API surface for the reports endpoint and health.
- app.webhook: HMAC verification of CMS push notifications.
- app.cache: Snapshot storage (Redis with in-process fallback).
- app.upstream: Paginated fetch of the live collection.
- app.refresh: The serve-or-refresh decision for each request.
- app.projection: Filtering, sorting and pagination of a snapshot.

Guidelines:
- A snapshot is replaced whole or not at all.
- A verified webhook is the only unauthenticated-looking way to bypass the TTL.
- Keep refresh decisions observable (metrics + logs).
"""
