"""
Order engine core.

- db: Upstash Redis client
- queue: QStash message queue
- orders: lifecycle state machine, checkout intake, fulfillment handoff
- payments: gateway signature, status mapping, ingestion, payment creation
- jobs: reconciliation and abandonment jobs
- services: Supabase database facade, gateway and partner clients, notifications
"""
