"""
claimant_messaging -- Durable message queue for the claim lifecycle.

Every side-effecting step of a claim (request a card, transfer funds, send
an email or letter, report an event) is recorded as a message inside the
caller's transaction and processed later by a per-type consumer.

Architecture:
    domain/    pure types, cron / duration / backoff maths
    models/    ORM rows: message queue, failure reports, scheduler locks
    handlers/  handler protocol, registry, remote-call handlers
    services/  queue client, lock coordinator, processor, scheduler,
               failure reporter
    orchestrator.py  composition root

Guarantees:
    - At-least-once execution; handlers must be idempotent.
    - At most one instance processes a given message type at a time
      (lease row per type).
    - FIFO by creation time within a type; no ordering across types.
    - Transient failures retry with exponential backoff up to a cap;
      permanent failures produce exactly one failure report.
"""
