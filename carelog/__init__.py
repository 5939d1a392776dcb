"""
Carelog Backend

This package records timestamped care events ("stamps") per note and
derives views from the raw event stream. Layers communicate only through
the contracts package, never through shared mutable state.

LAYER STRUCTURE:
================

1. CONTRACTS (contracts/)
   - Responsibility: Immutable data types, error states, event kinds
   - MUST NOT: Perform I/O or hold state

2. TEMPORAL (temporal/)
   - Responsibility: Month windows, local day/minute arithmetic,
     sleep interval reconstruction, diary aggregation
   - Allowed inputs: EventRecord sequences
   - MUST NOT: Read from or write to a store

3. STORAGE (storage/)
   - Responsibility: Note and event persistence behind one contract
   - Implementations: local key-value backend, remote document backend
   - MUST NOT: Derive intervals or interpret notes

4. EXCHANGE (exchange/)
   - Responsibility: CSV export and fault-tolerant import
   - Allowed inputs: A TimelineStore and a target Note

5. OBSERVABILITY (observability/)
   - Responsibility: Append-only audit trail of mutating operations

6. SERVICE (service.py, preferences.py, config.py)
   - Responsibility: One owner's session: note bootstrap, month views,
     subscriptions, CSV exchange, audit recording

7. API (api/)
   - Responsibility: HTTP surface over the service facade

CONSTRAINTS ENFORCED:
=====================
- Timestamp (ms since epoch) is the primary key of an event in a note
- All calendar arithmetic uses one local time-zone convention
- Store failures surface as typed errors, never as silent empty results
- No internal retries: retry policy belongs to the caller
"""

__version__ = "0.3.0"
