"""
veranode.vera_runtime
---------------------

Pure(-ish) runtime logic for the voting core. Nothing in here knows about
HTTP, sessions or the process-wide engine singleton:

- identity     secret keys, lookup hashes, nullifiers, key expiry
- sealing      AES-GCM sealing of voter/poster ids inside stored records
- weighting    vote weight formula
- lifecycle    ACTIVE -> LOCKED -> FINAL state machine + stats visibility
- finality     weighted decision + reputation deltas
- reputation   point bookkeeping, auto-block, account status
- hash_chain   append-only decision ledger
- validator    external AI rumor validation clients
- atomic_store snapshot persistence
- unit_of_work rollback scope for multi-record mutations
"""
