"""
Cache layer package.

Sits between application code and Redis. It provides:

- app.store: Store adapter contract and the Redis implementation.
- app.cache: Cache engine (cache-aside, tags, bulk ops, warming, stats).
- app.locking: Distributed lock and the optional single-flight helper.
- app.health: Health/stats reporter for operational probes.
- app.factory: Wiring of all of the above from settings.

Guidelines:
- Cache failures degrade latency, never correctness; the engine absorbs
  store errors and returns misses or no-ops.
- Concurrency control lives in the store (SET NX, compare-and-delete),
  never in a client-side check-then-act.
"""
