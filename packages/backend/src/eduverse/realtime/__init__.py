"""Realtime infrastructure — change feed + managed subscriptions.

Learn: Changes flow in three hops:
1. PostgreSQL NOTIFY → relay process → Redis PUBLISH (see eduverse.relay)
2. Redis SUBSCRIBE → RedisChangeFeed → RealtimeSubscription handler
3. Handler → LiveCounter recount → WebSocket push to the dashboard

Subscribers only ever use a change as a "something moved, re-query" signal.
"""
